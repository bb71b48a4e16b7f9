from typing import Any, Dict, Optional
import logging

import requests

from tunebridge.domain.errors import AuthenticationError, ProviderError, RateLimited

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


def bearer_headers(token: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    headers = {'Authorization': f'Bearer {token}'}
    if extra:
        headers.update(extra)
    return headers


def _retry_after_ms(response: requests.Response) -> int:
    try:
        return int(float(response.headers.get('Retry-After', 1)) * 1000)
    except (TypeError, ValueError):
        return 1000


def send(method: str, url: str, operation: str, timeout: float = DEFAULT_TIMEOUT,
         **kwargs) -> requests.Response:
    """Perform one HTTP request, translating transport failures.

    Only network-level failures raise here; the caller decides what a
    non-success status means for its operation.
    """
    try:
        return requests.request(method, url, timeout=timeout, **kwargs)
    except requests.RequestException as e:
        logger.error(f"{operation} failed: {e}")
        raise ProviderError(f"{operation} failed: {e}")


def check(response: requests.Response, operation: str) -> requests.Response:
    """Raise for 429 and any other non-success status."""
    if response.status_code == 429:
        raise RateLimited(retry_after_ms=_retry_after_ms(response),
                          message=f"{operation} rate limited")
    if not response.ok:
        logger.error(f"{operation} failed: {response.status_code} - {response.text[:200]}")
        raise ProviderError(f"{operation} failed: {response.status_code}",
                            status_code=response.status_code)
    return response


def request_json(method: str, url: str, operation: str, timeout: float = DEFAULT_TIMEOUT,
                 **kwargs) -> Dict[str, Any]:
    """Perform a request that must succeed and return its JSON body."""
    response = check(send(method, url, operation, timeout=timeout, **kwargs), operation)
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError as e:
        raise ProviderError(f"{operation} returned invalid JSON: {e}")


def token_json(response: requests.Response, operation: str) -> Dict[str, Any]:
    """Read an OAuth token response that must carry an access token."""
    try:
        data = response.json()
    except ValueError as e:
        logger.error(f"{operation} returned invalid JSON: {e}")
        raise AuthenticationError(f"{operation} returned an unreadable response")
    if not isinstance(data, dict) or not data.get('access_token'):
        logger.error(f"{operation} response has no access token")
        raise AuthenticationError(f"{operation} returned no access token")
    return data


def lookup_json(method: str, url: str, operation: str, timeout: float = DEFAULT_TIMEOUT,
                **kwargs) -> Optional[Dict[str, Any]]:
    """Perform a best-effort lookup such as a per-track search.

    Transport failures still raise. A non-success status or an unreadable
    body is logged and reported as ``None`` so the caller can treat it as
    "nothing found".
    """
    response = send(method, url, operation, timeout=timeout, **kwargs)
    if not response.ok:
        logger.warning(f"{operation} failed: {response.status_code}")
        return None
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError as e:
        logger.warning(f"{operation} returned invalid JSON: {e}")
        return None
