class MusicTransferError(Exception):
    """Base class for domain errors raised by providers and the transfer engine."""


class ValidationError(MusicTransferError):
    """Request parameters are missing or invalid (e.g. unknown provider id)."""


class AuthenticationError(MusicTransferError):
    """Authorization code exchange was rejected by the provider."""


class NotFound(MusicTransferError):
    """Requested resource was not found."""


class ProviderError(MusicTransferError):
    """Provider API call failed at transport level or with a non-success status."""

    def __init__(self, message: str, status_code: int = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimited(ProviderError):
    """Operation was rate limited by provider. Includes suggested wait time in milliseconds."""

    def __init__(self, retry_after_ms: int, message: str = "Rate limited") -> None:
        super().__init__(message, status_code=429)
        self.retry_after_ms = retry_after_ms
