from unittest.mock import patch

import pytest
import requests

from tunebridge.domain.errors import AuthenticationError, ProviderError, RateLimited
from tunebridge.infrastructure.providers import rest


class TestRestHelpers:

    def test_bearer_headers(self):
        assert rest.bearer_headers("abc") == {'Authorization': 'Bearer abc'}
        assert rest.bearer_headers("abc", {'X': '1'}) == {'Authorization': 'Bearer abc', 'X': '1'}

    @patch('tunebridge.infrastructure.providers.rest.requests.request')
    def test_send_passes_timeout(self, mock_request, make_response):
        mock_request.return_value = make_response(200, {})

        rest.send('GET', 'http://api/x', 'op', timeout=3, params={'a': 1})

        mock_request.assert_called_once_with('GET', 'http://api/x', timeout=3, params={'a': 1})

    @patch('tunebridge.infrastructure.providers.rest.requests.request')
    def test_send_wraps_transport_errors(self, mock_request):
        mock_request.side_effect = requests.Timeout("slow")

        with pytest.raises(ProviderError, match="op failed"):
            rest.send('GET', 'http://api/x', 'op')

    def test_check_rate_limited(self, make_response):
        with pytest.raises(RateLimited) as exc:
            rest.check(make_response(429, {}, headers={'Retry-After': '2'}), 'op')

        assert exc.value.retry_after_ms == 2000

    def test_check_rate_limited_bad_header(self, make_response):
        with pytest.raises(RateLimited) as exc:
            rest.check(make_response(429, {}, headers={'Retry-After': 'soon'}), 'op')

        assert exc.value.retry_after_ms == 1000

    def test_check_error_status(self, make_response):
        with pytest.raises(ProviderError) as exc:
            rest.check(make_response(503, {'error': 'down'}), 'op')

        assert exc.value.status_code == 503
        assert str(exc.value) == "op failed: 503"

    @patch('tunebridge.infrastructure.providers.rest.requests.request')
    def test_request_json_empty_body(self, mock_request, make_response):
        mock_request.return_value = make_response(204)

        assert rest.request_json('POST', 'http://api/x', 'op') == {}

    @patch('tunebridge.infrastructure.providers.rest.requests.request')
    def test_request_json_invalid_body(self, mock_request, make_response):
        response = make_response(200, {}, content=b'<html>')
        response.json.side_effect = ValueError("no json")
        mock_request.return_value = response

        with pytest.raises(ProviderError, match="invalid JSON"):
            rest.request_json('GET', 'http://api/x', 'op')

    @patch('tunebridge.infrastructure.providers.rest.requests.request')
    def test_lookup_json_error_status_is_none(self, mock_request, make_response, caplog):
        mock_request.return_value = make_response(503, {'error': 'down'})

        with caplog.at_level('WARNING', logger='tunebridge.infrastructure.providers.rest'):
            assert rest.lookup_json('GET', 'http://api/search', 'lookup') is None

        assert 'lookup failed: 503' in caplog.text

    @patch('tunebridge.infrastructure.providers.rest.requests.request')
    def test_lookup_json_invalid_body_is_none(self, mock_request, make_response):
        response = make_response(200, {}, content=b'<html>')
        response.json.side_effect = ValueError("no json")
        mock_request.return_value = response

        assert rest.lookup_json('GET', 'http://api/search', 'lookup') is None

    @patch('tunebridge.infrastructure.providers.rest.requests.request')
    def test_lookup_json_transport_error_raises(self, mock_request):
        mock_request.side_effect = requests.ConnectionError("reset")

        with pytest.raises(ProviderError, match="lookup failed"):
            rest.lookup_json('GET', 'http://api/search', 'lookup')

    def test_token_json(self, make_response):
        assert rest.token_json(make_response(200, {'access_token': 'a'}), 'exchange') == {'access_token': 'a'}

    def test_token_json_missing_token(self, make_response):
        with pytest.raises(AuthenticationError, match="exchange returned no access token"):
            rest.token_json(make_response(200, ['unexpected']), 'exchange')
