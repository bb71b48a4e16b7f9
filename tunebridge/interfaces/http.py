import os
import logging
import uuid
from typing import Optional, Tuple
from datetime import datetime, timezone
from flask import Flask, Response, request, jsonify, stream_with_context

from tunebridge.application.events import format_sse, transfer_events
from tunebridge.crosscutting.config import ConfigError, Settings, get_settings
from tunebridge.crosscutting.logging import CorrelationContext, log_transfer_start
from tunebridge.domain.errors import AuthenticationError, ProviderError, ValidationError
from tunebridge.infrastructure.registry import ProviderRegistry, build_registry

TRANSFER_FIELDS = ('sourceProvider', 'targetProvider', 'sourceToken', 'targetToken', 'playlistId')


class HTTPServer:
    """HTTP server exposing providers, auth, playlists and the transfer stream."""

    def __init__(self, host: str = 'localhost', port: int = 3000, debug: bool = False,
                 registry: Optional[ProviderRegistry] = None,
                 settings: Optional[Settings] = None):
        """Initialize HTTP server."""
        self.host = host
        self.port = port
        self.debug = debug
        self.app = Flask(__name__)
        self.logger = logging.getLogger(__name__)

        # Version info
        self.version = "0.1.0"
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        self._settings = settings
        if registry is None:
            registry = build_registry(self.settings)
        self.registry = registry

        self._setup_routes()

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    def _get_provider_or_404(self, provider_id: str):
        provider = self.registry.lookup(provider_id)
        if provider is None:
            return None, (jsonify({'error': 'Provider not found'}), 404)
        return provider, None

    def _parse_transfer_request(self) -> Tuple[str, str, str, str, str]:
        """Validate the transfer body before any provider is called."""
        body = request.get_json(silent=True) or {}
        values = {
            'sourceProvider': body.get('sourceProvider') or body.get('sourceProviderId'),
            'targetProvider': body.get('targetProvider') or body.get('targetProviderId'),
            'sourceToken': body.get('sourceToken'),
            'targetToken': body.get('targetToken'),
            'playlistId': body.get('playlistId'),
        }
        missing = [name for name in TRANSFER_FIELDS if not values[name]]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        if values['sourceProvider'] not in self.registry or values['targetProvider'] not in self.registry:
            raise ValidationError('Invalid provider specified')
        return tuple(values[name] for name in TRANSFER_FIELDS)

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'commit': self.commit,
                'timestamp': datetime.now(timezone.utc).isoformat(),
                'configuration': self.settings.get_config_summary(),
            }), 200

        @self.app.route('/api/providers', methods=['GET'])
        def list_providers():
            """Enumerate available platforms."""
            return jsonify({'providers': self.registry.list()}), 200

        @self.app.route('/api/auth/<provider_id>', methods=['GET'])
        def auth_url(provider_id: str):
            """Return the provider's authorization URL."""
            provider, error = self._get_provider_or_404(provider_id)
            if error:
                return error
            try:
                return jsonify({'authUrl': provider.get_auth_url()}), 200
            except ConfigError as e:
                self.logger.error(f"Auth URL error for {provider_id}: {e}")
                return jsonify({
                    'error': f'{provider.name} not configured',
                    'details': str(e)
                }), 500

        @self.app.route('/api/auth/<provider_id>', methods=['POST'])
        def auth_callback(provider_id: str):
            """Exchange an authorization code for a token."""
            body = request.get_json(silent=True) or {}
            code = body.get('code')
            if not code:
                return jsonify({'error': 'Authorization code required'}), 400

            provider, error = self._get_provider_or_404(provider_id)
            if error:
                return error

            self.logger.info(f"Received {provider_id} authorization callback")
            try:
                token_data = provider.handle_callback(code)
            except AuthenticationError as e:
                return jsonify({'error': 'Token exchange failed', 'details': str(e)}), 401
            except ConfigError as e:
                self.logger.error(f"Callback error for {provider_id}: {e}")
                return jsonify({'error': f'{provider.name} not configured', 'details': str(e)}), 500
            except ProviderError as e:
                return jsonify({'error': 'Token exchange failed', 'details': str(e)}), 502

            return jsonify(token_data.to_json()), 200

        @self.app.route('/api/playlists/<provider_id>', methods=['GET'])
        def list_playlists(provider_id: str):
            """List the authenticated user's playlists."""
            provider, error = self._get_provider_or_404(provider_id)
            if error:
                return error

            auth_header = request.headers.get('Authorization', '')
            if not auth_header.startswith('Bearer ') or not auth_header[7:].strip():
                return jsonify({'error': 'Bearer token required'}), 401
            token = auth_header[7:].strip()

            try:
                playlists = provider.get_playlists(token)
            except ProviderError as e:
                self.logger.error(f"Playlists error for {provider_id}: {e}")
                return jsonify({'error': 'Failed to fetch playlists', 'details': str(e)}), 502
            except ConfigError as e:
                return jsonify({'error': f'{provider.name} not configured', 'details': str(e)}), 500

            return jsonify({'playlists': [p.to_json() for p in playlists]}), 200

        @self.app.route('/api/transfer', methods=['POST'])
        def transfer():
            """Run a transfer and stream its progress as Server-Sent Events."""
            try:
                source_id, target_id, source_token, target_token, playlist_id = self._parse_transfer_request()
            except ValidationError as e:
                return jsonify({'error': str(e)}), 400

            source = self.registry.lookup(source_id)
            target = self.registry.lookup(target_id)
            transfer_id = uuid.uuid4().hex[:12]

            def stream():
                with CorrelationContext(transfer_id=transfer_id, playlist_id=playlist_id):
                    log_transfer_start(self.logger, source_id, target_id, playlist_id)
                    for event in transfer_events(source, target, source_token, target_token, playlist_id):
                        yield format_sse(event)

            return Response(
                stream_with_context(stream()),
                mimetype='text/event-stream',
                headers={
                    'Cache-Control': 'no-cache',
                    'X-Accel-Buffering': 'no',
                    'X-Transfer-Id': transfer_id,
                },
            )

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'tunebridge HTTP Interface',
                'version': self.version,
                'endpoints': {
                    'health': '/health',
                    'providers': '/api/providers',
                    'auth': '/api/auth/<provider>',
                    'playlists': '/api/playlists/<provider>',
                    'transfer': '/api/transfer'
                }
            }), 200

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Starting tunebridge HTTP server on {self.host}:{self.port}")
        self.app.run(
            host=self.host,
            port=self.port,
            debug=self.debug,
            threaded=True
        )


def create_app(registry: Optional[ProviderRegistry] = None) -> Flask:
    """Create Flask app (used by tests and WSGI servers)."""
    server = HTTPServer(registry=registry)
    return server.app
