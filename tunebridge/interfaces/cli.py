import argparse
import os
import sys
import logging
import signal
import time
import uuid
from typing import List, Optional
from datetime import datetime, timezone

from tunebridge.application.pipeline import transfer_playlist
from tunebridge.crosscutting.config import get_settings, setup_config
from tunebridge.crosscutting.logging import CorrelationContext, log_transfer_start, setup_logging
from tunebridge.crosscutting.reporting import create_report, write_report
from tunebridge.domain.entities import TransferProgress
from tunebridge.domain.ports import MusicProvider
from tunebridge.infrastructure.registry import ProviderRegistry, build_registry

PROVIDER_CHOICES = ['spotify', 'youtube-music', 'apple-music', 'kkbox']
LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR']


class CLI:
    """Command Line Interface for tunebridge."""

    def __init__(self, registry: Optional[ProviderRegistry] = None, out=None):
        """Initialize CLI."""
        self.parser = self._create_parser()
        self._registry = registry
        self.out = out or sys.stdout
        self._start_time = None

    @property
    def registry(self) -> ProviderRegistry:
        if self._registry is None:
            self._registry = build_registry(get_settings())
        return self._registry

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='tunebridge',
            description='Transfer playlists between music streaming platforms'
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        providers_parser = subparsers.add_parser('providers', help='List supported platforms')
        self._add_common_options(providers_parser)

        auth_parser = subparsers.add_parser('auth-url', help='Print the authorization URL of a platform')
        auth_parser.add_argument('--provider', choices=PROVIDER_CHOICES, required=True,
                                 help='Platform to authorize with')
        self._add_common_options(auth_parser)

        list_parser = subparsers.add_parser('playlists', help='List playlists of the authenticated user')
        list_parser.add_argument('--provider', choices=PROVIDER_CHOICES, required=True,
                                 help='Platform to list playlists from')
        list_parser.add_argument('--token', help='Bearer token (default: <PROVIDER>_ACCESS_TOKEN)')
        self._add_common_options(list_parser)

        transfer_parser = subparsers.add_parser('transfer', help='Transfer one playlist')
        transfer_parser.add_argument('--source', choices=PROVIDER_CHOICES, required=True,
                                     help='Source platform')
        transfer_parser.add_argument('--target', choices=PROVIDER_CHOICES, required=True,
                                     help='Target platform')
        transfer_parser.add_argument('--playlist', required=True, help='Source playlist ID')
        transfer_parser.add_argument('--source-token',
                                     help='Source bearer token (default: <SOURCE>_ACCESS_TOKEN)')
        transfer_parser.add_argument('--target-token',
                                     help='Target bearer token (default: <TARGET>_ACCESS_TOKEN)')
        transfer_parser.add_argument('--report-path',
                                     help='Directory to write a JSON transfer report to')
        self._add_common_options(transfer_parser)

        return parser

    @staticmethod
    def _add_common_options(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            '--log-level',
            choices=LOG_LEVELS,
            default='WARNING',
            help='Set logging level'
        )
        parser.add_argument('--log-file', help='Also write JSON log records to this file')
        parser.add_argument('--env-file', help='Load configuration from this .env file')

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger = logging.getLogger(__name__)
            logger.warning(f"Received signal {signum}, shutting down...")
            sys.exit(130)  # Standard exit code for signal termination

        signal.signal(signal.SIGTERM, signal_handler)

    def _get_env_token(self, provider_id: str) -> Optional[str]:
        """Get a provider's bearer token from the environment."""
        env_var = f"{provider_id.upper().replace('-', '_')}_ACCESS_TOKEN"
        value = os.getenv(env_var)
        if value is None or not str(value).strip():
            return None
        return value.strip()

    def _resolve_token(self, provider_id: str, explicit: Optional[str]) -> str:
        token = explicit or self._get_env_token(provider_id)
        if not token:
            env_var = f"{provider_id.upper().replace('-', '_')}_ACCESS_TOKEN"
            raise ValueError(f"A token for {provider_id} is required (pass it or set {env_var})")
        return token

    def _provider(self, provider_id: str) -> MusicProvider:
        provider = self.registry.lookup(provider_id)
        if provider is None:
            raise ValueError(f"Unsupported provider: {provider_id}")
        return provider

    def _print(self, line: str = '') -> None:
        print(line, file=self.out)

    def _list_providers(self, args: argparse.Namespace) -> None:
        for entry in self.registry.list():
            self._print(f"{entry['id']}: {entry['displayName']}")

    def _print_auth_url(self, args: argparse.Namespace) -> None:
        self._print(self._provider(args.provider).get_auth_url())

    def _list_playlists(self, args: argparse.Namespace) -> None:
        """List available playlists."""
        provider = self._provider(args.provider)
        token = self._resolve_token(args.provider, args.token)

        playlists = provider.get_playlists(token)

        self._print(f"Available playlists from {provider.name}:")
        self._print("-" * 50)
        for playlist in playlists:
            self._print(f"{playlist.id}: {playlist.name} (tracks: {playlist.track_count})")

    def _print_progress(self, progress: TransferProgress) -> None:
        if progress.total:
            self._print(f"[{progress.phase.value}] {progress.current}/{progress.total} {progress.message}")
        else:
            self._print(f"[{progress.phase.value}] {progress.message}")

    def _transfer(self, args: argparse.Namespace) -> None:
        """Transfer one playlist from source to target."""
        source = self._provider(args.source)
        target = self._provider(args.target)
        source_token = self._resolve_token(args.source, args.source_token)
        target_token = self._resolve_token(args.target, args.target_token)

        transfer_id = uuid.uuid4().hex[:12]
        started_at = datetime.now(timezone.utc)
        logger = logging.getLogger(__name__)

        with CorrelationContext(transfer_id=transfer_id, playlist_id=args.playlist):
            log_transfer_start(logger, args.source, args.target, args.playlist)
            result = transfer_playlist(source, target, source_token, target_token, args.playlist,
                                       on_progress=self._print_progress)

        self._print()
        self._print(f"Target playlist: {result.target_playlist_id}")
        self._print(f"Matched {len(result.matched)}/{result.total_tracks} tracks")
        if result.unmatched:
            self._print("Not found on target:")
            for track in result.unmatched:
                self._print(f"  - {track.artist} - {track.name}")

        if args.report_path:
            report = create_report(transfer_id, args.source, args.target, started_at, result)
            path = write_report(report, args.report_path)
            self._print(f"Report saved to: {path}")

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI and return the process exit code."""
        self._start_time = time.time()
        args = self.parser.parse_args(argv)

        if not args.command:
            self.parser.print_help()
            return 1

        setup_logging(args.log_level, log_file=args.log_file)
        self._setup_signal_handlers()
        logger = logging.getLogger(__name__)

        handlers = {
            'providers': self._list_providers,
            'auth-url': self._print_auth_url,
            'playlists': self._list_playlists,
            'transfer': self._transfer,
        }

        try:
            if args.env_file:
                # Providers are built lazily, after this
                setup_config(args.env_file)
            handlers[args.command](args)
            return 0
        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user")
            return 130
        except Exception as e:
            logger.error(f"{args.command} failed: {e}")
            print(f"Error: {e}", file=sys.stderr)
            return 1
        finally:
            logger.debug(f"CLI execution time: {time.time() - self._start_time:.2f}s")


def main():
    """Main entry point."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == '__main__':
    main()
