import io
import json
import logging
import os

import pytest

from tunebridge.crosscutting import config
from tunebridge.domain.errors import ProviderError
from tunebridge.infrastructure.registry import ProviderRegistry
from tunebridge.interfaces.cli import CLI, main


class TestCLI:
    """Tests for the command line interface."""

    @pytest.fixture(autouse=True)
    def _cli(self, source_provider, target_provider):
        self.source = source_provider
        self.target = target_provider
        self.out = io.StringIO()
        self.cli = CLI(registry=ProviderRegistry({'spotify': source_provider, 'kkbox': target_provider}),
                       out=self.out)

    def output(self):
        return self.out.getvalue()

    def test_no_command_prints_help(self):
        assert self.cli.run([]) == 1

    def test_unknown_provider_rejected_by_parser(self):
        with pytest.raises(SystemExit):
            self.cli.run(['auth-url', '--provider', 'napster'])

    def test_providers(self):
        assert self.cli.run(['providers']) == 0

        assert self.output().splitlines() == ['spotify: Source', 'kkbox: Target']

    def test_auth_url(self):
        assert self.cli.run(['auth-url', '--provider', 'kkbox']) == 0

        assert self.output().strip() == 'https://auth.example/target'

    def test_provider_missing_from_registry(self, capsys):
        assert self.cli.run(['auth-url', '--provider', 'apple-music']) == 1

        assert 'Unsupported provider: apple-music' in capsys.readouterr().err

    def test_playlists_with_explicit_token(self):
        assert self.cli.run(['playlists', '--provider', 'spotify', '--token', 'abc']) == 0

        lines = self.output().splitlines()
        assert lines[0] == 'Available playlists from Source:'
        assert 'pl-1: Road Trip (tracks: 99)' in lines

    def test_playlists_token_from_environment(self, monkeypatch):
        monkeypatch.setenv('SPOTIFY_ACCESS_TOKEN', ' env-token ')

        assert self.cli.run(['playlists', '--provider', 'spotify']) == 0

    def test_playlists_without_token(self, capsys):
        assert self.cli.run(['playlists', '--provider', 'spotify']) == 1

        assert 'SPOTIFY_ACCESS_TOKEN' in capsys.readouterr().err
        assert self.source.calls == []

    def test_playlists_provider_error(self, capsys):
        self.source.fail_on['get_playlists'] = ProviderError("Spotify list playlists failed: 500")

        assert self.cli.run(['playlists', '--provider', 'spotify', '--token', 'abc']) == 1

        assert 'Error: Spotify list playlists failed: 500' in capsys.readouterr().err

    def test_transfer_prints_progress_and_summary(self):
        code = self.cli.run(['transfer', '--source', 'spotify', '--target', 'kkbox', '--playlist', 'pl-1',
                             '--source-token', 'a', '--target-token', 'b'])

        assert code == 0
        out = self.output()
        assert '[fetching] Fetching playlist details...' in out
        assert '[matching] 1/3 Matching: Artist One - Song One' in out
        assert '[complete] 2/3 Done! 2 added, 1 unmatched.' in out
        assert 'Target playlist: new-1' in out
        assert 'Matched 2/3 tracks' in out
        assert '  - Nobody - Rare Song' in out

    def test_transfer_tokens_from_environment(self, monkeypatch):
        monkeypatch.setenv('SPOTIFY_ACCESS_TOKEN', 'a')
        monkeypatch.setenv('KKBOX_ACCESS_TOKEN', 'b')

        assert self.cli.run(['transfer', '--source', 'spotify', '--target', 'kkbox', '--playlist', 'pl-1']) == 0

    def test_transfer_writes_report(self, tmp_path):
        code = self.cli.run(['transfer', '--source', 'spotify', '--target', 'kkbox', '--playlist', 'pl-1',
                             '--source-token', 'a', '--target-token', 'b', '--report-path', str(tmp_path)])

        assert code == 0
        reports = os.listdir(tmp_path)
        assert len(reports) == 1
        with open(tmp_path / reports[0], encoding='utf-8') as f:
            report = json.load(f)
        assert report['header']['source'] == 'spotify'
        assert report['playlist']['totals'] == {'total': 3, 'matched': 2, 'unmatched': 1}
        assert f"Report saved to: {tmp_path / reports[0]}" in self.output()

    def test_transfer_missing_playlist(self, capsys):
        code = self.cli.run(['transfer', '--source', 'spotify', '--target', 'kkbox', '--playlist', 'nope',
                             '--source-token', 'a', '--target-token', 'b'])

        assert code == 1
        assert 'Error: Playlist nope not found' in capsys.readouterr().err
        assert self.target.created == []

    def test_keyboard_interrupt(self):
        self.source.fail_on['get_playlists'] = KeyboardInterrupt()

        assert self.cli.run(['playlists', '--provider', 'spotify', '--token', 'abc']) == 130

    def test_transfer_log_file(self, tmp_path):
        log_file = tmp_path / 'transfer.log'

        try:
            code = self.cli.run(['transfer', '--source', 'spotify', '--target', 'kkbox', '--playlist', 'pl-1',
                                 '--source-token', 'a', '--target-token', 'b',
                                 '--log-level', 'INFO', '--log-file', str(log_file)])
        finally:
            package_logger = logging.getLogger('tunebridge')
            for handler in package_logger.handlers:
                handler.close()
            package_logger.handlers.clear()

        assert code == 0
        records = [json.loads(line) for line in log_file.read_text(encoding='utf-8').splitlines()]
        assert any(r['message'].startswith('Transfer started') for r in records)


def test_env_file_configures_providers(tmp_path, monkeypatch):
    monkeypatch.setattr(config, '_settings', None)
    for key in ('KKBOX_CLIENT_ID', 'KKBOX_CLIENT_SECRET', 'KKBOX_REDIRECT_URI'):
        monkeypatch.delenv(key, raising=False)
    env_file = tmp_path / 'kkbox.env'
    env_file.write_text('KKBOX_CLIENT_ID=from-file\nKKBOX_REDIRECT_URI=http://localhost/cb\n', encoding='utf-8')
    out = io.StringIO()

    assert CLI(out=out).run(['auth-url', '--provider', 'kkbox', '--env-file', str(env_file)]) == 0

    assert out.getvalue().startswith('https://account.kkbox.com/oauth2/authorize?')
    assert 'client_id=from-file' in out.getvalue()


def test_missing_env_file(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(config, '_settings', None)

    code = CLI(out=io.StringIO()).run(['providers', '--env-file', str(tmp_path / 'missing.env')])

    assert code == 1
    assert 'Env file not found' in capsys.readouterr().err


def test_main_exits_with_run_code(monkeypatch):
    monkeypatch.setattr('tunebridge.interfaces.cli.CLI.run', lambda self, argv=None: 0)

    with pytest.raises(SystemExit) as exc:
        main()

    assert exc.value.code == 0
