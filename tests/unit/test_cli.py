"""
Tests for the command line interface.
"""

import json
from unittest.mock import patch

import pytest

from bugtracker_migration.migrate_bugtracker_to_github import build_config_data, create_main_parser, main
from bugtracker_migration.exceptions import MigrationError


def parse(*argv):
    return create_main_parser().parse_args(list(argv))


class TestParser:
    """Test argument parsing."""

    def test_defaults(self):
        args = parse()

        assert args.mode is None
        assert args.max_bugs is None
        assert args.secret_file == 'secret.txt'
        assert args.credentials_file == 'credentials.txt'

    @pytest.mark.parametrize("flag,mode", [
        ('--fix-links', 'fix-links'),
        ('--fix-links2', 'fix-links-v2'),
        ('--close-issues', 'close-sync'),
        ('--fix-formatting', 'fix-formatting'),
    ])
    def test_mode_flags(self, flag, mode):
        assert parse(flag).mode == mode

    def test_modes_are_exclusive(self):
        with pytest.raises(SystemExit):
            parse('--fix-links', '--close-issues')


class TestBuildConfigData:
    """Test merging of file settings and command line overrides."""

    def test_defaults(self):
        data = build_config_data(parse())

        assert data['github'] == {'owner': 'APSIMInitiative', 'repo': 'APSIMClassic'}
        assert data['source'] == {}
        assert data['verbosity'] == 1
        assert 'mode' not in data

    def test_overrides(self):
        data = build_config_data(parse('-n', '5', '-u', 'http://bugs.example.org/', '--reupload',
                                       '--resume-after', '1200', '--owner', 'me', '--repo', 'r',
                                       '--skip-failed-attachments', '--dry-run', '-vv'))

        assert data['source'] == {'root_url': 'http://bugs.example.org/', 'max_bugs': 5}
        assert data['github'] == {'owner': 'me', 'repo': 'r'}
        assert data['reupload'] is True
        assert data['resume_after_id'] == 1200
        assert data['attachment_failure_policy'] == 'skip'
        assert data['dry_run'] is True
        assert data['verbosity'] == 3

    def test_config_file_values_kept(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"github": {"owner": "org"}, "verbosity": 0, "reupload": True}))

        data = build_config_data(parse('--config', str(path)))

        assert data['github'] == {'owner': 'org', 'repo': 'APSIMClassic'}
        assert data['verbosity'] == 0
        assert data['reupload'] is True

    def test_quiet(self):
        assert build_config_data(parse('-q'))['verbosity'] == 0


class TestMain:
    """Test exit codes."""

    @pytest.fixture(autouse=True)
    def no_secrets(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        for name in ('GITHUB_TOKEN', 'GITHUB_API_TOKEN', 'FILESTORE_USERNAME', 'FILESTORE_PASSWORD'):
            monkeypatch.delenv(name, raising=False)

    def test_missing_secret_exits(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 1
        assert "Configuration error" in capsys.readouterr().out

    def test_runs_orchestrator(self, monkeypatch):
        monkeypatch.setenv('GITHUB_TOKEN', 'ghp_test')

        with patch('bugtracker_migration.migrate_bugtracker_to_github.MigrationOrchestrator') as orchestrator:
            main(['--close-issues'])

        config = orchestrator.call_args[0][0]
        assert config.mode.value == 'close-sync'
        assert config.github.token == 'ghp_test'
        orchestrator.return_value.run.assert_called_once()

    def test_migration_error_exits(self, monkeypatch, capsys):
        monkeypatch.setenv('GITHUB_TOKEN', 'ghp_test')

        with patch('bugtracker_migration.migrate_bugtracker_to_github.MigrationOrchestrator') as orchestrator:
            orchestrator.return_value.run.side_effect = MigrationError("GitHub API error (500)")
            with pytest.raises(SystemExit) as exc_info:
                main([])

        assert exc_info.value.code == 1
        assert "GitHub API error" in capsys.readouterr().out
