"""
Tests for the command line entry point.
"""

import pytest

from clipboard_sync import cli


class TestParser:
    def test_serve_defaults_leave_env_alone(self, monkeypatch):
        monkeypatch.setenv("CLIPBOARD_PORT", "5050")
        args = cli.build_parser().parse_args(["serve"])

        config = cli.resolve_config(args)

        assert config.port == 5050
        assert config.json_logs is False

    def test_flags_override_env(self, monkeypatch):
        monkeypatch.setenv("CLIPBOARD_PORT", "5050")
        args = cli.build_parser().parse_args(
            ["serve", "--port", "6000", "--db", "clip.db", "--json-logs"]
        )

        config = cli.resolve_config(args)

        assert config.port == 6000
        assert config.db_path == "clip.db"
        assert config.json_logs is True

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestMain:
    def test_bad_env_config_exits_2(self, monkeypatch, capsys):
        monkeypatch.setenv("CLIPBOARD_PORT", "not-a-port")

        assert cli.main(["serve"]) == 2
        assert "Invalid configuration" in capsys.readouterr().err

    def test_serve_runs_app(self, monkeypatch):
        calls = []
        monkeypatch.setattr(cli, "serve", calls.append)
        monkeypatch.setattr(cli, "setup_logging", lambda config: None)

        assert cli.main(["serve", "--port", "4100"]) == 0
        assert calls[0].port == 4100
