"""Tests for configuration loading and logging."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from kubequest.core import config as config_module
from kubequest.core.config import Config, configure_logging, load_config, log, parse_config


@pytest.fixture(autouse=True)
def no_user_config(monkeypatch, tmp_path):
    monkeypatch.setattr(config_module, "USER_CONFIG", tmp_path / "missing" / "config.toml")
    monkeypatch.delenv("KUBEQUEST_CONFIG", raising=False)
    yield
    configure_logging(Config())


class TestParseConfig:
    def test_empty(self):
        assert parse_config({}) == Config()

    def test_all_settings(self):
        cfg = parse_config(
            {
                "simulator": {"seed": 7, "history_limit": 50, "home": "/home/admin/"},
                "logging": {"path": "/tmp/kq.log", "full_commands": True, "level": "debug"},
            }
        )
        assert cfg.seed == 7
        assert cfg.history_limit == 50
        assert cfg.home == "/home/admin"
        assert cfg.log == Path("/tmp/kq.log")
        assert cfg.log_full is True
        assert cfg.log_level == "debug"

    ERRORS = [
        ({"nope": {}}, "unknown table [nope]"),
        ({"simulator": 3}, "'simulator' must be a table"),
        ({"simulator": {"colour": 1}}, "unknown setting 'simulator.colour'"),
        ({"simulator": {"seed": "x"}}, "'seed' requires an integer"),
        ({"simulator": {"seed": True}}, "'seed' requires an integer"),
        ({"simulator": {"history_limit": -1}}, "'history_limit' must not be negative"),
        ({"simulator": {"home": "relative"}}, "'home' must be an absolute path"),
        ({"logging": {"level": "loud"}}, "'level' must be one of debug, info, warning"),
        ({"logging": {"full_commands": "yes"}}, "'full_commands' requires true or false"),
        ({"logging": {"path": ""}}, "'path' requires a path"),
    ]

    @pytest.mark.parametrize("data,message", ERRORS)
    def test_invalid(self, data, message):
        with pytest.raises(ValueError, match=message.replace("[", r"\[").replace("]", r"\]")):
            parse_config(data)


class TestLoadConfig:
    def test_defaults_without_files(self, tmp_path):
        assert load_config(tmp_path) == Config()

    def test_project_file_found_walking_up(self, tmp_path):
        (tmp_path / ".kubequest.toml").write_text("[simulator]\nseed = 42\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert load_config(nested).seed == 42

    def test_env_overrides_project(self, tmp_path, monkeypatch):
        (tmp_path / ".kubequest.toml").write_text("[simulator]\nseed = 1\nhistory_limit = 5\n")
        override = tmp_path / "override.toml"
        override.write_text("[simulator]\nseed = 2\n")
        monkeypatch.setenv("KUBEQUEST_CONFIG", str(override))
        cfg = load_config(tmp_path)
        assert cfg.seed == 2
        assert cfg.history_limit == 5

    def test_user_config_lowest(self, tmp_path, monkeypatch):
        user = tmp_path / "user.toml"
        user.write_text("[simulator]\nseed = 9\nhistory_limit = 3\n")
        monkeypatch.setattr(config_module, "USER_CONFIG", user)
        (tmp_path / ".kubequest.toml").write_text("[simulator]\nseed = 4\n")
        cfg = load_config(tmp_path)
        assert (cfg.seed, cfg.history_limit) == (4, 3)

    def test_bad_toml_names_file(self, tmp_path):
        path = tmp_path / ".kubequest.toml"
        path.write_text("[simulator\n")
        with pytest.raises(ValueError, match=".kubequest.toml"):
            load_config(tmp_path)


class TestLogging:
    def _lines(self, path: Path) -> list[dict]:
        return [json.loads(line) for line in path.read_text().splitlines()]

    def test_unconfigured_is_noop(self):
        log("info", "command", command="kubectl get pods")

    def test_json_lines(self, tmp_path):
        path = tmp_path / "logs" / "kq.log"
        configure_logging(Config(log=path))
        log("info", "command", command="kubectl get pods")
        configure_logging(Config())
        [entry] = self._lines(path)
        assert entry["event"] == "command"
        assert entry["level"] == "info"
        assert entry["command"] == "kubectl"
        assert "timestamp" in entry

    def test_full_commands(self, tmp_path):
        path = tmp_path / "kq.log"
        configure_logging(Config(log=path, log_full=True))
        log("info", "command", command="kubectl get pods")
        configure_logging(Config())
        assert self._lines(path)[0]["command"] == "kubectl get pods"

    def test_level_filter(self, tmp_path):
        path = tmp_path / "kq.log"
        configure_logging(Config(log=path, log_level="warning"))
        log("info", "apply", kind="Pod")
        log("warning", "unexpected_error", error="boom")
        configure_logging(Config())
        assert [e["event"] for e in self._lines(path)] == ["unexpected_error"]
