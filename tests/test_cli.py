"""Tests for argument parsing, CLI flag helpers and exit codes."""

import json
from unittest.mock import patch

import pytest
import yaml

from args import parse_args
from cli_config import apply_cli_overrides, parse_constraint_flags, parse_priority_flags
from common.errors import ConfigurationError, ResolutionAborted
from constants import Constants, ExitCodes
from packweave import main, prompt_conflict


class TestArgs:
    def test_install_flags(self):
        args = parse_args([
            "install", "a@^1.0.0", "./local",
            "-p", "cursor", "-p", "claude",
            "--constraint", "lib@<2.0.0",
            "--priority", "a=5",
            "--force", "--dev", "--loglevel", "debug",
        ])
        assert args.COMMAND == "install"
        assert args.packages == ["a@^1.0.0", "./local"]
        assert args.PLATFORMS == ["cursor", "claude"]
        assert args.CONSTRAINTS == ["lib@<2.0.0"]
        assert args.PRIORITIES == ["a=5"]
        assert args.FORCE and args.DEV
        assert args.LOG_LEVEL == "DEBUG"
        assert args.TARGET == "."

    def test_uninstall_flags(self):
        args = parse_args(["uninstall", "demo", "-r", "--target", "/ws"])
        assert (args.package, args.RECURSIVE, args.TARGET) == ("demo", True, "/ws")

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_bad_loglevel(self):
        with pytest.raises(SystemExit):
            parse_args(["list", "--loglevel", "chatty"])


class TestCliConfig:
    def test_constraints(self):
        assert parse_constraint_flags(["lib@^1.0.0", "@s/p@<2"]) == [("lib", "^1.0.0"), ("@s/p", "<2")]

    @pytest.mark.parametrize("value", ["lib", "lib@", "lib@what?!"])
    def test_bad_constraints(self, value):
        with pytest.raises(ConfigurationError):
            parse_constraint_flags([value])

    def test_priorities(self):
        assert parse_priority_flags(["Lib=5", "other=-1"]) == {"lib": 5, "other": -1}

    @pytest.mark.parametrize("value", ["lib", "=3", "lib=high"])
    def test_bad_priorities(self, value):
        with pytest.raises(ConfigurationError):
            parse_priority_flags([value])

    def test_overrides(self, monkeypatch):
        monkeypatch.setattr(Constants, "REGISTRY_DIR", "~/.packweave/registry")
        monkeypatch.setattr(Constants, "REGISTRY_URL", "")
        apply_cli_overrides(parse_args(["list", "--registry-dir", "/reg", "--registry-url", "https://r.example"]))
        assert Constants.REGISTRY_DIR == "/reg"
        assert Constants.REGISTRY_URL == "https://r.example"


class TestPrompt:
    def test_pick_by_number(self):
        with patch("builtins.input", return_value="2"):
            assert prompt_conflict("c", ["^1", "^2"], ["a", "b"], ["2.0.0", "1.0.0"]) == "1.0.0"

    def test_retry_then_version(self):
        with patch("builtins.input", side_effect=["9.9.9", "2.0.0"]):
            assert prompt_conflict("c", ["^1"], ["a"], ["2.0.0"]) == "2.0.0"

    def test_empty_skips(self):
        with patch("builtins.input", return_value=""):
            assert prompt_conflict("c", ["^1"], ["a"], ["2.0.0"]) is None

    def test_eof_aborts(self):
        with patch("builtins.input", side_effect=EOFError):
            with pytest.raises(ResolutionAborted):
                prompt_conflict("c", ["^1"], ["a"], ["2.0.0"])


@pytest.fixture
def cli(tmp_path, monkeypatch):
    """Workspace plus registry; CLI globals are restored after each test."""
    registry = tmp_path / "registry"
    target = tmp_path / "ws"
    registry.mkdir()
    target.mkdir()
    monkeypatch.setattr(Constants, "REGISTRY_DIR", str(registry))
    monkeypatch.setattr(Constants, "REGISTRY_URL", "")
    monkeypatch.setattr(Constants, "PLATFORMS_FILE", "")
    monkeypatch.setattr(Constants, "CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv(Constants.ENV_LOG_LEVEL, "INFO")

    def publish(name, version, files=None, dependencies=None):
        directory = registry / name / version
        directory.mkdir(parents=True)
        manifest = {"name": name, "version": version}
        if dependencies:
            manifest["dependencies"] = dependencies
        (directory / "packweave.yml").write_text(yaml.safe_dump(manifest))
        for rel, content in (files or {}).items():
            path = directory / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)

    def run(*argv):
        with pytest.raises(SystemExit) as excinfo:
            main(list(argv) + ["--target", str(target), "-q"])
        return excinfo.value.code

    return target, publish, run


class TestMain:
    def test_install_list_uninstall(self, cli, capsys):
        target, publish, run = cli
        publish("demo", "1.0.0", {"rules/a.md": "A\n"})

        assert run("install", "demo") == ExitCodes.SUCCESS.value
        assert (target / ".cursor" / "rules" / "a.mdc").exists()
        capsys.readouterr()

        assert run("list") == ExitCodes.SUCCESS.value
        listed = json.loads(capsys.readouterr().out)
        assert listed == [{
            "name": "demo",
            "version": "1.0.0",
            "path": "registry:demo",
            "dependencies": [],
            "targets": [".cursor/rules/a.mdc"],
        }]

        assert run("uninstall", "demo") == ExitCodes.SUCCESS.value
        assert not (target / ".cursor" / "rules" / "a.mdc").exists()

    def test_uninstall_unknown(self, cli):
        _, _, run = cli
        assert run("uninstall", "ghost") == ExitCodes.FILE_ERROR.value

    def test_missing_package(self, cli):
        _, _, run = cli
        assert run("install", "ghost") == ExitCodes.FILE_ERROR.value

    def test_bad_constraint_flag(self, cli):
        _, _, run = cli
        assert run("install", "--constraint", "lib") == ExitCodes.FILE_ERROR.value

    def test_unresolved_conflict(self, cli):
        _, publish, run = cli
        publish("a", "1.0.0", dependencies=["c@^1.0.0"])
        publish("b", "1.0.0", dependencies=["c@^2.0.0"])
        publish("c", "1.0.0")
        publish("c", "2.0.0")
        assert run("install", "a", "b") == ExitCodes.UNRESOLVED_CONFLICTS.value

    def test_interactive_abort(self, cli):
        _, publish, run = cli
        publish("a", "1.0.0", dependencies=["c@^1.0.0"])
        publish("b", "1.0.0", dependencies=["c@^2.0.0"])
        publish("c", "1.0.0")
        publish("c", "2.0.0")
        with patch("builtins.input", side_effect=KeyboardInterrupt):
            assert run("install", "a", "b", "-i") == ExitCodes.ABORTED.value

    def test_warnings_exit_code(self, cli):
        _, publish, run = cli
        publish("a", "1.0.0", dependencies=["ghost"])
        assert run("install", "a") == ExitCodes.SUCCESS.value
        assert run("install", "a", "--force", "--error-on-warnings") == ExitCodes.EXIT_WARNINGS.value

    def test_platforms(self, cli, capsys):
        target, _, run = cli
        (target / ".claude").mkdir()
        assert run("platforms") == ExitCodes.SUCCESS.value
        payload = {p["id"]: p for p in json.loads(capsys.readouterr().out)}
        assert payload["claude"]["detected"] and payload["claude"]["selected"]
        assert not payload["cursor"]["selected"]
