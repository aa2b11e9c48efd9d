"""Tests for the management console commands."""

import json
import logging

import pytest

import yardmaster.local.console as console
from yardmaster.main import main
from yardmaster.local.console.handler import component_status


@pytest.fixture
def console_project(project):
    console.set_project(project)
    yield project
    console.set_project(None)


class TestExecuteCommand:

    def test_create_and_describe(self, console_project, capsys):
        assert console.execute_command("create", ["web", "fake", '{"value":', '"x"}']) is False
        out = capsys.readouterr().out
        assert "Created web" in out

        console.execute_command("describe", [])
        out = capsys.readouterr().out
        assert "web" in out
        assert "initialized" in out

    def test_update_rename_delete(self, console_project):
        console.execute_command("create", ["web", "fake", "{}"])
        console.execute_command("update", ["web", '{"value": "y"}'])
        assert json.loads(console_project.describe_components()[0].spec) == {"value": "y"}
        console.execute_command("rename", ["web", "api"])
        assert console_project.describe_components()[0].name == "api"
        console.execute_command("delete", ["api"])
        assert console_project.describe_components() == []

    def test_dispose_then_reap(self, console_project, capsys):
        console.execute_command("create", ["web", "fake", "{}"])
        console.execute_command("dispose", ["web"])
        assert console_project.describe_components()[0].disposed is not None
        console.execute_command("reap", [])
        assert "Removed 1" in capsys.readouterr().out
        assert console_project.describe_components() == []

    def test_apply_from_file(self, console_project, tmp_path, capsys):
        manifest = tmp_path / "manifest.json"
        manifest.write_text(json.dumps({"a": {"type": "fake", "spec": {}}}))
        console.execute_command("apply", [str(manifest)])
        assert "created: a" in capsys.readouterr().out
        assert [r.name for r in console_project.describe_components()] == ["a"]

    def test_delete_all(self, console_project):
        for name in ["a", "b"]:
            console.execute_command("create", [name, "fake", "{}"])
        console.execute_command("delete-all", [])
        assert console_project.describe_components() == []

    def test_errors_are_logged_not_raised(self, console_project, caplog):
        with caplog.at_level(logging.ERROR):
            assert console.execute_command("update", ["missing", "{}"]) is False
        assert "no component named 'missing'" in caplog.text

    def test_unsupported_type_is_reported(self, console_project, caplog):
        with caplog.at_level(logging.ERROR):
            console.execute_command("create", ["x", "bogus", "{}"])
        assert "unsupported component type: 'bogus'" in caplog.text

    def test_usage_for_missing_arguments(self, console_project, capsys):
        console.execute_command("create", ["web"])
        assert "Usage: create" in capsys.readouterr().out
        assert console_project.describe_components() == []

    def test_logs_rejects_non_process_components(self, console_project, capsys):
        console.execute_command("create", ["web", "fake", "{}"])
        console.execute_command("logs", ["web"])
        assert "only process output" in capsys.readouterr().out

    def test_unknown_command(self, console_project, caplog):
        with caplog.at_level(logging.INFO):
            assert console.execute_command("frobnicate", []) is False
        assert "Unknown command" in caplog.text

    def test_exit(self, console_project):
        assert console.execute_command("exit", []) is True

    def test_help(self, console_project, capsys):
        console.execute_command("help", [])
        out = capsys.readouterr().out
        for command in ["create", "update", "refresh", "dispose", "delete-all", "apply", "describe", "reap"]:
            assert command in out


class TestRunCommand:

    def test_success_exits_zero(self, console_project):
        assert console.run_command("create", ["web", "fake", "{}"]) == 0
        assert [r.name for r in console_project.describe_components()] == ["web"]

    def test_failed_command_exits_nonzero(self, console_project, caplog):
        with caplog.at_level(logging.ERROR):
            assert console.run_command("update", ["missing", "{}"]) == 1
        assert "no component named 'missing'" in caplog.text

    def test_unknown_command_exits_nonzero(self, console_project):
        assert console.run_command("frobnicate", []) == 1

    def test_main_returns_command_status(self, console_project, monkeypatch):
        monkeypatch.setattr("yardmaster.main.setup_logging", lambda *args, **kwargs: None)
        assert main(["create", "web", "fake", "{}"]) == 0
        assert main(["delete", "missing"]) == 1


class TestComponentStatus:

    def test_statuses(self, project):
        project.create_component("a", "fake", "{}")
        assert component_status(project.describe_components()[0]) == "initialized"
        project.dispose_component("a")
        assert component_status(project.describe_components()[0]) == "disposed"
