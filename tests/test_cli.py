"""Tests for the command-line interface in offline mode."""

import json

import pytest
import yaml
from click.testing import CliRunner

from todo_sync.cli import cli
from todo_sync.config import Config


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.setenv("TODO_SYNC_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("TODO_SYNC_API_URL", raising=False)
    Config.reset()
    yield CliRunner()
    Config.reset()


def stored_todos(tmp_path):
    return json.loads((tmp_path / "todos.json").read_text())


class TestOfflineCommands:
    """Local CRUD through the CLI."""

    def test_add_and_list(self, runner, tmp_path):
        result = runner.invoke(cli, ["add", "Buy milk", "--priority", "high", "--due", "2030-01-01"])
        assert result.exit_code == 0, result.output
        assert "Added" in result.output

        todos = stored_todos(tmp_path)
        assert todos[0]["title"] == "Buy milk"
        assert todos[0]["priority"] == "high"
        assert todos[0]["server_id"] is None
        assert todos[0]["due_date"].startswith("2030-01-01")

        listed = runner.invoke(cli, ["list"])
        assert listed.exit_code == 0
        assert "Buy milk" in listed.output

    def test_invalid_due_date(self, runner):
        result = runner.invoke(cli, ["add", "x", "--due", "tomorrow"])
        assert result.exit_code == 2
        assert "Invalid date" in result.output

    def test_toggle_by_id_prefix(self, runner, tmp_path):
        runner.invoke(cli, ["add", "Write report"])
        todo_id = stored_todos(tmp_path)[0]["id"]

        result = runner.invoke(cli, ["toggle", todo_id[:8]])

        assert result.exit_code == 0, result.output
        assert "Completed" in result.output
        assert stored_todos(tmp_path)[0]["is_completed"] is True

    def test_edit(self, runner, tmp_path):
        runner.invoke(cli, ["add", "Draft"])
        todo_id = stored_todos(tmp_path)[0]["id"]

        result = runner.invoke(cli, ["edit", todo_id, "--title", "Final", "--priority", "low"])

        assert result.exit_code == 0, result.output
        todo = stored_todos(tmp_path)[0]
        assert todo["title"] == "Final"
        assert todo["priority"] == "low"

    def test_unknown_id_fails(self, runner):
        result = runner.invoke(cli, ["delete", "nope"])
        assert result.exit_code == 1
        assert "No todo matches" in result.output

    def test_delete_and_clear_completed(self, runner, tmp_path):
        runner.invoke(cli, ["add", "keep"])
        runner.invoke(cli, ["add", "done"])
        runner.invoke(cli, ["add", "remove"])
        ids = {todo["title"]: todo["id"] for todo in stored_todos(tmp_path)}

        runner.invoke(cli, ["toggle", ids["done"]])
        assert runner.invoke(cli, ["delete", ids["remove"]]).exit_code == 0
        result = runner.invoke(cli, ["clear-completed"])

        assert "Cleared 1 completed todos" in result.output
        assert [todo["title"] for todo in stored_todos(tmp_path)] == ["keep"]

    def test_status(self, runner):
        runner.invoke(cli, ["add", "pending"])

        result = runner.invoke(cli, ["status"])

        assert result.exit_code == 0
        assert "Offline" in result.output
        assert "Unsynced changes: 1" in result.output

    def test_sync_requires_online_mode(self, runner):
        result = runner.invoke(cli, ["sync"])

        assert result.exit_code == 1
        assert "online mode" in result.output

    def test_config_file_is_created(self, runner, tmp_path):
        runner.invoke(cli, ["status"])
        assert (tmp_path / "config.yaml").exists()

    def test_malformed_config_falls_back_to_defaults(self, runner, tmp_path):
        (tmp_path / "config.yaml").write_text("- not\n- a mapping\n")

        result = runner.invoke(cli, ["status"])

        assert result.exit_code == 0, result.output
        assert "Offline" in result.output

    def test_mode_switch_saves_to_given_config_file(self, runner, tmp_path):
        custom = tmp_path / "elsewhere" / "custom.yaml"
        custom.parent.mkdir()
        custom.write_text(yaml.dump({"mode": "online", "data_dir": str(tmp_path)}))

        result = runner.invoke(cli, ["--config", str(custom), "mode", "offline"])

        assert result.exit_code == 0, result.output
        assert yaml.safe_load(custom.read_text())["mode"] == "offline"
        assert not (tmp_path / "config.yaml").exists()
