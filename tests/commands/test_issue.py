"""Tests for the issue command group."""

import json
from typing import Any

import pytest
from click.testing import CliRunner

from faultpath.cli import cli


def _ok(runner: CliRunner, *args: str) -> dict[str, Any]:
    result = runner.invoke(cli, ["--json", *args])
    assert result.exit_code == 0, result.output
    return json.loads(result.output)["data"]


def _seed(runner: CliRunner) -> dict[str, str]:
    """Printer issue: root → No → conclusion, root → Yes → unanswered question."""
    root = _ok(runner, "issue", "create", "printer", "Does it power on?")["root_node"]["id"]
    plug = _ok(runner, "node", "create", "printer", "conclusion", "Plug it in")["node"]["id"]
    jam = _ok(runner, "node", "create", "printer", "question", "Paper jam?")["node"]["id"]
    _ok(runner, "connection", "create", root, plug, "No", "--order", "0")
    _ok(runner, "connection", "create", root, jam, "Yes", "--order", "1")
    return {"root": root, "plug": plug, "jam": jam}


@pytest.mark.usefixtures("_isolated_workspace")
class TestIssueCommands:
    def test_create_and_list(self, cli_runner: CliRunner) -> None:
        data = _ok(cli_runner, "issue", "create", "printer", "Does it power on?", "--display", "Hardware")
        assert data["root_node"]["semantic_id"] == "printer_start"

        items = _ok(cli_runner, "issue", "list")["items"]
        assert [(i["category"], i["root_question"]) for i in items] == [("printer", "Does it power on?")]

    def test_create_duplicate_fails(self, cli_runner: CliRunner) -> None:
        _ok(cli_runner, "issue", "create", "printer", "Does it power on?")
        result = cli_runner.invoke(cli, ["issue", "create", "printer", "Again?"])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_check_reports_unanswered_question(self, cli_runner: CliRunner) -> None:
        ids = _seed(cli_runner)
        data = _ok(cli_runner, "issue", "check", "printer")
        assert data["complete"] is False
        assert data["incomplete_nodes"] == [ids["jam"]]

    def test_activate_requires_force_when_incomplete(self, cli_runner: CliRunner) -> None:
        _seed(cli_runner)
        _ok(cli_runner, "issue", "deactivate", "printer")
        assert cli_runner.invoke(cli, ["issue", "activate", "printer"]).exit_code == 1
        data = _ok(cli_runner, "issue", "activate", "printer", "--force")
        assert data["is_active"] is True

    def test_deactivate_hides_graph(self, cli_runner: CliRunner) -> None:
        _seed(cli_runner)
        _ok(cli_runner, "issue", "deactivate", "printer")
        assert cli_runner.invoke(cli, ["issue", "graph", "printer"]).exit_code == 1
        assert _ok(cli_runner, "issue", "list")["items"][0]["is_active"] is False

    def test_update_relabels_and_deactivates(self, cli_runner: CliRunner) -> None:
        _seed(cli_runner)
        data = _ok(cli_runner, "issue", "update", "printer", "--display", "Peripherals", "--inactive")
        assert data["fields_changed"] == ["is_active", "display_category"]
        item = _ok(cli_runner, "issue", "list")["items"][0]
        assert (item["display_category"], item["is_active"]) == ("Peripherals", False)

    def test_update_activation_needs_force(self, cli_runner: CliRunner) -> None:
        _seed(cli_runner)
        _ok(cli_runner, "issue", "deactivate", "printer")
        refused = cli_runner.invoke(cli, ["issue", "update", "printer", "--active"])
        assert refused.exit_code == 1
        assert _ok(cli_runner, "issue", "update", "printer", "--active", "--force")["issue"]["is_active"] is True

    def test_update_without_changes_fails(self, cli_runner: CliRunner) -> None:
        _seed(cli_runner)
        result = cli_runner.invoke(cli, ["issue", "update", "printer"])
        assert result.exit_code == 1
        assert "Nothing to update" in result.output

    def test_graph(self, cli_runner: CliRunner) -> None:
        _seed(cli_runner)
        data = _ok(cli_runner, "issue", "graph", "printer")
        assert len(data["nodes"]) == 3
        assert len(data["connections"]) == 2

    def test_tree_renders_answers(self, cli_runner: CliRunner) -> None:
        _seed(cli_runner)
        result = cli_runner.invoke(cli, ["issue", "tree", "printer"])
        assert result.exit_code == 0
        assert "Category: printer" in result.output
        assert "No → Plug it in" in result.output
        assert "Yes → Paper jam?" in result.output

    def test_delete_requires_confirmation(self, cli_runner: CliRunner) -> None:
        _seed(cli_runner)
        aborted = cli_runner.invoke(cli, ["issue", "delete", "printer"], input="n\n")
        assert aborted.exit_code == 1
        assert _ok(cli_runner, "issue", "list")["count"] == 1

        data = _ok(cli_runner, "issue", "delete", "printer", "--yes")
        assert data["deleted_nodes"] == 3
        assert data["deleted_connections"] == 2
        assert _ok(cli_runner, "issue", "list")["count"] == 0

    def test_delete_missing(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["issue", "delete", "ghost", "--yes"])
        assert result.exit_code == 1
