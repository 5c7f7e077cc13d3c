"""Tests for the session command group."""

import json
from typing import Any

import pytest
from click.testing import CliRunner

from faultpath.cli import cli


def _ok(runner: CliRunner, *args: str) -> dict[str, Any]:
    result = runner.invoke(cli, ["--json", *args])
    assert result.exit_code == 0, result.output
    return json.loads(result.output)["data"]


def _seed(runner: CliRunner) -> None:
    root = _ok(runner, "issue", "create", "printer", "Does it power on?")["root_node"]["id"]
    plug = _ok(runner, "node", "create", "printer", "conclusion", "Plug it in")["node"]["id"]
    ok = _ok(runner, "node", "create", "printer", "conclusion", "Print a test page")["node"]["id"]
    _ok(runner, "connection", "create", root, plug, "No", "--order", "0")
    _ok(runner, "connection", "create", root, ok, "Yes", "--order", "1")


def _option(data: dict[str, Any], label: str) -> str:
    return next(o["connection_id"] for o in data["options"] if o["label"] == label)


@pytest.mark.usefixtures("_isolated_workspace")
class TestSessionCommands:
    def test_walk_to_conclusion(self, cli_runner: CliRunner) -> None:
        _seed(cli_runner)
        start = _ok(cli_runner, "session", "start", "printer", "--tech", "alice", "--site", "HQ")
        assert start["state"] == "active"
        assert [o["label"] for o in start["options"]] == ["No", "Yes"]

        done = _ok(cli_runner, "session", "answer", start["session_id"], _option(start, "No"))
        assert done["state"] == "concluded"
        assert done["is_conclusion"] is True
        assert done["node"]["text"] == "Plug it in"

        history = _ok(cli_runner, "session", "history", start["session_id"])
        assert history["final_conclusion"] == "Plug it in"
        assert [s["connection_label"] for s in history["history"]] == ["No"]

    def test_answer_after_conclusion_fails(self, cli_runner: CliRunner) -> None:
        _seed(cli_runner)
        start = _ok(cli_runner, "session", "start", "printer")
        conn = _option(start, "No")
        _ok(cli_runner, "session", "answer", start["session_id"], conn)
        result = cli_runner.invoke(cli, ["session", "answer", start["session_id"], conn])
        assert result.exit_code == 1

    def test_start_unknown_category(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["session", "start", "ghost"])
        assert result.exit_code == 1
        assert "ERROR" in result.output

    def test_abandon_and_show(self, cli_runner: CliRunner) -> None:
        _seed(cli_runner)
        start = _ok(cli_runner, "session", "start", "printer")
        assert _ok(cli_runner, "session", "abandon", start["session_id"])["state"] == "abandoned"
        assert _ok(cli_runner, "session", "show", start["session_id"])["state"] == "abandoned"
        assert cli_runner.invoke(cli, ["session", "abandon", start["session_id"]]).exit_code == 1

    def test_show_renders_question(self, cli_runner: CliRunner) -> None:
        _seed(cli_runner)
        start = _ok(cli_runner, "session", "start", "printer")
        result = cli_runner.invoke(cli, ["session", "show", start["session_id"]])
        assert result.exit_code == 0
        assert "Does it power on?" in result.output
        assert "Question" in result.output

    def test_list_and_filters(self, cli_runner: CliRunner) -> None:
        _seed(cli_runner)
        first = _ok(cli_runner, "session", "start", "printer", "--tech", "alice")
        _ok(cli_runner, "session", "answer", first["session_id"], _option(first, "Yes"))
        _ok(cli_runner, "session", "start", "printer", "--tech", "bob")

        assert _ok(cli_runner, "session", "list")["total"] == 2
        concluded = _ok(cli_runner, "session", "list", "--state", "concluded")
        assert [i["session_id"] for i in concluded["items"]] == [first["session_id"]]
        assert _ok(cli_runner, "session", "list", "--tech", "bob")["total"] == 1
        assert _ok(cli_runner, "session", "list", "--search", "test page")["total"] == 1
        page = _ok(cli_runner, "session", "list", "--limit", "1", "--offset", "1")
        assert page["count"] == 1
        assert page["offset"] == 1

    def test_stats(self, cli_runner: CliRunner) -> None:
        _seed(cli_runner)
        start = _ok(cli_runner, "session", "start", "printer")
        _ok(cli_runner, "session", "answer", start["session_id"], _option(start, "Yes"))
        _ok(cli_runner, "session", "start", "printer")

        data = _ok(cli_runner, "session", "stats")
        assert data["total_sessions"] == 2
        assert data["concluded"] == 1
        assert data["active"] == 1
        assert data["average_steps_to_conclusion"] == 1.0
        assert data["top_conclusions"][0]["conclusion"] == "Print a test page"
