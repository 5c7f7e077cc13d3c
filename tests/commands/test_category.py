"""Tests for the category command group."""

import json
from typing import Any

import pytest
from click.testing import CliRunner

from faultpath.cli import cli


def _ok(runner: CliRunner, *args: str) -> dict[str, Any]:
    result = runner.invoke(cli, ["--json", *args])
    assert result.exit_code == 0, result.output
    return json.loads(result.output)["data"]


@pytest.mark.usefixtures("_isolated_workspace")
class TestCategoryCommands:
    def _seed(self, runner: CliRunner) -> None:
        _ok(runner, "node", "create", "printer", "question", "Is it on?", "--display", "Hardware")
        _ok(runner, "node", "create", "printer", "conclusion", "Plug it in", "--display", "Hardware")
        _ok(runner, "node", "create", "vpn", "question", "Connected?", "--display", "Network")

    def test_list(self, cli_runner: CliRunner) -> None:
        self._seed(cli_runner)
        items = _ok(cli_runner, "category", "list")["items"]
        assert items == [{"name": "Hardware", "node_count": 2}, {"name": "Network", "node_count": 1}]

    def test_rename(self, cli_runner: CliRunner) -> None:
        self._seed(cli_runner)
        assert _ok(cli_runner, "category", "rename", "Hardware", "Devices")["updated"] == 2
        names = [i["name"] for i in _ok(cli_runner, "category", "list")["items"]]
        assert names == ["Devices", "Network"]
        assert _ok(cli_runner, "category", "rename", "Hardware", "Devices")["updated"] == 0

    def test_delete_keeps_nodes(self, cli_runner: CliRunner) -> None:
        self._seed(cli_runner)
        assert _ok(cli_runner, "category", "delete", "Network")["updated"] == 1
        assert _ok(cli_runner, "node", "list", "--category", "vpn")["count"] == 1
        assert _ok(cli_runner, "category", "list")["count"] == 1

    def test_rendered_list(self, cli_runner: CliRunner) -> None:
        self._seed(cli_runner)
        result = cli_runner.invoke(cli, ["category", "list"])
        assert result.exit_code == 0
        assert "2 categories" in result.output
