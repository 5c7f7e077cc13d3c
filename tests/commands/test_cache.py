"""Tests for the cache command group."""

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
class TestCacheCommands:
    def test_stats_lists_every_cache(self, cli_runner: CliRunner) -> None:
        caches = _ok(cli_runner, "cache", "stats")["caches"]
        assert [c["name"] for c in caches] == ["graph", "tree", "aggregate"]
        assert all(c["total_entries"] == 0 for c in caches)

    def test_stats_honours_config(self, cli_runner: CliRunner, tmp_path: Any) -> None:
        (tmp_path / "faultpath.toml").write_text("[cache.tree]\nmax_size = 7\n")
        caches = {c["name"]: c for c in _ok(cli_runner, "cache", "stats")["caches"]}
        assert caches["tree"]["max_size"] == 7

    def test_cleanup(self, cli_runner: CliRunner) -> None:
        data = _ok(cli_runner, "cache", "cleanup")
        assert data["total"] == 0
        assert set(data["removed"]) == {"graph", "tree", "aggregate"}

    def test_clear_one(self, cli_runner: CliRunner) -> None:
        assert set(_ok(cli_runner, "cache", "clear", "--name", "tree")["removed"]) == {"tree"}

    def test_clear_unknown(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["cache", "clear", "--name", "bogus"])
        assert result.exit_code == 1
        assert "Unknown cache" in result.output
