"""Shared pytest fixtures and test helpers for faultpath tests."""

from __future__ import annotations

from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner
from sqlalchemy.engine import Engine

from faultpath.config.settings import FaultpathSettings
from faultpath.infrastructure.database.engine import init_database
from faultpath.infrastructure.store import Store


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of settings resolution."""
    monkeypatch.delenv("FAULTPATH_CONFIG", raising=False)
    monkeypatch.delenv("FAULTPATH_DATA_ROOT", raising=False)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def db_engine(tmp_path: Path) -> Generator[Engine]:
    """Initialized SQLite engine with all tables created."""
    engine = init_database(tmp_path)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def settings(tmp_path: Path) -> FaultpathSettings:
    return FaultpathSettings.from_cli(data_root=tmp_path)


@pytest.fixture
def store(settings: FaultpathSettings) -> Generator[Store]:
    """Fully initialized store on a temp directory."""
    s = Store(settings)
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def acyclic_store(tmp_path: Path) -> Generator[Store]:
    """Store with ``graph.allow_cycles`` turned off."""
    (tmp_path / "faultpath.toml").write_text("[graph]\nallow_cycles = false\n")
    s = Store(FaultpathSettings.from_cli(data_root=tmp_path))
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def _isolated_workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to a temp workspace so the CLI creates an isolated database.

    Use via ``@pytest.mark.usefixtures("_isolated_workspace")`` on command
    test classes.
    """
    monkeypatch.chdir(tmp_path)


# ---------------------------------------------------------------------------
# Shared test helpers (used across service test modules)
# ---------------------------------------------------------------------------


def ok_data(result: Any) -> dict[str, Any]:
    """Assert a ServiceResult succeeded and return its data."""
    assert result.ok, result.error
    return result.data


@dataclass
class PrinterIssue:
    """Ids of the sample ``printer`` graph built by :func:`build_printer_issue`.

    Shape::

        root "Does it power on?"
          ├─ No  → conclusion "Check the power cable"
          └─ Yes → question "Is there a paper jam?"
                     ├─ Yes → conclusion "Clear the paper path"
                     └─ No  → conclusion "Call a technician"
    """

    category: str
    root: str
    jam: str
    power: str
    clear: str
    technician: str
    connections: dict[str, str] = field(default_factory=dict)


def build_printer_issue(store: Store, category: str = "printer") -> PrinterIssue:
    from faultpath.services.graph import GraphService
    from faultpath.services.issues import IssueService

    root = ok_data(IssueService(store).create_issue(category, "Does it power on?"))["root_node"]["id"]
    graph = GraphService(store)

    def node(kind: str, text: str) -> str:
        return ok_data(graph.create_node(category, kind, text))["node"]["id"]

    def connect(src: str, dst: str, label: str, order: int) -> str:
        return ok_data(graph.create_connection(src, dst, label, order))["connection"]["id"]

    power = node("conclusion", "Check the power cable")
    jam = node("question", "Is there a paper jam?")
    clear = node("conclusion", "Clear the paper path")
    technician = node("conclusion", "Call a technician")
    issue = PrinterIssue(category, root, jam, power, clear, technician)
    issue.connections = {
        "root_no": connect(root, power, "No", 0),
        "root_yes": connect(root, jam, "Yes", 1),
        "jam_yes": connect(jam, clear, "Yes", 0),
        "jam_no": connect(jam, technician, "No", 1),
    }
    return issue


@pytest.fixture
def printer(store: Store) -> PrinterIssue:
    return build_printer_issue(store)


@pytest.fixture
def make_issue(store: Store) -> Callable[[str], PrinterIssue]:
    """Factory building the sample graph under any category name."""
    return lambda category: build_printer_issue(store, category)
