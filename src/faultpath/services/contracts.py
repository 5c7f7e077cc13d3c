"""Typed payload contracts for service boundaries.

These models validate operation payload shapes before they leave the
service layer so key regressions (for example ``options`` vs ``choices``)
fail fast in tests and during development.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def dump_validated[T: BaseModel](model_cls: type[T], data: dict[str, Any]) -> dict[str, Any]:
    """Validate *data* against *model_cls* and return a normalized payload dict."""
    model = model_cls.model_validate(data)
    return model.model_dump(mode="json")


class OptionItem(BaseModel):
    """One answer offered at the current question."""

    connection_id: str
    label: str
    order_index: int
    target_node_id: str
    target_category: str
    display_category: str | None = None


class StepItem(BaseModel):
    """One recorded answer in a session's history."""

    position: int
    from_node_id: str
    from_node_text: str
    connection_id: str
    connection_label: str
    to_node_id: str
    to_node_text: str
    timestamp: str


class NavigationData(BaseModel):
    """Payload contract for ``start``, ``answer`` and ``get_session``."""

    model_config = ConfigDict(extra="allow")

    session_id: str
    category: str
    state: str
    version: int
    node: dict[str, Any]
    is_conclusion: bool
    options: list[OptionItem] = Field(default_factory=list)
    conclusion: str | None = None
    history: list[StepItem] = Field(default_factory=list)


class CompletenessData(BaseModel):
    """Payload contract for ``GraphService.is_complete``."""

    category: str
    complete: bool
    root_node_id: str | None
    incomplete_nodes: list[str]
    unreachable_nodes: list[str]
    cycles: list[list[str]]


class ImportItem(BaseModel):
    """One document's outcome within an import batch."""

    model_config = ConfigDict(extra="allow")

    index: int
    category: str | None = None


class ImportErrorItem(ImportItem):
    code: str
    message: str


class ImportResultData(BaseModel):
    """Payload contract for ``TransferService.import_documents``."""

    successes: list[ImportItem]
    errors: list[ImportErrorItem]


class SessionStatsData(BaseModel):
    """Payload contract for ``TraversalService.stats``."""

    total_sessions: int
    active: int
    concluded: int
    abandoned: int
    average_steps_to_conclusion: float
    top_conclusions: list[dict[str, Any]]
    by_category: list[dict[str, Any]]
