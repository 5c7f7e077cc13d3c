"""Export/import document format.

A document carries one category's nodes and connections. Connections refer
to nodes by the ids they had when exported; importers remap them to freshly
generated ids.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from faultpath.domain.types import NodeType

CURRENT_VERSION = "1.0"
SUPPORTED_VERSIONS: frozenset[str] = frozenset({CURRENT_VERSION})


class ExportNode(BaseModel):
    """Node as it appears in an export document."""

    model_config = ConfigDict(extra="ignore")

    id: str
    node_type: NodeType
    text: str
    semantic_id: str | None = None
    display_category: str | None = None
    position_x: float | None = None
    position_y: float | None = None
    created_at: str | None = None


class ExportConnection(BaseModel):
    """Connection as it appears in an export document."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    from_node_id: str
    to_node_id: str
    label: str
    order_index: int = 0


class ExportDocument(BaseModel):
    """One category's graph, portable between stores."""

    model_config = ConfigDict(extra="ignore")

    version: str
    exported_at: str
    category: str
    nodes: list[ExportNode] = Field(default_factory=list)
    connections: list[ExportConnection] = Field(default_factory=list)


def is_supported_version(version: str, supported: frozenset[str] = SUPPORTED_VERSIONS) -> bool:
    """Whether documents of *version* can be imported."""
    return version in supported
