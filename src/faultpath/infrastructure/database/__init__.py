"""Relational storage: engine setup and table definitions via SQLAlchemy Core."""

from faultpath.infrastructure.database.engine import create_db_engine, init_database
from faultpath.infrastructure.database.schema import (
    connections,
    metadata,
    nodes,
    session_steps,
    sessions,
)

__all__ = [
    "connections",
    "create_db_engine",
    "init_database",
    "metadata",
    "nodes",
    "session_steps",
    "sessions",
]
