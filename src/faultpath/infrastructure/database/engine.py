"""Database engine setup for SQLite with WAL mode.

SQLite is the bundled relational store: WAL mode for concurrent readers,
enforced foreign keys, ACID transactions for cascades and imports.
The DB is stored at {data_root}/.faultpath/faultpath.db unless the
``[database] url`` setting points elsewhere.

SQLAlchemy Core (not ORM) is used: every service call is a short unit of
work with explicit transaction boundaries, so sessions and identity maps
buy nothing.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from faultpath.infrastructure.database.schema import metadata

DATA_DIRNAME = ".faultpath"
DB_FILENAME = "faultpath.db"


def create_db_engine(db_path: Path | str, *, echo: bool = False) -> Engine:
    """Create an engine with WAL mode and foreign keys enabled.

    *db_path* is a filesystem path, or a full SQLAlchemy URL when it
    contains ``://``.
    """
    url = str(db_path) if "://" in str(db_path) else f"sqlite:///{db_path}"
    engine = create_engine(url, echo=echo)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def database_path(data_root: Path) -> Path:
    """Location of the SQLite file for *data_root*."""
    return data_root / DATA_DIRNAME / DB_FILENAME


def init_database(data_root: Path, *, url: str | None = None, echo: bool = False) -> Engine:
    """Initialize the faultpath database.

    Creates ``{data_root}/.faultpath/`` and all tables from
    :data:`schema.metadata`. When *url* is given it is used verbatim and no
    directory is created.

    Idempotent — safe to call on an existing database.

    Returns the engine ready for use.
    """
    if url is None:
        db_path = database_path(data_root)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_db_engine(db_path, echo=echo)
    else:
        engine = create_db_engine(url, echo=echo)

    metadata.create_all(engine)
    return engine
