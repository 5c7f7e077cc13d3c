"""InitService — create a faultpath workspace on disk.

A workspace is a directory holding ``faultpath.toml`` (optional, sparse)
and ``.faultpath/faultpath.db``. Initialization is idempotent: tables are
created if missing and an existing config file is never overwritten.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy.exc import DBAPIError, OperationalError

from faultpath.config.discovery import CONFIG_FILENAME
from faultpath.infrastructure.database.engine import database_path, init_database
from faultpath.services.base import STORAGE_ERROR_MESSAGE
from faultpath.services.result import ErrorCode, ServiceResult, failure
from faultpath.services.telemetry import traced

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """\
# faultpath configuration. Only overrides belong here; defaults are built in.

[graph]
# allow_cycles = true
# root_suffix = "_start"

[cache.graph]
# ttl_seconds = 600
# max_size = 50
"""


class InitService:
    """Workspace bootstrap; runs before any Store exists."""

    @staticmethod
    @traced
    def init_workspace(root: Path, *, write_config: bool = True) -> ServiceResult:
        op = "init"
        root = root.resolve()
        try:
            root.mkdir(parents=True, exist_ok=True)
            engine = init_database(root)
            engine.dispose()
        except (OperationalError, DBAPIError, OSError):
            logger.exception("Workspace initialization failed for %s", root)
            return failure(op, ErrorCode.STORAGE_ERROR, STORAGE_ERROR_MESSAGE, retryable=True)

        config_path = root / CONFIG_FILENAME
        created_config = False
        if write_config and not config_path.exists():
            config_path.write_text(CONFIG_TEMPLATE, encoding="utf-8")
            created_config = True

        return ServiceResult(
            ok=True,
            op=op,
            data={
                "root": str(root),
                "database": str(database_path(root)),
                "config": str(config_path) if config_path.exists() else None,
                "created_config": created_config,
            },
        )
