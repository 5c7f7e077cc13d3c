"""BaseService — abstract foundation for all faultpath services.

Every service receives a :class:`Store` at construction time. The Store
provides transactional access to the database, the caches and the graph.
Services own their transaction boundaries via ``self._store.transaction()``.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Concatenate

from sqlalchemy.exc import DBAPIError, OperationalError

from faultpath.services.result import ErrorCode, ServiceResult, failure

if TYPE_CHECKING:
    from faultpath.infrastructure.store import Store

logger = logging.getLogger(__name__)

STORAGE_ERROR_MESSAGE = "The data store is temporarily unavailable; retry the operation."


class BaseService:
    """Abstract base for all service-layer classes.

    Subclasses implement domain-specific operations (graph CRUD, issues,
    traversal, transfer, categories) using the store for all data access.

    Usage::

        class GraphService(BaseService):
            @storage_guard("create_node")
            def create_node(self, category: str, ...) -> ServiceResult:
                with self._store.transaction() as txn:
                    ...
    """

    def __init__(self, store: Store) -> None:
        self._store = store

    @property
    def store(self) -> Store:
        return self._store


def storage_guard[S: BaseService, **P](
    op: str,
) -> Callable[
    [Callable[Concatenate[S, P], ServiceResult]],
    Callable[Concatenate[S, P], ServiceResult],
]:
    """Decorator: convert driver failures into a ``STORAGE_ERROR`` result.

    The exception is logged with its traceback; the returned message is
    generic and never carries driver text. Any transaction opened by the
    wrapped method has already rolled back when the handler runs.
    """

    def decorator(
        func: Callable[Concatenate[S, P], ServiceResult],
    ) -> Callable[Concatenate[S, P], ServiceResult]:
        @functools.wraps(func)
        def wrapper(self: S, *args: P.args, **kwargs: P.kwargs) -> ServiceResult:
            try:
                return func(self, *args, **kwargs)
            except (OperationalError, DBAPIError):
                logger.exception("Storage failure during %s", op)
                return failure(op, ErrorCode.STORAGE_ERROR, STORAGE_ERROR_MESSAGE, retryable=True)

        return wrapper

    return decorator
