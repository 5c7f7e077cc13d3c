"""CategoryService — the registry of ``display_category`` labels.

Display categories are free-text UI groupings stored on nodes. Renaming or
clearing one is a bulk relabel: node text, type and connections are never
touched.
"""

from __future__ import annotations

from sqlalchemy import select, update

from faultpath.infrastructure.database.schema import nodes
from faultpath.services._helpers import clean_text, now_iso
from faultpath.services.base import BaseService, storage_guard
from faultpath.services.result import ErrorCode, ServiceResult, failure
from faultpath.services.telemetry import traced


class CategoryService(BaseService):
    """List, rename and clear display categories."""

    @traced
    @storage_guard("list_categories")
    def list_categories(self) -> ServiceResult:
        """Distinct display categories with node counts, sorted by name."""
        rows = self._store.queries.display_categories()
        items = [
            {"name": row["display_category"], "node_count": int(row["node_count"])} for row in rows
        ]
        return ServiceResult(
            ok=True, op="list_categories", data={"count": len(items), "items": items}
        )

    @traced
    @storage_guard("rename_category")
    def rename(self, old_name: str, new_name: str) -> ServiceResult:
        """Relabel every node in *old_name* as *new_name*.

        Idempotent: once applied, repeating the call updates nothing.
        """
        op = "rename_category"
        old = clean_text(old_name)
        new = clean_text(new_name)
        if old is None or new is None:
            return failure(
                op, ErrorCode.VALIDATION_FAILED, "Category names must not be empty"
            )
        updated = self._relabel(old, new)
        return ServiceResult(
            ok=True, op=op, data={"old_name": old, "new_name": new, "updated": updated}
        )

    @traced
    @storage_guard("delete_category")
    def delete(self, name: str) -> ServiceResult:
        """Clear *name* from every node that carries it."""
        op = "delete_category"
        label = clean_text(name)
        if label is None:
            return failure(op, ErrorCode.VALIDATION_FAILED, "Category name must not be empty")
        updated = self._relabel(label, None)
        return ServiceResult(ok=True, op=op, data={"name": label, "updated": updated})

    def _relabel(self, old: str, new: str | None) -> int:
        if old == new:
            return 0
        with self._store.transaction() as txn:
            affected = txn.conn.execute(
                select(nodes.c.category).where(nodes.c.display_category == old).distinct()
            ).scalars()
            txn.touch(*affected)
            return txn.conn.execute(
                update(nodes)
                .where(nodes.c.display_category == old)
                .values(display_category=new, updated_at=now_iso())
            ).rowcount
