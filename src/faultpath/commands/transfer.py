"""Commands: JSON export and import of issue graphs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from faultpath.commands._base import FpCommand
from faultpath.services.result import ErrorCode, failure
from faultpath.services.transfer import TransferService

if TYPE_CHECKING:
    from faultpath.commands._context import AppContext

_EXPORT_EXAMPLES = """\
  faultpath export printer
  faultpath export printer --output printer.json
  faultpath export --all --output backup.json"""

_IMPORT_EXAMPLES = """\
  faultpath import printer.json
  faultpath --json import backup.json"""


def _payload_documents(payload: Any) -> list[Any] | None:
    """Accept a single document, a list of documents, or ``{"documents": [...]}``."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        if isinstance(payload.get("documents"), list):
            return payload["documents"]
        return [payload]
    return None


@click.command("export", cls=FpCommand, examples=_EXPORT_EXAMPLES)
@click.argument("category", required=False)
@click.option("--all", "export_all", is_flag=True, help="Export every active issue.")
@click.option("-o", "--output", type=click.Path(dir_okay=False), default=None, help="Write JSON here.")
@click.pass_obj
def export_cmd(app: AppContext, category: str | None, export_all: bool, output: str | None) -> None:
    """Export one issue (or all of them) as versioned JSON documents."""
    if export_all == (category is not None):
        raise click.UsageError("Pass either CATEGORY or --all.")

    svc = TransferService(app.store)
    result = svc.export_all() if export_all else svc.export(category or "")
    if result.ok and output is not None:
        body = result.data if export_all else result.data["document"]
        path = Path(output)
        path.write_text(json.dumps(body, indent=2) + "\n", encoding="utf-8")
        result = result.model_copy(update={"data": {**result.data, "output": str(path)}})
    app.emit(result)


@click.command("import", cls=FpCommand, examples=_IMPORT_EXAMPLES)
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def import_cmd(app: AppContext, source: str) -> None:
    """Import issue documents from a JSON file."""
    op = "import_documents"
    try:
        payload = json.loads(Path(source).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        app.emit(failure(op, ErrorCode.VALIDATION_FAILED, f"Cannot read {source}: {exc}"))
        return

    documents = _payload_documents(payload)
    if documents is None:
        app.emit(
            failure(op, ErrorCode.VALIDATION_FAILED, "Expected a document object or a list of documents")
        )
        return
    app.emit(TransferService(app.store).import_documents(documents))
