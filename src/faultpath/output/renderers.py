"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO). The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json as _json
from typing import TYPE_CHECKING, Any

from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from faultpath.output.console import create_console, get_output, style_for_state, style_for_type

if TYPE_CHECKING:
    from rich.console import Console

    from faultpath.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"

    # For list results, return IDs only
    items = result.data.get("items")
    if items and isinstance(items, list):
        return "\n".join(_extract_id(item) for item in items if _extract_id(item))

    for key in ("node", "connection"):
        entity = result.data.get(key)
        if isinstance(entity, dict) and entity.get("id"):
            return str(entity["id"])
    if result.data.get("session_id"):
        return str(result.data["session_id"])

    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _extract_id(item: Any) -> str:
    """Extract an ID from a dict item (nodes, connections, sessions, issues)."""
    if isinstance(item, dict):
        for key in ("id", "session_id", "category", "name"):
            val = item.get(key)
            if val is not None:
                return str(val)
    return ""


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK status line."""
    label = Text("OK", style="fp.ok")
    op = Text(f"  {result.op}", style="fp.op")
    console.print(label, op, end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="fp.key")
    if key == "id" or key.endswith("_id"):
        v = Text(str(value), style="fp.id")
    elif key == "text":
        v = Text(str(value), style="fp.text")
    elif key == "node_type":
        v = Text(str(value), style=style_for_type(str(value)))
    elif key == "state":
        v = Text(str(value), style=style_for_state(str(value)))
    elif isinstance(value, (dict, list)):
        v = Text(_json.dumps(value, separators=(",", ":")))
    else:
        v = Text(str(value))
    console.print(k, v, end="")
    console.print()


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including telemetry span tree (verbose only)."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))

    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(
    console: Console,
    span_data: dict[str, Any],
    indent: int = 4,
) -> None:
    """Render a hierarchical span tree with color-coded timing."""
    prefix = " " * indent
    name = span_data.get("name", "?")
    duration = span_data.get("duration_ms", 0.0)

    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"

    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {name}"
    if span_data.get("annotations"):
        extras = [f"{ak}={av}" for ak, av in span_data["annotations"].items()]
        line += f"  ({', '.join(extras)})"

    console.print(line)

    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


def _table(*columns: str) -> Table:
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    for col in columns:
        table.add_column(col)
    return table


def _node_table(items: list[dict[str, Any]], *, verbose: bool = False) -> Table:
    """Build a Rich Table for a list of nodes."""
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("ID", style="fp.id", no_wrap=True)
    table.add_column("Type")
    table.add_column("Text", style="fp.text")
    table.add_column("Category")
    table.add_column("Display")
    if verbose:
        table.add_column("Semantic ID", style="dim")
        table.add_column("Active")
    for item in items:
        node_type = str(item.get("node_type", ""))
        row = [
            str(item.get("id", "")),
            Text(node_type, style=style_for_type(node_type)),
            str(item.get("text", "")),
            str(item.get("category", "")),
            str(item.get("display_category") or ""),
        ]
        if verbose:
            row.append(str(item.get("semantic_id") or ""))
            row.append("yes" if item.get("is_active") else "no")
        table.add_row(*row)
    return table


def _connection_table(items: list[dict[str, Any]]) -> Table:
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("ID", style="fp.id", no_wrap=True)
    table.add_column("#", justify="right")
    table.add_column("Label", style="fp.label")
    table.add_column("From", style="dim")
    table.add_column("To", style="dim")
    for item in items:
        table.add_row(
            str(item.get("id", "")),
            str(item.get("order_index", "")),
            str(item.get("label", "")),
            str(item.get("from_node_id", "")),
            str(item.get("to_node_id", "")),
        )
    return table


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="fp.error")
    op = Text(f"  {result.op}", style="fp.op")
    sep = Text(" — ")
    console.print(label, op, sep, msg)

    # Partial imports carry per-document outcomes alongside the error.
    if result.data.get("errors") is not None:
        _render_import_lists(result, console)

    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {v}")


# ── Graph renderers ───────────────────────────────────────────────────


def _render_entity(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render single node/connection/issue results (create, get, update)."""
    _status_line(console, result)
    for key in ("node", "connection", "root_node", "issue"):
        entity = result.data.get(key)
        if isinstance(entity, dict):
            for field in (
                "id",
                "node_type",
                "text",
                "category",
                "display_category",
                "label",
                "from_node_id",
                "to_node_id",
                "order_index",
            ):
                if entity.get(field) is not None:
                    _field(console, field, entity[field])
            if verbose:
                for field in ("semantic_id", "is_active", "created_at", "updated_at"):
                    if field in entity:
                        _field(console, field, entity[field])
    if result.data.get("fields_changed"):
        _field(console, "fields_changed", ", ".join(result.data["fields_changed"]))
    if verbose:
        _render_meta(console, result)


def _render_node_detail(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render a node with its outgoing answers as a panel."""
    node = result.data.get("node", {})
    lines = [f"type: {node.get('node_type', '')}", f"category: {node.get('category', '')}"]
    if node.get("display_category"):
        lines.append(f"display: {node['display_category']}")
    conns = result.data.get("connections", [])
    if conns:
        lines.append("")
        for conn in conns:
            target = conn.get("target") or {}
            lines.append(f"[{conn.get('order_index')}] {conn.get('label')} → {target.get('text', '?')}")
    title = f"{node.get('id', '?')} — {node.get('text', '')}"
    style = style_for_type(str(node.get("node_type", "")))
    console.print(Panel("\n".join(lines), title=title, border_style=style or "dim", expand=False))


def _render_node_list(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", result.data.get("nodes", []))
    console.print(_node_table(items, verbose=verbose))
    console.print(f"\n{result.data.get('count', len(items))} nodes")


def _render_connection_list(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    console.print(_connection_table(items))
    console.print(f"\n{result.data.get('count', len(items))} connections")


def _render_graph(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    console.print(Text(f"Category: {d.get('category', '')}", style="bold"))
    console.print(_node_table(d.get("nodes", []), verbose=verbose))
    console.print(_connection_table(d.get("connections", [])))
    console.print(f"\n{len(d.get('nodes', []))} nodes, {len(d.get('connections', []))} connections")


def _tree_label(item: dict[str, Any]) -> Text:
    label = Text()
    if item.get("via"):
        label.append(f"{item['via']} → ", style="fp.label")
    node_type = str(item.get("node_type", ""))
    label.append(str(item.get("text", "")), style=style_for_type(node_type))
    if item.get("ref"):
        label.append("  (see above)", style="dim")
    if item.get("external"):
        label.append(f"  [{item['external']}]", style="dim")
    return label


def _render_tree(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render the nested tree with Rich's Tree widget."""
    root_item = result.data.get("tree", {})
    tree = Tree(_tree_label(root_item))
    stack: list[tuple[dict[str, Any], Tree]] = [(root_item, tree)]
    while stack:
        item, branch = stack.pop()
        for child in item.get("children", []):
            stack.append((child, branch.add(_tree_label(child))))
    console.print(Text(f"Category: {result.data.get('category', '')}", style="bold"))
    console.print(tree)


def _render_completeness(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    verdict = Text("complete", style="fp.ok") if d.get("complete") else Text(
        "incomplete", style="fp.error"
    )
    console.print(Text(f"{d.get('category', '')}: "), verdict)
    _field(console, "root_node_id", d.get("root_node_id") or "(none)")
    for key in ("incomplete_nodes", "unreachable_nodes"):
        values = d.get(key, [])
        _field(console, key, len(values))
        if verbose:
            for value in values:
                console.print(f"    {value}")
    cycles = d.get("cycles", [])
    _field(console, "cycles", len(cycles))
    if verbose:
        for cycle in cycles:
            console.print(f"    {' → '.join(cycle)}")


# ── Issue renderers ───────────────────────────────────────────────────


def _render_issues(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    table = _table("Category", "Display", "Root question", "Active", "Nodes")
    for item in result.data.get("items", []):
        table.add_row(
            str(item.get("category", "")),
            str(item.get("display_category") or ""),
            str(item.get("root_question") or ""),
            "yes" if item.get("is_active") else "no",
            str(item.get("node_count", 0)),
        )
    console.print(table)
    console.print(f"\n{result.data.get('count', 0)} issues")


# ── Session renderers ─────────────────────────────────────────────────


def _render_history_steps(console: Console, steps: list[dict[str, Any]]) -> None:
    for step in steps:
        console.print(
            f"  {step.get('position')}. {step.get('from_node_text')} "
            f"[fp.label]{step.get('connection_label')}[/fp.label] → {step.get('to_node_text')}"
        )


def _render_navigation(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render start/answer/get_session: the current node and its answers."""
    d = result.data
    _status_line(console, result)
    _field(console, "session_id", d.get("session_id"))
    _field(console, "state", d.get("state"))

    node = d.get("node", {})
    if d.get("is_conclusion"):
        console.print(Panel(str(node.get("text", "")), title="Conclusion", border_style="fp.ok"))
    else:
        console.print(Panel(str(node.get("text", "")), title="Question", border_style="fp.op"))
        options = d.get("options", [])
        if options:
            table = _table("#", "Answer", "Connection")
            for i, opt in enumerate(options, start=1):
                table.add_row(str(i), str(opt.get("label", "")), str(opt.get("connection_id", "")))
            console.print(table)
        elif d.get("state") == "active":
            console.print(Text("  (no answers available)", style="fp.warning"))

    if d.get("history") and (verbose or d.get("is_conclusion")):
        console.print(Text("  history:", style="dim"))
        _render_history_steps(console, d["history"])
    if verbose:
        _render_meta(console, result)


def _render_history(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    for key in ("session_id", "category", "state", "started_at", "completed_at", "final_conclusion"):
        if d.get(key) is not None:
            _field(console, key, d[key])
    _render_history_steps(console, d.get("history", []))


def _render_sessions(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    table = _table("Session", "Category", "State", "Steps", "Started", "Conclusion")
    for item in result.data.get("items", []):
        state = str(item.get("state", ""))
        table.add_row(
            str(item.get("session_id", "")),
            str(item.get("category", "")),
            Text(state, style=style_for_state(state)),
            str(item.get("step_count", 0)),
            str(item.get("started_at", "")),
            str(item.get("final_conclusion") or ""),
        )
    console.print(table)
    d = result.data
    console.print(f"\n{d.get('count', 0)} of {d.get('total', 0)} sessions (offset {d.get('offset', 0)})")


def _render_stats(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _status_line(console, result)
    for key in ("total_sessions", "active", "concluded", "abandoned", "average_steps_to_conclusion"):
        _field(console, key, d.get(key, 0))
    if d.get("top_conclusions"):
        table = _table("Conclusion", "Count")
        for row in d["top_conclusions"]:
            table.add_row(str(row["conclusion"]), str(row["count"]))
        console.print(table)


# ── Transfer renderers ────────────────────────────────────────────────


def _render_import_lists(result: ServiceResult, console: Console) -> None:
    for ok in result.data.get("successes", []):
        console.print(
            f"  [fp.ok]imported[/fp.ok] #{ok.get('index')} {ok.get('category')}: "
            f"{ok.get('nodes', 0)} nodes, {ok.get('connections', 0)} connections"
        )
    for err in result.data.get("errors", []):
        console.print(
            f"  [fp.error]failed[/fp.error] #{err.get('index')} {err.get('category') or '?'}: "
            f"{err.get('code')} {err.get('message')}"
        )


def _render_import(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    _render_import_lists(result, console)


def _render_export(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    d = result.data
    if "output" in d:
        _field(console, "output", d["output"])
    docs = d.get("documents") or ([d["document"]] if "document" in d else [])
    for doc in docs:
        console.print(
            f"  {doc.get('category')}: {len(doc.get('nodes', []))} nodes, "
            f"{len(doc.get('connections', []))} connections"
        )


# ── Category / cache renderers ────────────────────────────────────────


def _render_categories(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    table = _table("Display category", "Nodes")
    for item in result.data.get("items", []):
        table.add_row(str(item.get("name", "")), str(item.get("node_count", 0)))
    console.print(table)
    console.print(f"\n{result.data.get('count', 0)} categories")


def _render_cache_stats(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    table = _table("Cache", "Total", "Active", "Expired", "Max", "TTL (s)", "Hits", "Misses")
    for item in result.data.get("caches", []):
        table.add_row(
            str(item["name"]),
            str(item["total_entries"]),
            str(item["active_entries"]),
            str(item["expired_entries"]),
            str(item["max_size"]),
            f"{item['ttl_seconds']:g}",
            str(item["hits"]),
            str(item["misses"]),
        )
    console.print(table)


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    # Nodes / connections
    "create_node": _render_entity,
    "get_node": _render_entity,
    "update_node": _render_entity,
    "get_node_with_connections": _render_node_detail,
    "list_nodes": _render_node_list,
    "create_connection": _render_entity,
    "get_connection": _render_entity,
    "update_connection": _render_entity,
    "list_connections": _render_connection_list,
    # Category graph
    "get_graph": _render_graph,
    "get_tree": _render_tree,
    "is_complete": _render_completeness,
    # Issues
    "list_issues": _render_issues,
    "create_issue": _render_entity,
    "update_issue": _render_entity,
    # Sessions
    "start": _render_navigation,
    "answer": _render_navigation,
    "get_session": _render_navigation,
    "history": _render_history,
    "list_sessions": _render_sessions,
    "stats": _render_stats,
    # Transfer
    "export": _render_export,
    "export_all": _render_export,
    "import_documents": _render_import,
    # Categories / cache
    "list_categories": _render_categories,
    "cache_stats": _render_cache_stats,
}
