"""Output formatting utilities for CLI and MCP."""

from __future__ import annotations

import csv
import io
import json
from typing import Any, Callable, Optional, Sequence, Union

from rich.table import Table

from ..fields import get_nested_value

OUTPUT_FORMATS = ("json", "text")
ITEM_FORMATS = ("list", "table", "inline", "json", "csv", "markdown")


def format_response(
    payload: Any,
    output_format: str = "json",
    text_renderer: Optional[Callable[[Any], str]] = None,
) -> dict:
    """Normalize response with format metadata and content.

    Args:
        payload: Data to serialize.
        output_format: "json" or "text".
        text_renderer: Optional renderer for text output.
    """
    output_format = (output_format or "json").lower()

    if output_format == "text":
        content = text_renderer(payload) if text_renderer else json.dumps(payload, indent=2)
        return {"format": "text", "content": content}
    return {"format": "json", "content": payload}


def render_cli(response: dict) -> str:
    """Render a formatted response into a CLI string."""
    fmt = response.get("format")
    content = response.get("content")
    if fmt == "json":
        return json.dumps(content, indent=2)
    return str(content)


def _label(field: str) -> str:
    return field.rsplit(".", 1)[-1]


def cell_value(item: dict, field: str) -> str:
    value = get_nested_value(item, field)
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def csv_text(items: Sequence[dict], fields: Sequence[str], header: bool = True) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    if header:
        writer.writerow(list(fields))
    for item in items:
        writer.writerow([cell_value(item, f) for f in fields])
    return buffer.getvalue()


def _md_cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")


def markdown_table(items: Sequence[dict], fields: Sequence[str], header: bool = True) -> str:
    lines = []
    if header:
        lines.append("| " + " | ".join(_md_cell(f) for f in fields) + " |")
        lines.append("|" + "|".join("---" for _ in fields) + "|")
    for item in items:
        lines.append("| " + " | ".join(_md_cell(cell_value(item, f)) for f in fields) + " |")
    return "\n".join(lines) + "\n"


def render_items(
    items: Sequence[dict],
    fields: Sequence[str],
    fmt: str = "list",
    noun: str = "item",
) -> Union[str, Table]:
    """Render a result set for the terminal.

    `table` returns a rich Table; every other format returns a string.
    """
    fmt = (fmt or "list").lower()
    if fmt not in ITEM_FORMATS:
        raise ValueError(f"Unknown format '{fmt}'. Use one of: {', '.join(ITEM_FORMATS)}")

    if fmt == "json":
        return json.dumps(list(items), indent=2)
    if fmt == "csv":
        return csv_text(items, fields)
    if fmt == "markdown":
        return markdown_table(items, fields)

    if not items:
        return f"No {noun}s found."

    if fmt == "table":
        table = Table(title=f"{len(items)} {noun}(s)")
        for field in fields:
            table.add_column(_label(field))
        for item in items:
            table.add_row(*(cell_value(item, f) for f in fields))
        return table

    if fmt == "inline":
        lines = [f"Found {len(items)} {noun}(s):"]
        for item in items:
            values = [cell_value(item, f) for f in fields]
            lines.append(", ".join(v for v in values if v))
        return "\n".join(lines)

    lines = [f"Found {len(items)} {noun}(s):", ""]
    for index, item in enumerate(items, start=1):
        parts = [f"{_label(f).capitalize()}: {cell_value(item, f)}" for f in fields]
        lines.append(f"{index}. " + ", ".join(parts))
    return "\n".join(lines)
