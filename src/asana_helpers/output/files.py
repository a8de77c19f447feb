"""Persist result sets to disk as JSON, CSV or a markdown table."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Sequence

from ..errors import FileIOError, ValidationError
from .format import csv_text, markdown_table

logger = logging.getLogger(__name__)

FILE_FORMATS = ("json", "csv", "markdown")


def write_items(
    items: Sequence[dict],
    path: str,
    fmt: str = "json",
    fields: Sequence[str] = ("name", "gid"),
    append: bool = False,
) -> dict:
    """Write items to `path`.

    JSON is a pretty-printed array, or one object per line when appending.
    CSV and markdown write their header only when the file is new (or when
    not appending).
    """
    fmt = (fmt or "json").lower()
    if fmt not in FILE_FORMATS:
        raise ValidationError(f"Unsupported file format '{fmt}'. Use one of: {', '.join(FILE_FORMATS)}")

    target = Path(path).expanduser()
    exists = target.exists() and target.stat().st_size > 0
    header = not (append and exists)

    if fmt == "json":
        if append:
            content = "".join(json.dumps(item) + "\n" for item in items)
        else:
            content = json.dumps(list(items), indent=2) + "\n"
    elif fmt == "csv":
        content = csv_text(items, fields, header=header)
    else:
        content = markdown_table(items, fields, header=header)

    mode = "a" if append else "w"
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, mode, encoding="utf-8", newline="") as f:
            f.write(content)
    except OSError as e:
        raise FileIOError(f"Failed to write '{path}': {e}") from e

    logger.debug("Wrote %d item(s) to %s", len(items), target, extra={"format": fmt, "append": append})
    return {"path": str(target), "format": fmt, "count": len(items), "appended": append and exists}
