"""Logging setup: JSON-lines file log plus a rich console handler."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "asana_helpers"

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class JsonLineFormatter(logging.Formatter):
    """Format each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(
    log_file: Optional[Path] = None,
    verbose: bool = False,
    console: bool = True,
) -> logging.Logger:
    """Configure the package logger.

    Args:
        log_file: JSON-lines log destination. Skipped when None.
        verbose: Console level DEBUG instead of WARNING.
        console: Attach a rich handler on stderr. The MCP server passes False
                 since stdout/stderr belong to the transport.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            print(f"Warning: cannot open log file {log_file}: {e}", file=sys.stderr)
        else:
            file_handler.setFormatter(JsonLineFormatter())
            file_handler.setLevel(logging.DEBUG)
            logger.addHandler(file_handler)

    if console:
        rich_handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
        )
        rich_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
        logger.addHandler(rich_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger
