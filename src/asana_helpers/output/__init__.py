"""Shared output formatting for CLI and MCP."""

from .files import FILE_FORMATS, write_items
from .format import ITEM_FORMATS, format_response, render_cli, render_items

__all__ = [
    "FILE_FORMATS",
    "write_items",
    "ITEM_FORMATS",
    "format_response",
    "render_cli",
    "render_items",
]
