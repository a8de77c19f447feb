"""Markdown <-> Asana rich text conversion."""

from .sanitizer import ALLOWED_TAGS, sanitize_html
from .to_html import (
    ConversionContext,
    PIPELINE,
    has_markdown,
    markdown_to_html,
    mention_html,
    prepare_task_updates,
)
from .to_markdown import html_to_markdown

__all__ = [
    "ALLOWED_TAGS",
    "sanitize_html",
    "ConversionContext",
    "PIPELINE",
    "has_markdown",
    "markdown_to_html",
    "mention_html",
    "prepare_task_updates",
    "html_to_markdown",
]
