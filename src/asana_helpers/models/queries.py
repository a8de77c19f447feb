"""Request-scoped query state for the pagination engines."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from ..fields import DEFAULT_SEARCH_FIELDS

# Asana caps every list/search response at 100 items.
PAGE_SIZE = 100

# Sort fields whose values are per-task timestamps usable as a cursor.
CURSOR_SORT_FIELDS = ("created_at", "modified_at")

DEFAULT_SORT_FIELD = "created_at"

COLLECTION_TYPES = ("project", "section", "tag", "user_task_list")


def parse_timestamp(value: str) -> datetime:
    """Parse an Asana timestamp such as `2024-03-01T12:00:00.123Z`."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format as Asana does: UTC, millisecond precision, `Z` suffix."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


@dataclass
class SearchQuery:
    """One logical search across however many pages it takes."""
    workspace: str
    filters: dict[str, Any] = field(default_factory=dict)
    fields: list[str] = field(default_factory=lambda: list(DEFAULT_SEARCH_FIELDS))
    sort_by: Optional[str] = None
    sort_ascending: Optional[bool] = None
    max_results: int = PAGE_SIZE
    page_size: int = PAGE_SIZE
    cancel_event: Optional[threading.Event] = None

    @property
    def text(self) -> Optional[str]:
        return self.filters.get("text")


@dataclass(frozen=True)
class TimeCursor:
    """Synthesized continuation for the search endpoint.

    The boundary is the last item's timestamp shifted one millisecond past
    it in sort direction; the next page is filtered to strictly beyond it.
    Tasks sharing the boundary item's exact millisecond after the first page
    are skipped.
    """
    sort_field: str
    ascending: bool
    last_value: datetime

    @classmethod
    def from_item(cls, item: dict, sort_field: str, ascending: bool) -> Optional["TimeCursor"]:
        raw = item.get(sort_field)
        if not raw:
            return None
        return cls(sort_field=sort_field, ascending=ascending, last_value=parse_timestamp(raw))

    @property
    def boundary(self) -> datetime:
        shift = timedelta(milliseconds=1)
        return self.last_value + shift if self.ascending else self.last_value - shift

    @property
    def param_name(self) -> str:
        return f"{self.sort_field}.{'after' if self.ascending else 'before'}"

    def as_params(self) -> dict[str, str]:
        return {self.param_name: format_timestamp(self.boundary)}


@dataclass
class FetchQuery:
    """Listing of one collection's tasks through offset-token pagination.

    `completed`, `section` and `assignee` / `unassigned` are applied client
    side to each page; `completed_since` / `modified_since` go to Asana.
    """
    collection_gid: str
    collection_type: str = "project"
    completed: Optional[bool] = None
    completed_since: Optional[str] = None
    modified_since: Optional[str] = None
    section: Optional[str] = None
    assignee: Optional[str] = None
    unassigned: bool = False
    fields: list[str] = field(default_factory=lambda: ["name", "gid"])
    max_results: int = 500
    page_size: int = PAGE_SIZE
    cancel_event: Optional[threading.Event] = None
