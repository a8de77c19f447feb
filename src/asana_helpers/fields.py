"""Field projection (`opt_fields`) helpers."""

from __future__ import annotations

import re
from typing import Iterable, Optional, Union

FIELD_PRESETS: dict[str, list[str]] = {
    "minimal": ["name", "gid"],
    "standard": [
        "name",
        "gid",
        "assignee.name",
        "due_on",
        "completed",
        "projects.name",
    ],
    "full": [
        "name",
        "gid",
        "assignee.name",
        "assignee.gid",
        "due_on",
        "due_at",
        "start_on",
        "completed",
        "completed_at",
        "created_at",
        "modified_at",
        "notes",
        "projects.name",
        "projects.gid",
        "tags.name",
        "memberships.section.name",
        "memberships.section.gid",
        "parent.name",
        "parent.gid",
        "permalink_url",
        "num_likes",
    ],
}

DEFAULT_SEARCH_FIELDS = ["name", "gid", "assignee.name", "due_on"]

# Asana ignores id-scoped projections such as `custom_fields.123.display_value`,
# so every custom field request is widened to these three paths.
CUSTOM_FIELD_PATHS = [
    "custom_fields.gid",
    "custom_fields.name",
    "custom_fields.display_value",
]

_CUSTOM_FIELD_BY_ID_RE = re.compile(r"^custom_fields?\.\d+(?:\..*)?$")


def _is_custom_field_shorthand(field: str) -> bool:
    return field in ("custom_fields", "custom_field") or bool(_CUSTOM_FIELD_BY_ID_RE.match(field))


def split_fields(fields: Union[str, Iterable[str], None]) -> list[str]:
    """Accept a comma-separated string or an iterable of field paths."""
    if fields is None:
        return []
    if isinstance(fields, str):
        return [f.strip() for f in fields.split(",") if f.strip()]
    return [f.strip() for f in fields if f and f.strip()]


def expand_fields(fields: Union[str, Iterable[str], None]) -> list[str]:
    """Expand presets and custom field shorthands, preserving order, no duplicates.

    >>> expand_fields(["name", "custom_fields"])
    ['name', 'custom_fields.gid', 'custom_fields.name', 'custom_fields.display_value']
    """
    parts = split_fields(fields)
    if len(parts) == 1 and parts[0] in FIELD_PRESETS:
        parts = list(FIELD_PRESETS[parts[0]])

    expanded: list[str] = []
    for field in parts:
        targets = CUSTOM_FIELD_PATHS if _is_custom_field_shorthand(field) else [field]
        for target in targets:
            if target not in expanded:
                expanded.append(target)
    return expanded


def with_gid(fields: list[str]) -> list[str]:
    """Ensure `gid` leads the projection."""
    if "gid" in fields:
        return list(fields)
    return ["gid", *fields]


def with_required(fields: list[str], required: Iterable[str]) -> list[str]:
    """Append fields a client-side filter or cursor needs."""
    result = list(fields)
    for field in required:
        if field not in result:
            result.append(field)
    return result


def to_opt_fields(fields: list[str]) -> str:
    return ",".join(fields)


def get_nested_value(item: dict, path: str) -> Optional[object]:
    """Resolve a dotted path; lists are mapped (`projects.name` -> "A, B")."""
    current: object = item
    for key in path.split("."):
        if isinstance(current, list):
            current = [v.get(key) for v in current if isinstance(v, dict) and v.get(key) is not None]
            if not current:
                return None
        elif isinstance(current, dict):
            current = current.get(key)
            if current is None:
                return None
        else:
            return None

    if isinstance(current, list) and all(not isinstance(v, (dict, list)) for v in current):
        return ", ".join(str(v) for v in current)
    return current
