"""Parameter validation run before anything is sent to Asana."""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Iterable, Optional

from .errors import ValidationError

_GID_RE = re.compile(r"^\d+$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def require(params: dict, names: Iterable[str]) -> None:
    """Raise if any required parameter is missing or blank."""
    missing = [
        name for name in names
        if params.get(name) is None or (isinstance(params.get(name), str) and not params[name].strip())
    ]
    if missing:
        raise ValidationError(f"Missing required parameter(s): {', '.join(missing)}")


def validate_date(value: Optional[str], name: str) -> Optional[str]:
    """Accept YYYY-MM-DD calendar dates."""
    if value is None:
        return None
    if not _DATE_RE.match(value):
        raise ValidationError(f"{name} must be a date in YYYY-MM-DD format, got '{value}'")
    try:
        date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{name} is not a valid calendar date: '{value}'") from None
    return value


def validate_gid(value: Optional[str], name: str, allow_me: bool = False) -> Optional[str]:
    """Accept numeric Asana gids (and "me" where a user is expected)."""
    if value is None:
        return None
    value = str(value).strip()
    if allow_me and value == "me":
        return value
    if not _GID_RE.match(value):
        expected = "a numeric GID or \"me\"" if allow_me else "a numeric GID"
        raise ValidationError(f"{name} must be {expected}, got '{value}'")
    return value


def validate_gid_list(value: Optional[Any], name: str, allow_me: bool = False) -> Optional[str]:
    """Accept a comma-separated gid list (or a list) and return it normalized."""
    if value is None:
        return None
    parts = value if isinstance(value, (list, tuple)) else str(value).split(",")
    gids = [str(p).strip() for p in parts if str(p).strip()]
    if not gids:
        raise ValidationError(f"{name} must contain at least one GID")
    for gid in gids:
        validate_gid(gid, name, allow_me=allow_me)
    return ",".join(gids)


def validate_positive_int(value: Optional[int], name: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f"{name} must be a positive integer, got '{value}'")
    return value
