"""On-disk cache for the workspace project listing.

Listing every project of a large workspace takes many requests, so the full
listing is kept for 24 hours in one JSON file:

```
<cache dir>/projects.json
{"workspace": "1200000000000000", "timestamp": 1717000000000, "projects": [...]}
```

A cache for another workspace, an expired cache, or an unreadable file is a
miss; the caller refetches and overwrites it.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Optional

from .errors import FileIOError

logger = logging.getLogger(__name__)

CACHE_FILE_NAME = "projects.json"
CACHE_TTL_MS = 24 * 60 * 60 * 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


class ProjectCache:
    """Single-workspace project cache stored under the cache directory."""

    def __init__(self, cache_dir: Path, ttl_ms: int = CACHE_TTL_MS):
        self.cache_dir = Path(cache_dir)
        self.ttl_ms = ttl_ms

    @property
    def path(self) -> Path:
        return self.cache_dir / CACHE_FILE_NAME

    def load(self, workspace: str, now_ms: Optional[int] = None) -> Optional[list[dict]]:
        """Return cached projects for `workspace`, or None on a miss."""
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable project cache %s: %s", self.path, e)
            return None

        if not isinstance(data, dict) or data.get("workspace") != workspace:
            return None

        try:
            timestamp = int(data.get("timestamp") or 0)
        except (TypeError, ValueError):
            logger.warning("Ignoring project cache %s with bad timestamp %r", self.path, data.get("timestamp"))
            return None
        projects = data.get("projects") or []
        if not isinstance(projects, list):
            logger.warning("Ignoring project cache %s: projects is not a list", self.path)
            return None

        now_ms = _now_ms() if now_ms is None else now_ms
        if now_ms - timestamp > self.ttl_ms:
            logger.debug("Project cache expired for workspace %s", workspace)
            return None

        logger.debug("Using %d cached project(s)", len(projects), extra={"workspace": workspace})
        return projects

    def save(self, workspace: str, projects: list[dict], now_ms: Optional[int] = None) -> None:
        payload = {
            "workspace": workspace,
            "timestamp": _now_ms() if now_ms is None else now_ms,
            "projects": projects,
        }
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
        except OSError as e:
            # A failed save only costs a refetch next time.
            logger.warning("Failed to write project cache %s: %s", self.path, e)
            return
        logger.debug("Saved %d project(s) to cache", len(projects), extra={"workspace": workspace})

    def clear(self) -> bool:
        """Delete the cache file. Returns True if a file was removed."""
        if not self.path.exists():
            return False
        try:
            self.path.unlink()
        except OSError as e:
            raise FileIOError(f"Could not remove project cache {self.path}: {e}") from e
        return True
