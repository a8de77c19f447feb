"""Shared Asana project and section operations for CLI and MCP."""

from __future__ import annotations

import logging
from typing import Optional

from ..asana_client import AsanaClient, iterate_pages
from ..cache import ProjectCache
from ..models import PAGE_SIZE
from ..validation import validate_gid
from .context import resolve_workspace

logger = logging.getLogger(__name__)

# Everything later filters or displays may need, so cached listings serve any query.
PROJECT_CACHE_FIELDS = (
    "name,gid,archived,created_at,modified_at,owner.name,notes,color,"
    "public,due_date,start_on,team.name"
)

SECTION_FIELDS = "name,gid,created_at"


def _fetch_all_projects(client: AsanaClient, workspace: str) -> list[dict]:
    params = {"workspace": workspace, "limit": PAGE_SIZE, "opt_fields": PROJECT_CACHE_FIELDS}
    projects = iterate_pages(client.get_projects, params)
    logger.info("Fetched %d project(s) from Asana", len(projects), extra={"workspace": workspace})
    return projects


def page_projects(projects: list[dict], limit: int, offset: int = 0) -> dict:
    """Cut one page out of a filtered project listing.

    Upstream has no server-side name filter, so matching happens over the full
    listing and the page is sliced locally.
    """
    offset = max(offset, 0)
    total = len(projects)
    has_more = offset + limit < total
    return {
        "projects": projects[offset:offset + limit],
        "pagination": {
            "total_count": total,
            "limit": limit,
            "offset": offset,
            "has_more": has_more,
            "next_offset": offset + limit if has_more else None,
        },
    }


def search_projects(
    client: AsanaClient,
    cache: Optional[ProjectCache] = None,
    workspace: Optional[str] = None,
    name: Optional[str] = None,
    archived: Optional[bool] = None,
    no_cache: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    """Find projects by partial, case-insensitive name.

    The full workspace listing is served from `cache` when fresh.
    """
    workspace = resolve_workspace(client, workspace)

    projects = None
    if cache is not None and not no_cache:
        projects = cache.load(workspace)
    if projects is None:
        projects = _fetch_all_projects(client, workspace)
        if cache is not None:
            cache.save(workspace, projects)

    if name:
        needle = name.lower()
        projects = [p for p in projects if needle in (p.get("name") or "").lower()]
    if archived is not None:
        projects = [p for p in projects if bool(p.get("archived")) == archived]

    return page_projects(projects, limit, offset)


def clear_cache(cache: ProjectCache) -> dict:
    cleared = cache.clear()
    return {"cleared": cleared, "path": str(cache.path)}


def get_sections(client: AsanaClient, project_gid: str, fields: Optional[str] = None) -> dict:
    validate_gid(project_gid, "project_gid")
    params = {"opt_fields": fields or SECTION_FIELDS, "limit": PAGE_SIZE}
    sections = iterate_pages(lambda p: client.get_sections_for_project(project_gid, p), params)
    return {"project_gid": project_gid, "sections": sections, "count": len(sections)}
