"""Multi-page task search over /workspaces/{gid}/tasks/search.

The search endpoint returns at most one page of 100 tasks and no offset
token. To go past the first page the engine sorts by a timestamp
(`created_at` or `modified_at`) and, after each full page, narrows the next
request to tasks strictly beyond the last one seen. Sorting by anything else
cannot be continued without duplicates or gaps, so a request for more than
one page with such a sort is rejected up front.

Cancellation policy: the cancellation event is checked before every request;
when it fires, pages already fetched are discarded and RequestCancelledError
is raised.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from ..errors import PaginationConfigError, RequestCancelledError, ValidationError
from ..fields import expand_fields, to_opt_fields, with_gid, with_required
from ..models.queries import (
    CURSOR_SORT_FIELDS,
    DEFAULT_SORT_FIELD,
    SearchQuery,
    TimeCursor,
)

logger = logging.getLogger(__name__)

# Query parameters of the search endpoint this engine forwards as filters.
# Reference: https://developers.asana.com/reference/searchtasksforworkspace
SEARCH_FILTER_PARAMS = frozenset({
    "text", "resource_subtype",
    "assignee.any", "assignee.not",
    "portfolios.any",
    "projects.any", "projects.not", "projects.all",
    "sections.any", "sections.not", "sections.all",
    "tags.any", "tags.not", "tags.all",
    "teams.any",
    "followers.any", "followers.not",
    "created_by.any", "created_by.not",
    "assigned_by.any", "assigned_by.not",
    "liked_by.not", "commented_on_by.not",
    "due_on.before", "due_on.after", "due_on",
    "due_at.before", "due_at.after",
    "start_on.before", "start_on.after", "start_on",
    "created_on.before", "created_on.after", "created_on",
    "created_at.before", "created_at.after",
    "completed_on.before", "completed_on.after", "completed_on",
    "completed_at.before", "completed_at.after",
    "modified_on.before", "modified_on.after", "modified_on",
    "modified_at.before", "modified_at.after",
    "is_blocking", "is_blocked", "has_attachment", "completed", "is_subtask",
})

SORT_FIELDS = ("due_date", "created_at", "completed_at", "likes", "modified_at")


def _check_cancelled(cancel_event: Optional[threading.Event], pages_fetched: int) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RequestCancelledError(
            f"Search cancelled after {pages_fetched} page(s)", pages_fetched=pages_fetched
        )


def resolve_sort(query: SearchQuery) -> tuple[str, bool]:
    """Validate the sort configuration and return (sort_field, ascending).

    Raises PaginationConfigError when more than one page is wanted and the
    sort field cannot act as a cursor.
    """
    if query.sort_by is None:
        ascending = bool(query.sort_ascending) if query.sort_ascending is not None else False
        return DEFAULT_SORT_FIELD, ascending

    if query.sort_by not in SORT_FIELDS:
        raise ValidationError(
            f"sort_by must be one of {', '.join(SORT_FIELDS)}, got '{query.sort_by}'"
        )
    if query.max_results > query.page_size and query.sort_by not in CURSOR_SORT_FIELDS:
        raise PaginationConfigError(
            f"max_results={query.max_results} needs more than one page of "
            f"{query.page_size}; paginated search requires sort_by to be one of "
            f"{' or '.join(CURSOR_SORT_FIELDS)} (got '{query.sort_by}'). "
            f"Lower max_results to {query.page_size} or change sort_by."
        )
    return query.sort_by, bool(query.sort_ascending)


def validate_search_options(query: SearchQuery) -> tuple[str, bool]:
    """Check everything except the workspace, so callers can fail before resolving one."""
    if query.max_results < 1:
        raise ValidationError(f"max_results must be a positive integer, got {query.max_results}")
    unknown = sorted(set(query.filters) - SEARCH_FILTER_PARAMS)
    if unknown:
        raise ValidationError(f"Unsupported search filter(s): {', '.join(unknown)}")
    return resolve_sort(query)


def validate_search_query(query: SearchQuery) -> tuple[str, bool]:
    if not query.workspace:
        raise ValidationError("workspace is required for task search")
    return validate_search_options(query)


def _top_level(fields: list[str]) -> set[str]:
    return {f.split(".", 1)[0] for f in fields}


def search_tasks(client, query: SearchQuery) -> list[dict]:
    """Run a search, following a synthesized cursor until the cap is reached.

    Returns at most `query.max_results` tasks, each carrying the requested
    projection plus `gid`.
    """
    sort_field, ascending = validate_search_query(query)

    requested = with_gid(expand_fields(query.fields))
    fetch_fields = with_required(requested, [sort_field]) if sort_field in CURSOR_SORT_FIELDS else requested

    base_params = {k: v for k, v in query.filters.items() if v is not None}
    base_params["opt_fields"] = to_opt_fields(fetch_fields)
    base_params["sort_by"] = sort_field
    base_params["sort_ascending"] = ascending

    results: list[dict] = []
    cursor: Optional[TimeCursor] = None
    pages = 0

    while True:
        _check_cancelled(query.cancel_event, pages)

        limit = min(query.page_size, query.max_results - len(results))
        params = dict(base_params, limit=limit)
        if cursor is not None:
            params.update(cursor.as_params())

        page = client.search_tasks_for_workspace(query.workspace, params).get("data") or []
        pages += 1
        results.extend(page)
        logger.debug(
            "Search page %d returned %d task(s)", pages, len(page),
            extra={"page": pages, "page_len": len(page), "cursor": cursor.as_params() if cursor else None},
        )

        if len(results) >= query.max_results:
            results = results[:query.max_results]
            break
        if len(page) < limit:
            break
        if sort_field not in CURSOR_SORT_FIELDS:
            break

        try:
            cursor = TimeCursor.from_item(page[-1], sort_field, ascending)
        except ValueError:
            cursor = None
        if cursor is None:
            logger.warning(
                "Stopping search pagination: last task on page %d has no usable %s",
                pages, sort_field,
                extra={"page": pages, "sort_field": sort_field},
            )
            break

    if sort_field not in _top_level(requested):
        for task in results:
            task.pop(sort_field, None)

    text = query.text
    if text:
        # Asana's text filter combines unreliably with other filters.
        needle = text.lower()
        results = [t for t in results if needle in (t.get("name") or "").lower()]

    return results
