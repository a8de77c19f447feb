"""Multi-page task listing over GET /tasks with offset tokens.

GET /tasks paginates properly but cannot filter on completion, section
membership or assignee when listing a project. Those filters run on each
page as it arrives, so only matching tasks are kept.

An explicit `unassigned=True` wins over an `assignee` gid.
"""

from __future__ import annotations

import logging

from ..errors import RequestCancelledError, ValidationError
from ..fields import expand_fields, to_opt_fields, with_gid, with_required
from ..models.queries import COLLECTION_TYPES, FetchQuery
from ..validation import validate_gid

logger = logging.getLogger(__name__)


def _required_fields(query: FetchQuery) -> list[str]:
    required = []
    if query.completed is not None:
        required.append("completed")
    if query.section:
        required.append("memberships.section.gid")
    if query.unassigned or query.assignee:
        required.append("assignee.gid")
    return required


def task_matches(task: dict, query: FetchQuery) -> bool:
    """Client-side filters for one task."""
    if query.completed is not None and bool(task.get("completed")) != query.completed:
        return False

    if query.section:
        memberships = task.get("memberships") or []
        if not any((m.get("section") or {}).get("gid") == query.section for m in memberships):
            return False

    assignee = task.get("assignee")
    if query.unassigned:
        return not assignee
    if query.assignee:
        return bool(assignee) and assignee.get("gid") == query.assignee
    return True


def validate_fetch_query(query: FetchQuery) -> None:
    if query.collection_type not in COLLECTION_TYPES:
        raise ValidationError(
            f"collection_type must be one of {', '.join(COLLECTION_TYPES)}, got '{query.collection_type}'"
        )
    validate_gid(query.collection_gid, query.collection_type)
    validate_gid(query.section, "section")
    validate_gid(query.assignee, "assignee")
    if query.max_results < 1:
        raise ValidationError(f"max_results must be a positive integer, got {query.max_results}")


def fetch_tasks(client, query: FetchQuery) -> list[dict]:
    """List a collection's tasks, filtered per page, capped at max_results."""
    validate_fetch_query(query)

    fields = with_required(with_gid(expand_fields(query.fields)), _required_fields(query))
    params: dict = {
        query.collection_type: query.collection_gid,
        "limit": query.page_size,
        "opt_fields": to_opt_fields(fields),
    }
    if query.completed_since:
        params["completed_since"] = query.completed_since
    if query.modified_since:
        params["modified_since"] = query.modified_since

    results: list[dict] = []
    pages = 0

    while True:
        if query.cancel_event is not None and query.cancel_event.is_set():
            raise RequestCancelledError(
                f"Task listing cancelled after {pages} page(s)", pages_fetched=pages
            )

        result = client.get_tasks(dict(params))
        pages += 1
        data = result.get("data") or []
        if not data:
            break

        kept = [task for task in data if task_matches(task, query)]
        results.extend(kept)
        logger.debug(
            "Listing page %d: %d task(s), %d kept", pages, len(data), len(kept),
            extra={"page": pages, "page_len": len(data), "kept": len(kept)},
        )

        if len(results) >= query.max_results:
            results = results[:query.max_results]
            break

        offset = (result.get("next_page") or {}).get("offset")
        if not offset:
            break
        params["offset"] = offset

    return results
