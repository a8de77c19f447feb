"""Pagination engines for search and listing endpoints."""

from .fetch import fetch_tasks, task_matches, validate_fetch_query
from .search import SEARCH_FILTER_PARAMS, resolve_sort, search_tasks, validate_search_options

__all__ = [
    "fetch_tasks",
    "task_matches",
    "validate_fetch_query",
    "SEARCH_FILTER_PARAMS",
    "resolve_sort",
    "search_tasks",
    "validate_search_options",
]
