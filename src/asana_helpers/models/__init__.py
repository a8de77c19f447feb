from .queries import (
    COLLECTION_TYPES,
    CURSOR_SORT_FIELDS,
    PAGE_SIZE,
    FetchQuery,
    SearchQuery,
    TimeCursor,
    format_timestamp,
    parse_timestamp,
)

__all__ = [
    "COLLECTION_TYPES",
    "CURSOR_SORT_FIELDS",
    "PAGE_SIZE",
    "FetchQuery",
    "SearchQuery",
    "TimeCursor",
    "format_timestamp",
    "parse_timestamp",
]
