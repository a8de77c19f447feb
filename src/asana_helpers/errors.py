"""Error types shared by the client, engines, CLI and MCP server."""

from __future__ import annotations

from typing import Optional


class AsanaHelperError(Exception):
    """Base class for every error surfaced to a caller."""

    kind = "error"


class ValidationError(AsanaHelperError):
    """Raised for malformed input before any request is sent upstream."""

    kind = "validation_error"


class PaginationConfigError(ValidationError):
    """Raised when a sort configuration cannot be paginated safely."""

    kind = "pagination_config_error"


class RequestCancelledError(AsanaHelperError):
    """Raised when the caller cancels a multi-page request."""

    kind = "request_cancelled"

    def __init__(self, message: str = "Request cancelled", pages_fetched: int = 0):
        super().__init__(message)
        self.pages_fetched = pages_fetched


class AuthenticationError(AsanaHelperError):
    """Raised when Asana authentication fails or is not configured."""

    kind = "authentication_required"

    def __init__(self, message: str, suggestions: list[str] | None = None):
        super().__init__(message)
        self.suggestions = suggestions or []


class AsanaAPIError(AsanaHelperError):
    """Raised when the Asana API answers with a non-success status."""

    kind = "api_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FileIOError(AsanaHelperError):
    """Raised when reading or writing a local file fails."""

    kind = "file_error"


def error_payload(exc: AsanaHelperError) -> dict:
    """Build the error dict returned by tools."""
    payload = {"error": exc.kind, "message": str(exc)}
    if isinstance(exc, AuthenticationError) and exc.suggestions:
        payload["suggestions"] = exc.suggestions
    if isinstance(exc, AsanaAPIError) and exc.status_code is not None:
        payload["status_code"] = exc.status_code
    return payload
