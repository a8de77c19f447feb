"""Settings and client resolution helpers shared by CLI and MCP."""

from __future__ import annotations

from typing import Optional

from ..asana_client import AsanaClient
from ..cache import ProjectCache
from ..config import AsanaSettings, get_auth_help_message, resolve_settings
from ..validation import validate_gid


def resolve_context_info(settings: Optional[AsanaSettings] = None) -> dict:
    """Return configuration info and help text if not configured."""
    settings = settings or resolve_settings()
    return {
        "config_source": settings.config_source,
        "workspace": settings.workspace,
        "cache_dir": str(settings.get_cache_dir()),
        "log_file": str(settings.get_log_file()),
        "api_key_configured": settings.api_key is not None,
        "help": get_auth_help_message() if settings.api_key is None else None,
    }


def get_client(settings: Optional[AsanaSettings] = None) -> AsanaClient:
    """Return an Asana client for the resolved settings.

    Raises AuthenticationError when no API key is configured.
    """
    return AsanaClient.from_settings(settings or resolve_settings())


def get_project_cache(settings: Optional[AsanaSettings] = None) -> ProjectCache:
    settings = settings or resolve_settings()
    return ProjectCache(settings.get_cache_dir())


def resolve_workspace(client: AsanaClient, workspace: Optional[str] = None) -> str:
    """Explicit workspace if given, else the client's default workspace."""
    if workspace:
        return validate_gid(workspace, "workspace")
    return client.get_default_workspace()
