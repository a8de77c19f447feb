"""Shared service layer for CLI and MCP."""

from .context import get_client, get_project_cache, resolve_context_info, resolve_workspace
from .projects import clear_cache, get_sections, page_projects, search_projects
from .tasks import (
    add_comment,
    add_task_to_project,
    create_task,
    export_notes,
    get_my_tasks,
    get_subtasks,
    get_task,
    get_task_comments,
    list_tasks,
    normalize_search_filters,
    remove_task_from_project,
    search_tasks,
    task_url,
    update_task,
)
from .users import get_current_user, get_user

__all__ = [
    "get_client",
    "get_project_cache",
    "resolve_context_info",
    "resolve_workspace",
    "clear_cache",
    "get_sections",
    "page_projects",
    "search_projects",
    "add_comment",
    "add_task_to_project",
    "create_task",
    "export_notes",
    "get_my_tasks",
    "get_subtasks",
    "get_task",
    "get_task_comments",
    "list_tasks",
    "normalize_search_filters",
    "remove_task_from_project",
    "search_tasks",
    "task_url",
    "update_task",
    "get_current_user",
    "get_user",
]
