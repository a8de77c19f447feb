"""MCP Server for Asana Helpers.

Exposes Asana task search, listing, reading and writing to AI assistants over
stdio. Task descriptions and comments may be written in markdown; they are
converted to Asana rich text before upload.

Configuration comes from ASANA_API_KEY / ASANA_WORKSPACE or the user config
file written by `asana-helpers auth setup`.
"""

import asyncio
import json
import logging
import threading
from typing import Any, Callable, Optional

from mcp.server.fastmcp import FastMCP

from .asana_client import AsanaClient
from .config import AsanaSettings, get_auth_help_message, resolve_settings
from .convert import html_to_markdown, markdown_to_html
from .errors import AsanaHelperError, AuthenticationError, ValidationError, error_payload
from .fields import DEFAULT_SEARCH_FIELDS, expand_fields
from .log import configure_logging
from .output import format_response, render_items, write_items
from .services import get_client, get_project_cache
from .services.projects import (
    get_sections as svc_get_sections,
    search_projects as svc_search_projects,
)
from .services.tasks import (
    add_comment as svc_add_comment,
    add_task_to_project as svc_add_task_to_project,
    create_task as svc_create_task,
    get_my_tasks as svc_get_my_tasks,
    get_subtasks as svc_get_subtasks,
    get_task as svc_get_task,
    get_task_comments as svc_get_task_comments,
    list_tasks as svc_list_tasks,
    remove_task_from_project as svc_remove_task_from_project,
    search_tasks as svc_search_tasks,
    update_task as svc_update_task,
)

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "asana-helpers",
    instructions="""Asana Helpers - Asana tasks for AI assistants

## Quick Reference

| Goal | Tool | Notes |
|------|------|-------|
| Find tasks | `search_tasks` | Filters map to Asana search; up to max_results across pages |
| List a project | `list_project_tasks` | Filters on completion, section, assignee |
| My work | `get_my_tasks` | Incomplete tasks assigned to you |
| Read a task | `get_task` | Notes, subtasks, projects, comment count |
| Write | `create_task`, `update_task`, `add_comment` | Markdown is converted |
| Projects | `search_projects`, `get_sections` | Project listing cached for 24h |

## Pagination
- Asana search returns at most 100 tasks per call.
- `max_results` above 100 requires sort_by `created_at` (default) or `modified_at`.

## Markdown
- Headings, bold/italic/underline, lists, code blocks, tables, links.
- `[Name](https://app.asana.com/0/profile/<gid>)` becomes an @-mention.
""",
)

_settings: Optional[AsanaSettings] = None
_client: Optional[AsanaClient] = None


def _get_settings() -> AsanaSettings:
    global _settings
    if _settings is None:
        _settings = resolve_settings()
    return _settings


def _get_client() -> AsanaClient:
    """Build the process-wide client on first use.

    Raises AuthenticationError if not configured.
    """
    global _client
    if _client is None:
        _client = get_client(_get_settings())
    return _client


def _error_response(exc: AsanaHelperError, format: str) -> dict:
    logger.warning("Tool failed: %s", exc, extra={"kind": exc.kind})
    payload = error_payload(exc)
    if isinstance(exc, AuthenticationError):
        payload["help"] = get_auth_help_message()
    return format_response(payload, format)


def _respond(
    call: Callable[[AsanaClient], dict],
    format: str,
    text_renderer: Optional[Callable[[Any], str]] = None,
) -> dict:
    try:
        result = call(_get_client())
    except AsanaHelperError as e:
        return _error_response(e, format)
    return format_response(result, format, text_renderer)


async def _respond_cancellable(
    call: Callable[[AsanaClient, threading.Event], dict],
    format: str,
    text_renderer: Optional[Callable[[Any], str]] = None,
) -> dict:
    """Run a paginating call in a worker thread.

    Cancelling the tool call sets the request's cancellation event so the
    engine stops before its next page.
    """
    cancel_event = threading.Event()
    try:
        client = _get_client()
        result = await asyncio.to_thread(call, client, cancel_event)
    except asyncio.CancelledError:
        cancel_event.set()
        raise
    except AsanaHelperError as e:
        return _error_response(e, format)
    return format_response(result, format, text_renderer)


def _task_list_renderer(fields: Optional[str]) -> Callable[[dict], str]:
    columns = expand_fields(fields) if fields else DEFAULT_SEARCH_FIELDS

    def render(payload: dict) -> str:
        if "error" in payload:
            return json.dumps(payload, indent=2)
        return render_items(payload.get("tasks", []), columns, "list", noun="task")

    return render


def _persist(result: dict, output_file: Optional[str], file_format: str, fields: Optional[str], append: bool) -> dict:
    if output_file:
        columns = expand_fields(fields) if fields else DEFAULT_SEARCH_FIELDS
        result["file"] = write_items(result["tasks"], output_file, file_format, columns, append)
    return result


# ============================================================================
# Task Search & Listing
# ============================================================================


@mcp.tool()
async def search_tasks(
    workspace: Optional[str] = None,
    text: Optional[str] = None,
    assignee_any: Optional[str] = None,
    assignee_not: Optional[str] = None,
    projects_any: Optional[str] = None,
    projects_not: Optional[str] = None,
    projects_all: Optional[str] = None,
    sections_any: Optional[str] = None,
    tags_any: Optional[str] = None,
    tags_all: Optional[str] = None,
    completed: Optional[bool] = None,
    is_subtask: Optional[bool] = None,
    due_on: Optional[str] = None,
    due_on_before: Optional[str] = None,
    due_on_after: Optional[str] = None,
    created_at_after: Optional[str] = None,
    created_at_before: Optional[str] = None,
    modified_at_after: Optional[str] = None,
    modified_at_before: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_ascending: Optional[bool] = None,
    fields: Optional[str] = None,
    max_results: int = 100,
    output_file: Optional[str] = None,
    file_format: str = "json",
    append: bool = False,
    format: str = "json",
) -> dict:
    """Search tasks in a workspace with Asana's advanced search filters.

    Args:
        workspace: Workspace GID (defaults to the configured workspace)
        text: Case-insensitive match on task name
        assignee_any: Comma-separated user GIDs, or "me"
        projects_any / projects_all: Comma-separated project GIDs (OR / AND)
        due_on_before / due_on_after: Dates as YYYY-MM-DD
        sort_by: due_date, created_at, completed_at, likes or modified_at
        fields: Comma-separated fields or a preset (minimal, standard, full)
        max_results: Total cap across pages. Above 100 requires sort_by
                     created_at (default) or modified_at.
        output_file: Also write the tasks to this file (json, csv or markdown)
    """
    filters = {
        "text": text,
        "assignee_any": assignee_any,
        "assignee_not": assignee_not,
        "projects_any": projects_any,
        "projects_not": projects_not,
        "projects_all": projects_all,
        "sections_any": sections_any,
        "tags_any": tags_any,
        "tags_all": tags_all,
        "completed": completed,
        "is_subtask": is_subtask,
        "due_on": due_on,
        "due_on_before": due_on_before,
        "due_on_after": due_on_after,
        "created_at_after": created_at_after,
        "created_at_before": created_at_before,
        "modified_at_after": modified_at_after,
        "modified_at_before": modified_at_before,
    }

    def call(client: AsanaClient, cancel_event: threading.Event) -> dict:
        result = svc_search_tasks(
            client,
            workspace=workspace,
            fields=fields,
            sort_by=sort_by,
            sort_ascending=sort_ascending,
            max_results=max_results,
            cancel_event=cancel_event,
            **filters,
        )
        return _persist(result, output_file, file_format, fields, append)

    return await _respond_cancellable(call, format, _task_list_renderer(fields))


@mcp.tool()
async def list_project_tasks(
    project_gid: str,
    completed: Optional[bool] = None,
    section_gid: Optional[str] = None,
    assignee: Optional[str] = None,
    unassigned: bool = False,
    completed_since: Optional[str] = None,
    modified_since: Optional[str] = None,
    fields: Optional[str] = None,
    max_results: int = 500,
    output_file: Optional[str] = None,
    file_format: str = "json",
    append: bool = False,
    format: str = "json",
) -> dict:
    """List every task of a project, following Asana's page offsets.

    Args:
        project_gid: Project GID
        completed: Keep only completed (True) or incomplete (False) tasks
        section_gid: Keep only tasks in this section
        assignee: Keep only tasks assigned to this user GID (or "me")
        unassigned: Keep only tasks with no assignee (wins over assignee)
        completed_since: Passed to Asana; "now" lists only incomplete tasks
        max_results: Cap on returned tasks (default 500)
    """
    def call(client: AsanaClient, cancel_event: threading.Event) -> dict:
        result = svc_list_tasks(
            client,
            project_gid,
            completed=completed,
            completed_since=completed_since,
            modified_since=modified_since,
            section=section_gid,
            assignee=assignee,
            unassigned=unassigned,
            fields=fields,
            max_results=max_results,
            cancel_event=cancel_event,
        )
        return _persist(result, output_file, file_format, fields, append)

    return await _respond_cancellable(call, format, _task_list_renderer(fields))


@mcp.tool()
async def get_my_tasks(
    workspace: Optional[str] = None,
    max_results: int = 100,
    completed: bool = False,
    format: str = "json",
) -> dict:
    """Get tasks assigned to you.

    Args:
        completed: Return recently completed tasks, newest first, instead of open ones (max 100)
    """
    def call(client: AsanaClient, cancel_event: threading.Event) -> dict:
        return svc_get_my_tasks(
            client, workspace=workspace, max_results=max_results,
            cancel_event=cancel_event, completed=completed,
        )

    return await _respond_cancellable(call, format, _task_list_renderer(None))


# ============================================================================
# Task Details
# ============================================================================


@mcp.tool()
def get_task(task_gid: str, fields: Optional[str] = None, format: str = "json") -> dict:
    """Get a task with notes, subtasks, projects, tags and comment count.

    Args:
        task_gid: Task GID
        fields: Optional comma-separated fields replacing the default detail set
    """
    return _respond(lambda client: svc_get_task(client, task_gid, fields=fields), format)


@mcp.tool()
def get_task_comments(task_gid: str, format: str = "json") -> dict:
    """Get all comments on a task, oldest first."""
    return _respond(lambda client: svc_get_task_comments(client, task_gid), format)


@mcp.tool()
def get_subtasks(task_gid: str, fields: Optional[str] = None, format: str = "json") -> dict:
    """List a task's subtasks."""
    return _respond(lambda client: svc_get_subtasks(client, task_gid, fields=fields), format)


# ============================================================================
# Task Writes
# ============================================================================


def _render_task_write(verb: str) -> Callable[[dict], str]:
    def render(payload: dict) -> str:
        if "error" in payload:
            return f"Error: {payload.get('message')}"
        task = payload.get("task", {})
        return (
            f"Task {verb} successfully!\n"
            f"Name: {task.get('name')}\n"
            f"GID: {task.get('gid')}\n"
            f"URL: {payload.get('url')}"
        )

    return render


@mcp.tool()
def create_task(
    name: str,
    notes: Optional[str] = None,
    notes_file: Optional[str] = None,
    html_notes_file: Optional[str] = None,
    assignee: Optional[str] = None,
    projects: Optional[str] = None,
    workspace: Optional[str] = None,
    parent: Optional[str] = None,
    due_on: Optional[str] = None,
    start_on: Optional[str] = None,
    format: str = "json",
) -> dict:
    """Create a task. Markdown in notes is converted to Asana rich text.

    Args:
        name: Task name
        notes: Description (markdown supported)
        notes_file: Path to a markdown file used as the description
        html_notes_file: Path to an Asana rich-text HTML file (wins over notes)
        assignee: User GID or "me"
        projects: Comma-separated project GIDs
        parent: Parent task GID (creates a subtask)
        due_on / start_on: Dates as YYYY-MM-DD
    """
    return _respond(
        lambda client: svc_create_task(
            client,
            name,
            notes=notes,
            notes_file=notes_file,
            html_notes_file=html_notes_file,
            assignee=assignee,
            projects=projects,
            workspace=workspace,
            parent=parent,
            due_on=due_on,
            start_on=start_on,
        ),
        format,
        _render_task_write("created"),
    )


@mcp.tool()
def update_task(
    task_gid: str,
    name: Optional[str] = None,
    notes: Optional[str] = None,
    notes_file: Optional[str] = None,
    html_notes_file: Optional[str] = None,
    assignee: Optional[str] = None,
    parent: Optional[str] = None,
    due_on: Optional[str] = None,
    start_on: Optional[str] = None,
    completed: Optional[bool] = None,
    format: str = "json",
) -> dict:
    """Update a task. Markdown in notes is converted to Asana rich text."""
    return _respond(
        lambda client: svc_update_task(
            client,
            task_gid,
            name=name,
            notes=notes,
            notes_file=notes_file,
            html_notes_file=html_notes_file,
            assignee=assignee,
            parent=parent,
            due_on=due_on,
            start_on=start_on,
            completed=completed,
        ),
        format,
        _render_task_write("updated"),
    )


@mcp.tool()
def add_comment(task_gid: str, text: str, format: str = "json") -> dict:
    """Add a comment to a task. Markdown is supported."""
    return _respond(lambda client: svc_add_comment(client, task_gid, text), format)


@mcp.tool()
def add_task_to_project(
    task_gid: str,
    project_gid: str,
    section_gid: Optional[str] = None,
    format: str = "json",
) -> dict:
    """Add a task to a project, optionally into a section."""
    return _respond(
        lambda client: svc_add_task_to_project(client, task_gid, project_gid, section_gid),
        format,
    )


@mcp.tool()
def remove_task_from_project(task_gid: str, project_gid: str, format: str = "json") -> dict:
    """Remove a task from a project."""
    return _respond(lambda client: svc_remove_task_from_project(client, task_gid, project_gid), format)


# ============================================================================
# Projects & Sections
# ============================================================================


@mcp.tool()
def search_projects(
    name: Optional[str] = None,
    archived: Optional[bool] = None,
    workspace: Optional[str] = None,
    no_cache: bool = False,
    limit: int = 50,
    offset: int = 0,
    format: str = "json",
) -> dict:
    """Search projects by partial name.

    The workspace's project list is cached for 24 hours; pass no_cache=True
    to refetch.
    """
    return _respond(
        lambda client: svc_search_projects(
            client,
            get_project_cache(_get_settings()),
            workspace=workspace,
            name=name,
            archived=archived,
            no_cache=no_cache,
            limit=limit,
            offset=offset,
        ),
        format,
    )


@mcp.tool()
def get_sections(project_gid: str, format: str = "json") -> dict:
    """List the sections of a project."""
    return _respond(lambda client: svc_get_sections(client, project_gid), format)


# ============================================================================
# Conversion
# ============================================================================


@mcp.tool()
def convert_markdown(content: str, direction: str = "to_html", format: str = "json") -> dict:
    """Preview markdown to Asana rich text conversion (or the reverse).

    Args:
        content: Markdown (to_html) or Asana rich text (to_markdown)
        direction: "to_html" or "to_markdown"
    """
    if direction == "to_html":
        return format_response({"html": markdown_to_html(content)}, format)
    if direction == "to_markdown":
        return format_response({"markdown": html_to_markdown(content)}, format)
    return _error_response(
        ValidationError(f"direction must be 'to_html' or 'to_markdown', got '{direction}'"),
        format,
    )


def main():
    """Run the MCP server."""
    settings = _get_settings()
    # stdout carries the protocol, so only the file log is enabled.
    configure_logging(settings.get_log_file(), console=False)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
