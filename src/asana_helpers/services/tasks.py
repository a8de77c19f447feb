"""Shared Asana task operations for CLI and MCP."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from ..asana_client import AsanaClient, iterate_pages
from ..convert import has_markdown, html_to_markdown, markdown_to_html, prepare_task_updates
from ..engines import fetch_tasks, search_tasks as run_search, validate_fetch_query, validate_search_options
from ..errors import AsanaAPIError, FileIOError, ValidationError
from ..fields import expand_fields, to_opt_fields, with_gid
from ..models import PAGE_SIZE, FetchQuery, SearchQuery
from ..validation import require, validate_date, validate_gid, validate_gid_list, validate_positive_int
from .context import resolve_workspace

logger = logging.getLogger(__name__)

TASK_URL = "https://app.asana.com/0/0/{gid}"

TASK_DETAIL_FIELDS = [
    "name", "gid", "completed", "due_on", "due_at", "start_on",
    "notes", "html_notes",
    "assignee.name", "assignee.gid",
    "projects.name", "projects.gid",
    "tags.name", "tags.gid",
    "subtasks.name", "subtasks.gid", "subtasks.completed",
    "parent.name", "parent.gid",
    "created_at", "modified_at",
    "num_likes", "liked",
    "permalink_url",
]

STORY_FIELDS = "created_at,created_by.name,created_by.gid,resource_subtype,text,type"
SUBTASK_FIELDS = ["name", "gid", "completed", "assignee.name", "due_on"]

# Diagnostics attached to a rejected write carrying generated HTML.
MAX_HTML_IN_ERROR = 2000

_FILTER_SUFFIXES = ("any", "not", "all", "before", "after")
_USER_FILTERS = ("assignee", "followers", "created_by", "assigned_by", "liked_by", "commented_on_by")


def task_url(gid: str) -> str:
    return TASK_URL.format(gid=gid)


def normalize_search_filters(filters: dict[str, Any]) -> dict[str, Any]:
    """Map tool-style names (`due_on_before`) to Asana's (`due_on.before`) and validate values.

    Dates must be YYYY-MM-DD and id filters comma-separated numeric gids
    ("me" is accepted for user filters).
    """
    normalized: dict[str, Any] = {}
    for key, value in filters.items():
        if value is None:
            continue
        name = key
        if "." not in name:
            base, _, suffix = name.rpartition("_")
            if base and suffix in _FILTER_SUFFIXES:
                name = f"{base}.{suffix}"

        base, _, suffix = name.partition(".")
        if base.endswith("_on") and isinstance(value, str):
            value = validate_date(value, key)
        elif suffix in ("any", "not", "all"):
            value = validate_gid_list(value, key, allow_me=base in _USER_FILTERS)
        normalized[name] = value
    return normalized


def search_tasks(
    client: AsanaClient,
    workspace: Optional[str] = None,
    fields: Optional[Any] = None,
    sort_by: Optional[str] = None,
    sort_ascending: Optional[bool] = None,
    max_results: int = PAGE_SIZE,
    cancel_event: Optional[threading.Event] = None,
    **filters: Any,
) -> dict:
    """Search a workspace, paginating past Asana's 100-task page where allowed."""
    validate_positive_int(max_results, "max_results")
    query = SearchQuery(
        workspace=workspace or "",
        filters=normalize_search_filters(filters),
        sort_by=sort_by,
        sort_ascending=sort_ascending,
        max_results=max_results,
        cancel_event=cancel_event,
    )
    if fields:
        query.fields = expand_fields(fields)
    validate_search_options(query)
    query.workspace = resolve_workspace(client, workspace)
    tasks = run_search(client, query)
    return {"tasks": tasks, "count": len(tasks)}


def list_tasks(
    client: AsanaClient,
    collection_gid: str,
    collection_type: str = "project",
    completed: Optional[bool] = None,
    completed_since: Optional[str] = None,
    modified_since: Optional[str] = None,
    section: Optional[str] = None,
    assignee: Optional[str] = None,
    unassigned: bool = False,
    fields: Optional[Any] = None,
    max_results: int = 500,
    cancel_event: Optional[threading.Event] = None,
) -> dict:
    """List a project's (or section's, tag's) tasks with client-side filters."""
    validate_positive_int(max_results, "max_results")
    validate_gid(assignee, "assignee", allow_me=True)
    resolve_me = assignee == "me" and not unassigned
    query = FetchQuery(
        collection_gid=collection_gid,
        collection_type=collection_type,
        completed=completed,
        completed_since=completed_since,
        modified_since=modified_since,
        section=section,
        assignee=None if unassigned or resolve_me else assignee,
        unassigned=unassigned,
        max_results=max_results,
        cancel_event=cancel_event,
    )
    if fields:
        query.fields = expand_fields(fields)
    # Resolve "me" only once the query is valid.
    validate_fetch_query(query)
    if resolve_me:
        query.assignee = client.get_user("me")["gid"]
    tasks = fetch_tasks(client, query)
    return {"tasks": tasks, "count": len(tasks)}


def get_my_tasks(
    client: AsanaClient,
    workspace: Optional[str] = None,
    fields: Optional[Any] = None,
    max_results: int = PAGE_SIZE,
    cancel_event: Optional[threading.Event] = None,
    completed: bool = False,
) -> dict:
    """Tasks assigned to the authenticated user.

    Incomplete tasks by default. With `completed`, the most recently
    completed ones first; completed_at is not a cursor field, so that
    listing is limited to a single page.
    """
    if completed:
        return search_tasks(
            client,
            workspace=workspace,
            fields=fields or ["name", "gid", "completed_at", "projects.name", "completed"],
            sort_by="completed_at",
            sort_ascending=False,
            max_results=max_results,
            cancel_event=cancel_event,
            **{"assignee.any": "me", "completed": True},
        )
    return search_tasks(
        client,
        workspace=workspace,
        fields=fields or ["name", "gid", "due_on", "projects.name", "completed"],
        max_results=max_results,
        cancel_event=cancel_event,
        **{"assignee.any": "me", "completed": False},
    )


def _list_stories(client: AsanaClient, task_gid: str) -> list[dict]:
    params = {"opt_fields": STORY_FIELDS, "limit": PAGE_SIZE}
    return iterate_pages(lambda p: client.get_stories_for_task(task_gid, p), params)


def get_task_comments(client: AsanaClient, task_gid: str, comments_only: bool = True) -> dict:
    """All stories of a task, reduced to comments unless asked otherwise."""
    validate_gid(task_gid, "task_gid")
    stories = _list_stories(client, task_gid)
    if comments_only:
        stories = [s for s in stories if s.get("resource_subtype") == "comment_added"]
    return {"task_gid": task_gid, "comments": stories, "count": len(stories)}


def get_task(
    client: AsanaClient,
    task_gid: str,
    fields: Optional[Any] = None,
    with_comment_count: bool = True,
) -> dict:
    validate_gid(task_gid, "task_gid")
    opt_fields = to_opt_fields(with_gid(expand_fields(fields))) if fields else to_opt_fields(TASK_DETAIL_FIELDS)
    task = client.get_task(task_gid, opt_fields)
    if with_comment_count:
        task["comment_count"] = get_task_comments(client, task_gid)["count"]
    return {"task": task}


def get_subtasks(client: AsanaClient, task_gid: str, fields: Optional[Any] = None) -> dict:
    validate_gid(task_gid, "task_gid")
    opt_fields = to_opt_fields(with_gid(expand_fields(fields) if fields else SUBTASK_FIELDS))
    params = {"opt_fields": opt_fields, "limit": PAGE_SIZE}
    subtasks = iterate_pages(lambda p: client.get_subtasks(task_gid, p), params)
    return {"task_gid": task_gid, "subtasks": subtasks, "count": len(subtasks)}


def read_text_file(path: str, label: str) -> str:
    """Read a UTF-8 file, surfacing the OS error message on failure."""
    try:
        return Path(path).expanduser().resolve().read_text(encoding="utf-8")
    except OSError as e:
        raise FileIOError(f"Failed to read {label} file '{path}': {e}") from e


def _with_html_diagnostics(write: Callable[[], dict], html: Optional[str]) -> dict:
    """Run a write; on HTTP 400 attach the generated HTML to the error."""
    try:
        return write()
    except AsanaAPIError as e:
        if e.status_code != 400 or not html:
            raise
        snippet = html if len(html) <= MAX_HTML_IN_ERROR else html[:MAX_HTML_IN_ERROR] + "..."
        logger.warning("Asana rejected generated HTML", extra={"html_length": len(html)})
        raise AsanaAPIError(f"{e}\n\nGenerated HTML:\n{snippet}", e.status_code) from e


def _notes_payload(
    notes: Optional[str],
    notes_file: Optional[str],
    html_notes: Optional[str],
    html_notes_file: Optional[str],
) -> dict:
    """Resolve notes inputs into `notes` or `html_notes`.

    Markdown notes become `html_notes`. Explicit HTML wins over notes.
    """
    data: dict = {}
    if notes_file:
        notes = read_text_file(notes_file, "notes")
    if notes is not None:
        data = prepare_task_updates({"notes": notes})

    if html_notes_file:
        html_notes = read_text_file(html_notes_file, "HTML notes")
    if html_notes is not None:
        data.pop("notes", None)
        data["html_notes"] = html_notes
    return data


def create_task(
    client: AsanaClient,
    name: str,
    notes: Optional[str] = None,
    notes_file: Optional[str] = None,
    html_notes: Optional[str] = None,
    html_notes_file: Optional[str] = None,
    assignee: Optional[str] = None,
    projects: Optional[Any] = None,
    workspace: Optional[str] = None,
    parent: Optional[str] = None,
    due_on: Optional[str] = None,
    start_on: Optional[str] = None,
) -> dict:
    require({"name": name}, ["name"])
    data: dict[str, Any] = {"name": name}
    data["workspace"] = resolve_workspace(client, workspace)
    if assignee:
        data["assignee"] = validate_gid(assignee, "assignee", allow_me=True)
    if projects:
        data["projects"] = validate_gid_list(projects, "projects").split(",")
    if parent:
        data["parent"] = validate_gid(parent, "parent")
    if due_on:
        data["due_on"] = validate_date(due_on, "due_on")
    if start_on:
        data["start_on"] = validate_date(start_on, "start_on")
    data.update(_notes_payload(notes, notes_file, html_notes, html_notes_file))

    task = _with_html_diagnostics(
        lambda: client.create_task(data, opt_fields="name,gid,permalink_url"),
        data.get("html_notes"),
    )
    logger.info("Created task %s", task.get("gid"), extra={"task_gid": task.get("gid")})
    return {"task": task, "url": task_url(task.get("gid", ""))}


def update_task(
    client: AsanaClient,
    task_gid: str,
    name: Optional[str] = None,
    notes: Optional[str] = None,
    notes_file: Optional[str] = None,
    html_notes: Optional[str] = None,
    html_notes_file: Optional[str] = None,
    assignee: Optional[str] = None,
    parent: Optional[str] = None,
    due_on: Optional[str] = None,
    start_on: Optional[str] = None,
    completed: Optional[bool] = None,
) -> dict:
    validate_gid(task_gid, "task_gid")
    data: dict[str, Any] = {}
    if name:
        data["name"] = name
    if assignee:
        data["assignee"] = validate_gid(assignee, "assignee", allow_me=True)
    if parent:
        data["parent"] = validate_gid(parent, "parent")
    if due_on:
        data["due_on"] = validate_date(due_on, "due_on")
    if start_on:
        data["start_on"] = validate_date(start_on, "start_on")
    if completed is not None:
        data["completed"] = completed
    data.update(_notes_payload(notes, notes_file, html_notes, html_notes_file))

    if not data:
        raise ValidationError("No fields to update")

    task = _with_html_diagnostics(lambda: client.update_task(task_gid, data), data.get("html_notes"))
    return {"task": task, "url": task_url(task_gid)}


def add_comment(client: AsanaClient, task_gid: str, text: str) -> dict:
    """Post a comment; markdown is sent as `html_text`."""
    validate_gid(task_gid, "task_gid")
    require({"text": text}, ["text"])
    if has_markdown(text):
        data = {"html_text": markdown_to_html(text)}
    else:
        data = {"text": text}
    story = _with_html_diagnostics(
        lambda: client.create_story_for_task(task_gid, data), data.get("html_text")
    )
    return {"task_gid": task_gid, "comment": story}


def add_task_to_project(
    client: AsanaClient,
    task_gid: str,
    project_gid: str,
    section_gid: Optional[str] = None,
) -> dict:
    validate_gid(task_gid, "task_gid")
    validate_gid(project_gid, "project_gid")
    validate_gid(section_gid, "section_gid")
    client.add_project_for_task(task_gid, project_gid, section_gid)
    return {"task_gid": task_gid, "project_gid": project_gid, "section_gid": section_gid, "added": True}


def remove_task_from_project(client: AsanaClient, task_gid: str, project_gid: str) -> dict:
    validate_gid(task_gid, "task_gid")
    validate_gid(project_gid, "project_gid")
    client.remove_project_for_task(task_gid, project_gid)
    return {"task_gid": task_gid, "project_gid": project_gid, "removed": True}


def export_notes(client: AsanaClient, task_gid: str, path: str) -> dict:
    """Write a task's description to a markdown file."""
    validate_gid(task_gid, "task_gid")
    task = client.get_task(task_gid, "name,html_notes,notes")
    html = task.get("html_notes")
    markdown = html_to_markdown(html) if html else (task.get("notes") or "")

    target = Path(path).expanduser()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(markdown + "\n" if markdown else "", encoding="utf-8")
    except OSError as e:
        raise FileIOError(f"Failed to write notes to '{path}': {e}") from e
    return {"task_gid": task_gid, "name": task.get("name"), "path": str(target), "characters": len(markdown)}
