"""Main CLI for Asana Helpers."""

import sys
from typing import Any, Callable, List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from .asana_client import AsanaClient, AsanaConfig
from .config import get_auth_help_message, resolve_settings, save_user_config
from .convert import html_to_markdown, markdown_to_html
from .errors import AsanaHelperError, AuthenticationError
from .fields import DEFAULT_SEARCH_FIELDS, expand_fields
from .log import configure_logging
from .output import ITEM_FORMATS, format_response, render_cli, render_items, write_items
from .services import get_client, get_project_cache, resolve_context_info
from .services.projects import (
    clear_cache as svc_clear_cache,
    get_sections as svc_get_sections,
    search_projects as svc_search_projects,
)
from .services.tasks import (
    add_comment as svc_add_comment,
    add_task_to_project as svc_add_task_to_project,
    create_task as svc_create_task,
    export_notes as svc_export_notes,
    get_my_tasks as svc_get_my_tasks,
    get_subtasks as svc_get_subtasks,
    get_task as svc_get_task,
    get_task_comments as svc_get_task_comments,
    list_tasks as svc_list_tasks,
    remove_task_from_project as svc_remove_task_from_project,
    search_tasks as svc_search_tasks,
    update_task as svc_update_task,
)
from .services.users import get_current_user as svc_get_current_user

app = typer.Typer(
    name="asana-helpers",
    help="Asana Helpers - search, read and write Asana tasks from the terminal",
)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging on stderr"),
):
    """Asana task search, listing and markdown-aware writes."""
    settings = resolve_settings()
    configure_logging(settings.get_log_file(), verbose=verbose)


def _print_plain(text: str) -> None:
    console.print(text, markup=False, highlight=False, soft_wrap=True)


def _fail(exc: AsanaHelperError) -> None:
    console.print(f"[red]Error:[/red] {escape(str(exc))}")
    if isinstance(exc, AuthenticationError):
        console.print("")
        _print_plain(get_auth_help_message())
    raise typer.Exit(1)


def get_client_or_exit() -> AsanaClient:
    """Get configured Asana client or exit with error."""
    try:
        return get_client(resolve_settings())
    except AuthenticationError as e:
        _fail(e)


def _run(call: Callable[[AsanaClient], dict]) -> dict:
    client = get_client_or_exit()
    try:
        return call(client)
    except AsanaHelperError as e:
        _fail(e)


def _show_items(
    items: list[dict],
    fields: Optional[str],
    output_format: str,
    noun: str,
    default_fields: list[str] = DEFAULT_SEARCH_FIELDS,
    output: Optional[str] = None,
    file_format: str = "json",
    append: bool = False,
) -> None:
    columns = expand_fields(fields) if fields else default_fields
    if output_format not in ITEM_FORMATS:
        console.print(f"[red]Error:[/red] Unknown format '{output_format}'. Use one of: {', '.join(ITEM_FORMATS)}")
        raise typer.Exit(1)

    if output:
        try:
            written = write_items(items, output, file_format, columns, append)
        except AsanaHelperError as e:
            _fail(e)
        verb = "Appended" if written["appended"] else "Wrote"
        console.print(f"[green]✓[/green] {verb} {written['count']} {noun}(s) to {escape(written['path'])}", highlight=False)
        return

    rendered = render_items(items, columns, output_format, noun=noun)
    if isinstance(rendered, str):
        _print_plain(rendered)
    else:
        console.print(rendered)


# ============================================================================
# Context & Auth Commands
# ============================================================================


@app.command("context")
def show_context(
    output_format: str = typer.Option("json", "--format", "-f", help="Output format (json|text)"),
):
    """Show where configuration was loaded from and whether a key is set."""
    data = resolve_context_info(resolve_settings())
    _print_plain(render_cli(format_response(data, output_format)))


auth_app = typer.Typer(help="Authentication commands")
app.add_typer(auth_app, name="auth")


@auth_app.command("setup")
def auth_setup(
    api_key: str = typer.Option(..., prompt=True, hide_input=True, help="Asana personal access token"),
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Default workspace GID"),
):
    """Configure Asana API authentication."""
    client = AsanaClient(AsanaConfig(api_key=api_key, workspace=workspace))
    try:
        info = svc_get_current_user(client)
    except AsanaHelperError as e:
        console.print(f"[red]Error:[/red] Failed to connect: {escape(str(e))}")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Connected as {escape(str(info['user']['name']))}")
    workspaces = info["workspaces"]
    if not workspace and workspaces:
        if len(workspaces) == 1:
            workspace = workspaces[0]["gid"]
            console.print(f"\n[dim]Using workspace: {escape(str(workspaces[0]['name']))}[/dim]")
        else:
            console.print("\nSelect default workspace:")
            for i, ws in enumerate(workspaces):
                console.print(f"  [{i + 1}] {escape(str(ws['name']))}")
            choice = typer.prompt("Enter number", type=int, default=1)
            workspace = workspaces[choice - 1]["gid"]

    path = save_user_config(api_key=api_key, workspace=workspace)
    console.print(f"\n[green]✓[/green] Configuration saved to {escape(str(path))}")


@auth_app.command("status")
def auth_status():
    """Check authentication status."""
    settings = resolve_settings()
    if not settings.api_key:
        console.print("[red]✗[/red] Not authenticated")
        console.print("Run: [cyan]asana-helpers auth setup[/cyan]")
        raise typer.Exit(1)

    try:
        info = svc_get_current_user(get_client(settings))
    except AsanaHelperError as e:
        console.print(f"[red]✗[/red] Authentication failed: {escape(str(e))}")
        raise typer.Exit(1)

    user = info["user"]
    console.print("[green]✓[/green] Authenticated")
    console.print(f"  User: {escape(str(user['name']))} ({escape(str(user.get('email') or ''))})")
    console.print(f"  Workspaces: {escape(', '.join(str(w['name']) for w in info['workspaces']))}")
    if settings.workspace:
        console.print(f"  Default workspace: {settings.workspace}")


# ============================================================================
# Task Listing Commands
# ============================================================================

tasks_app = typer.Typer(help="Search and list tasks")
app.add_typer(tasks_app, name="tasks")


@tasks_app.command("search")
def tasks_search(
    text: Optional[str] = typer.Option(None, "--text", "-t", help="Match on task name"),
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace GID"),
    assignee: Optional[str] = typer.Option(None, "--assignee", "-a", help="assignee.any: user GIDs or 'me'"),
    projects: Optional[str] = typer.Option(None, "--projects", "-p", help="projects.any: comma-separated GIDs"),
    projects_all: Optional[str] = typer.Option(None, "--projects-all", help="projects.all: comma-separated GIDs"),
    sections: Optional[str] = typer.Option(None, "--sections", help="sections.any: comma-separated GIDs"),
    tags: Optional[str] = typer.Option(None, "--tags", help="tags.any: comma-separated GIDs"),
    completed: Optional[bool] = typer.Option(None, "--completed/--incomplete", help="Completion status"),
    due_before: Optional[str] = typer.Option(None, "--due-before", help="due_on.before (YYYY-MM-DD)"),
    due_after: Optional[str] = typer.Option(None, "--due-after", help="due_on.after (YYYY-MM-DD)"),
    filters: Optional[List[str]] = typer.Option(None, "--filter", help="Any search parameter as key=value"),
    sort_by: Optional[str] = typer.Option(None, "--sort-by", help="due_date|created_at|completed_at|likes|modified_at"),
    ascending: Optional[bool] = typer.Option(None, "--asc/--desc", help="Sort direction"),
    fields: Optional[str] = typer.Option(None, "--fields", help="Comma-separated fields or preset (minimal|standard|full)"),
    max_results: int = typer.Option(100, "--max", "-n", help="Maximum tasks across pages"),
    output_format: str = typer.Option("list", "--format", "-f", help="list|table|inline|json|csv|markdown"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write results to a file"),
    file_format: str = typer.Option("json", "--file-format", help="json|csv|markdown"),
    append: bool = typer.Option(False, "--append", help="Append to the output file"),
):
    """Search tasks using Asana's advanced search.

    More than 100 results requires sorting by created_at (default) or modified_at.
    """
    search_filters: dict[str, Any] = {
        "text": text,
        "assignee_any": assignee,
        "projects_any": projects,
        "projects_all": projects_all,
        "sections_any": sections,
        "tags_any": tags,
        "completed": completed,
        "due_on_before": due_before,
        "due_on_after": due_after,
    }
    for item in filters or []:
        key, sep, value = item.partition("=")
        if not sep:
            console.print(f"[red]Error:[/red] --filter expects key=value, got '{escape(item)}'")
            raise typer.Exit(1)
        search_filters[key.strip()] = value.strip()

    result = _run(lambda client: svc_search_tasks(
        client,
        workspace=workspace,
        fields=fields,
        sort_by=sort_by,
        sort_ascending=ascending,
        max_results=max_results,
        **search_filters,
    ))
    _show_items(result["tasks"], fields, output_format, "task", output=output, file_format=file_format, append=append)


@tasks_app.command("list")
def tasks_list(
    project_gid: str = typer.Argument(..., help="Project GID"),
    completed: Optional[bool] = typer.Option(None, "--completed/--incomplete", help="Completion status"),
    section: Optional[str] = typer.Option(None, "--section", "-s", help="Only tasks in this section GID"),
    assignee: Optional[str] = typer.Option(None, "--assignee", "-a", help="Only tasks assigned to this GID or 'me'"),
    unassigned: bool = typer.Option(False, "--unassigned", help="Only unassigned tasks (wins over --assignee)"),
    completed_since: Optional[str] = typer.Option(None, "--completed-since", help="Asana completed_since ('now' = incomplete)"),
    modified_since: Optional[str] = typer.Option(None, "--modified-since", help="Asana modified_since"),
    fields: Optional[str] = typer.Option(None, "--fields", help="Comma-separated fields or preset"),
    max_results: int = typer.Option(500, "--max", "-n", help="Maximum tasks"),
    output_format: str = typer.Option("list", "--format", "-f", help="list|table|inline|json|csv|markdown"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write results to a file"),
    file_format: str = typer.Option("json", "--file-format", help="json|csv|markdown"),
    append: bool = typer.Option(False, "--append", help="Append to the output file"),
):
    """List all tasks in a project, filtered page by page."""
    result = _run(lambda client: svc_list_tasks(
        client,
        project_gid,
        completed=completed,
        completed_since=completed_since,
        modified_since=modified_since,
        section=section,
        assignee=assignee,
        unassigned=unassigned,
        fields=fields,
        max_results=max_results,
    ))
    _show_items(
        result["tasks"], fields, output_format, "task",
        default_fields=["name", "gid"], output=output, file_format=file_format, append=append,
    )


@tasks_app.command("mine")
def tasks_mine(
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace GID"),
    max_results: int = typer.Option(100, "--max", "-n", help="Maximum tasks"),
    completed: bool = typer.Option(False, "--completed", help="Show recently completed tasks instead"),
    output_format: str = typer.Option("list", "--format", "-f", help="list|table|inline|json|csv|markdown"),
):
    """Show incomplete (or recently completed) tasks assigned to you."""
    result = _run(lambda client: svc_get_my_tasks(
        client, workspace=workspace, max_results=max_results, completed=completed,
    ))
    date_field = "completed_at" if completed else "due_on"
    _show_items(result["tasks"], None, output_format, "task", default_fields=["name", "gid", date_field, "projects.name"])


# ============================================================================
# Single Task Commands
# ============================================================================

task_app = typer.Typer(help="Read and write a single task")
app.add_typer(task_app, name="task")


def _render_task_text(payload: dict) -> str:
    task = payload["task"]
    lines = [f"{task.get('name')} ({task.get('gid')})"]
    for label, value in (
        ("Completed", task.get("completed")),
        ("Assignee", (task.get("assignee") or {}).get("name")),
        ("Due", task.get("due_on")),
        ("Projects", ", ".join(p.get("name", "") for p in task.get("projects") or [])),
        ("Parent", (task.get("parent") or {}).get("name")),
        ("Comments", task.get("comment_count")),
    ):
        if value not in (None, ""):
            lines.append(f"  {label}: {value}")
    subtasks = task.get("subtasks") or []
    if subtasks:
        lines.append("  Subtasks:")
        lines.extend(f"    [{'x' if s.get('completed') else ' '}] {s.get('name')}" for s in subtasks)
    notes = html_to_markdown(task["html_notes"]) if task.get("html_notes") else task.get("notes")
    if notes:
        lines.extend(["", notes])
    return "\n".join(lines)


@task_app.command("show")
def task_show(
    task_gid: str = typer.Argument(..., help="Task GID"),
    fields: Optional[str] = typer.Option(None, "--fields", help="Comma-separated fields replacing the default set"),
    output_format: str = typer.Option("text", "--format", "-f", help="Output format (json|text)"),
):
    """Show a task with notes rendered as markdown."""
    result = _run(lambda client: svc_get_task(client, task_gid, fields=fields))
    _print_plain(render_cli(format_response(result, output_format, _render_task_text)))


@task_app.command("comments")
def task_comments(
    task_gid: str = typer.Argument(..., help="Task GID"),
    output_format: str = typer.Option("list", "--format", "-f", help="list|table|inline|json|csv|markdown"),
):
    """Show the comments on a task."""
    result = _run(lambda client: svc_get_task_comments(client, task_gid))
    _show_items(result["comments"], None, output_format, "comment", default_fields=["created_at", "created_by.name", "text"])


@task_app.command("subtasks")
def task_subtasks(
    task_gid: str = typer.Argument(..., help="Task GID"),
    output_format: str = typer.Option("list", "--format", "-f", help="list|table|inline|json|csv|markdown"),
):
    """List a task's subtasks."""
    result = _run(lambda client: svc_get_subtasks(client, task_gid))
    _show_items(result["subtasks"], None, output_format, "subtask", default_fields=["name", "gid", "completed"])


@task_app.command("create")
def task_create(
    name: str = typer.Argument(..., help="Task name"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Description (markdown supported)"),
    notes_file: Optional[str] = typer.Option(None, "--notes-file", help="Markdown file for the description"),
    html_notes_file: Optional[str] = typer.Option(None, "--html-notes-file", help="Asana rich-text HTML file"),
    assignee: Optional[str] = typer.Option(None, "--assignee", "-a", help="User GID or 'me'"),
    projects: Optional[str] = typer.Option(None, "--projects", "-p", help="Comma-separated project GIDs"),
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace GID"),
    parent: Optional[str] = typer.Option(None, "--parent", help="Parent task GID"),
    due_on: Optional[str] = typer.Option(None, "--due", help="Due date (YYYY-MM-DD)"),
    start_on: Optional[str] = typer.Option(None, "--start", help="Start date (YYYY-MM-DD)"),
):
    """Create a task."""
    result = _run(lambda client: svc_create_task(
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
    ))
    task = result["task"]
    console.print(f"[green]✓[/green] Created: {escape(str(task.get('name')))} ({task.get('gid')})")
    _print_plain(result["url"])


@task_app.command("update")
def task_update(
    task_gid: str = typer.Argument(..., help="Task GID"),
    name: Optional[str] = typer.Option(None, "--name", help="New task name"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Description (markdown supported)"),
    notes_file: Optional[str] = typer.Option(None, "--notes-file", help="Markdown file for the description"),
    html_notes_file: Optional[str] = typer.Option(None, "--html-notes-file", help="Asana rich-text HTML file"),
    assignee: Optional[str] = typer.Option(None, "--assignee", "-a", help="User GID or 'me'"),
    parent: Optional[str] = typer.Option(None, "--parent", help="Parent task GID"),
    due_on: Optional[str] = typer.Option(None, "--due", help="Due date (YYYY-MM-DD)"),
    start_on: Optional[str] = typer.Option(None, "--start", help="Start date (YYYY-MM-DD)"),
    completed: Optional[bool] = typer.Option(None, "--completed/--incomplete", help="Completion status"),
):
    """Update a task."""
    result = _run(lambda client: svc_update_task(
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
    ))
    console.print(f"[green]✓[/green] Updated: {escape(str(result['task'].get('name')))} ({task_gid})")


@task_app.command("comment")
def task_comment(
    task_gid: str = typer.Argument(..., help="Task GID"),
    text: str = typer.Argument(..., help="Comment text (markdown supported)"),
):
    """Add a comment to a task."""
    _run(lambda client: svc_add_comment(client, task_gid, text))
    console.print(f"[green]✓[/green] Comment added to {task_gid}")


@task_app.command("add-project")
def task_add_project(
    task_gid: str = typer.Argument(..., help="Task GID"),
    project_gid: str = typer.Argument(..., help="Project GID"),
    section: Optional[str] = typer.Option(None, "--section", "-s", help="Section GID within the project"),
):
    """Add a task to a project."""
    _run(lambda client: svc_add_task_to_project(client, task_gid, project_gid, section))
    console.print(f"[green]✓[/green] Added {task_gid} to project {project_gid}")


@task_app.command("remove-project")
def task_remove_project(
    task_gid: str = typer.Argument(..., help="Task GID"),
    project_gid: str = typer.Argument(..., help="Project GID"),
):
    """Remove a task from a project."""
    _run(lambda client: svc_remove_task_from_project(client, task_gid, project_gid))
    console.print(f"[green]✓[/green] Removed {task_gid} from project {project_gid}")


@task_app.command("export-notes")
def task_export_notes(
    task_gid: str = typer.Argument(..., help="Task GID"),
    path: str = typer.Argument(..., help="Markdown file to write"),
):
    """Save a task's description as a markdown file."""
    result = _run(lambda client: svc_export_notes(client, task_gid, path))
    console.print(f"[green]✓[/green] Wrote notes of {escape(str(result['name']))} to {escape(result['path'])}")


# ============================================================================
# Project Commands
# ============================================================================

projects_app = typer.Typer(help="Search projects and sections")
app.add_typer(projects_app, name="projects")


@projects_app.command("search")
def projects_search(
    name: Optional[str] = typer.Argument(None, help="Partial project name"),
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace GID"),
    archived: Optional[bool] = typer.Option(None, "--archived/--active", help="Archived status"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Refetch instead of using the 24h cache"),
    fields: Optional[str] = typer.Option(None, "--fields", help="Comma-separated fields to display"),
    limit: int = typer.Option(100, "--limit", help="Maximum projects to show"),
    offset: int = typer.Option(0, "--offset", help="Skip first N projects"),
    output_format: str = typer.Option("list", "--format", "-f", help="list|table|inline|json|csv|markdown"),
):
    """Search projects by name."""
    settings = resolve_settings()
    result = _run(lambda client: svc_search_projects(
        client,
        get_project_cache(settings),
        workspace=workspace,
        name=name,
        archived=archived,
        no_cache=no_cache,
        limit=limit,
        offset=offset,
    ))
    _show_items(result["projects"], fields, output_format, "project", default_fields=["name", "gid"])
    pagination = result["pagination"]
    if pagination["has_more"] and output_format in ("list", "table", "inline"):
        console.print(f"[dim]{pagination['total_count']} total; next page: --offset {pagination['next_offset']}[/dim]")


@projects_app.command("sections")
def projects_sections(
    project_gid: str = typer.Argument(..., help="Project GID"),
    output_format: str = typer.Option("list", "--format", "-f", help="list|table|inline|json|csv|markdown"),
):
    """List the sections of a project."""
    result = _run(lambda client: svc_get_sections(client, project_gid))
    _show_items(result["sections"], None, output_format, "section", default_fields=["name", "gid"])


@projects_app.command("clear-cache")
def projects_clear_cache():
    """Delete the cached project listing."""
    try:
        result = svc_clear_cache(get_project_cache(resolve_settings()))
    except AsanaHelperError as e:
        _fail(e)
    if result["cleared"]:
        console.print(f"[green]✓[/green] Cleared {escape(result['path'])}")
    else:
        console.print("[dim]No project cache to clear[/dim]")


# ============================================================================
# Conversion
# ============================================================================


@app.command("convert")
def convert(
    text: Optional[str] = typer.Argument(None, help="Text to convert (reads stdin when omitted)"),
    to_markdown: bool = typer.Option(False, "--to-markdown", help="Convert Asana rich text to markdown"),
):
    """Preview markdown to Asana rich text conversion."""
    source = text if text is not None else sys.stdin.read()
    _print_plain(html_to_markdown(source) if to_markdown else markdown_to_html(source))


if __name__ == "__main__":
    app()
