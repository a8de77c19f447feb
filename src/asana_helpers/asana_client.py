"""Asana REST API client for Asana Helpers."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Optional

from .config import AsanaSettings, resolve_settings
from .errors import AsanaAPIError, AsanaHelperError

logger = logging.getLogger(__name__)

ASANA_API_URL = "https://app.asana.com/api/1.0"
REQUEST_TIMEOUT = 60


def _encode_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def extract_error_message(body: str, fallback: str) -> str:
    """Pick the most specific message out of an Asana error body.

    Order: structured `errors[].message`, then a single `error` field,
    then the generic HTTP message.
    """
    try:
        payload = json.loads(body) if body else {}
    except json.JSONDecodeError:
        return fallback

    if isinstance(payload, dict):
        errors = payload.get("errors")
        if errors:
            messages = [
                e.get("message", str(e)) if isinstance(e, dict) else str(e)
                for e in errors
            ]
            return "; ".join(messages)
        if payload.get("error"):
            return str(payload["error"])
    return fallback


@dataclass
class AsanaConfig:
    """Asana API configuration."""
    api_key: str
    workspace: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: AsanaSettings) -> "AsanaConfig":
        return cls(api_key=settings.require_api_key(), workspace=settings.workspace)


class AsanaClient:
    """Client for the Asana REST API.

    Built once per process and passed explicitly into every service and
    engine call.
    """

    def __init__(self, config: AsanaConfig, base_url: str = ASANA_API_URL):
        self.config = config
        self.base_url = base_url.rstrip("/")
        self._workspace: Optional[str] = config.workspace

    @classmethod
    def from_settings(cls, settings: Optional[AsanaSettings] = None) -> "AsanaClient":
        """Create a client from resolved settings.

        Raises AuthenticationError if no API key is configured.
        """
        settings = settings or resolve_settings()
        return cls(AsanaConfig.from_settings(settings))

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        data: Optional[dict] = None,
    ) -> dict:
        """Make an authenticated request and return the full JSON payload."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        if params:
            query = {k: _encode_param(v) for k, v in params.items() if v is not None}
            if query:
                url = f"{url}?{urllib.parse.urlencode(query)}"

        body = None
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Accept": "application/json",
        }
        if data is not None:
            body = json.dumps({"data": data}).encode("utf-8")
            headers["Content-Type"] = "application/json"

        logger.debug("%s %s", method, url, extra={"method": method, "path": path})
        req = urllib.request.Request(url, data=body, headers=headers, method=method)

        try:
            with urllib.request.urlopen(req, timeout=REQUEST_TIMEOUT) as response:
                raw = response.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", errors="replace")
            message = extract_error_message(error_body, f"HTTP {e.code}: {e.reason}")
            raise AsanaAPIError(f"Asana API error ({e.code}): {message}", e.code) from e
        except urllib.error.URLError as e:
            raise AsanaAPIError(f"Connection error: {e.reason}") from e

        return json.loads(raw) if raw else {}

    # ========== Users & Workspaces ==========

    def get_user(self, user_gid: str = "me", opt_fields: Optional[str] = None) -> dict:
        params = {"opt_fields": opt_fields or "name,email,gid,workspaces.name,workspaces.gid"}
        return self._request("GET", f"users/{user_gid}", params).get("data", {})

    def get_workspaces(self) -> list[dict]:
        return self._request("GET", "workspaces", {"opt_fields": "name,gid"}).get("data", [])

    def get_default_workspace(self) -> str:
        """Configured workspace, else the first workspace of the current user."""
        if self._workspace:
            return self._workspace
        user = self.get_user("me")
        workspaces = user.get("workspaces") or []
        if not workspaces:
            raise AsanaHelperError("No workspaces found for this user")
        self._workspace = workspaces[0]["gid"]
        return self._workspace

    # ========== Tasks ==========

    def search_tasks_for_workspace(self, workspace_gid: str, params: dict) -> dict:
        """GET /workspaces/{gid}/tasks/search. No offset pagination upstream."""
        return self._request("GET", f"workspaces/{workspace_gid}/tasks/search", params)

    def get_tasks(self, params: dict) -> dict:
        """GET /tasks with offset-token pagination; returns data + next_page."""
        return self._request("GET", "tasks", params)

    def get_task(self, task_gid: str, opt_fields: Optional[str] = None) -> dict:
        params = {"opt_fields": opt_fields} if opt_fields else None
        return self._request("GET", f"tasks/{task_gid}", params).get("data", {})

    def create_task(self, data: dict, opt_fields: Optional[str] = None) -> dict:
        params = {"opt_fields": opt_fields} if opt_fields else None
        return self._request("POST", "tasks", params, data=data).get("data", {})

    def update_task(self, task_gid: str, data: dict) -> dict:
        return self._request("PUT", f"tasks/{task_gid}", data=data).get("data", {})

    def get_subtasks(self, task_gid: str, params: dict) -> dict:
        return self._request("GET", f"tasks/{task_gid}/subtasks", params)

    def add_project_for_task(
        self,
        task_gid: str,
        project_gid: str,
        section_gid: Optional[str] = None,
    ) -> dict:
        data = {"project": project_gid}
        if section_gid:
            data["section"] = section_gid
        return self._request("POST", f"tasks/{task_gid}/addProject", data=data).get("data", {})

    def remove_project_for_task(self, task_gid: str, project_gid: str) -> dict:
        data = {"project": project_gid}
        return self._request("POST", f"tasks/{task_gid}/removeProject", data=data).get("data", {})

    # ========== Stories ==========

    def get_stories_for_task(self, task_gid: str, params: dict) -> dict:
        return self._request("GET", f"tasks/{task_gid}/stories", params)

    def create_story_for_task(self, task_gid: str, data: dict) -> dict:
        return self._request("POST", f"tasks/{task_gid}/stories", data=data).get("data", {})

    # ========== Projects & Sections ==========

    def get_projects(self, params: dict) -> dict:
        return self._request("GET", "projects", params)

    def get_sections_for_project(self, project_gid: str, params: dict) -> dict:
        return self._request("GET", f"projects/{project_gid}/sections", params)


def iterate_pages(fetch_page, params: dict) -> list[dict]:
    """Collect every page of an offset-paginated listing.

    `fetch_page(params)` must return the raw payload with `data` and
    `next_page`.
    """
    params = dict(params)
    items: list[dict] = []
    while True:
        result = fetch_page(params)
        items.extend(result.get("data") or [])
        next_page = result.get("next_page") or {}
        offset = next_page.get("offset")
        if not offset:
            break
        params["offset"] = offset
    return items
