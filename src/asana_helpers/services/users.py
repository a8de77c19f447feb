"""Shared Asana user operations for CLI and MCP."""

from __future__ import annotations

from ..asana_client import AsanaClient
from ..validation import validate_gid


def get_current_user(client: AsanaClient) -> dict:
    user = client.get_user("me")
    return {
        "user": {
            "gid": user.get("gid"),
            "name": user.get("name"),
            "email": user.get("email"),
        },
        "workspaces": [
            {"gid": w.get("gid"), "name": w.get("name")}
            for w in user.get("workspaces") or []
        ],
    }


def get_user(client: AsanaClient, user_gid: str) -> dict:
    validate_gid(user_gid, "user_gid", allow_me=True)
    return {"user": client.get_user(user_gid, opt_fields="name,email,gid")}
