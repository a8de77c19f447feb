"""Configuration resolution for Asana Helpers.

Settings come from environment variables first and then from the user config
file:

```
~/.config/asana-helpers/config.json
{
  "api_key": "1/1234:abcd",
  "workspace": "1200000000000000",
  "cache_dir": "/tmp/asana-cache",
  "log_file": "/tmp/asana-helpers.log"
}
```

### Resolution Order

1. `ASANA_API_KEY` (or `ASANA_ACCESS_TOKEN`), `ASANA_WORKSPACE`,
   `ASANA_HELPERS_CACHE_DIR`, `ASANA_HELPERS_LOG_FILE`
2. ~/.config/asana-helpers/config.json
3. Defaults (platformdirs user cache directory)
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from platformdirs import user_cache_dir

from .errors import AuthenticationError

USER_CONFIG_DIR = Path.home() / ".config" / "asana-helpers"
USER_CONFIG_FILE = USER_CONFIG_DIR / "config.json"

API_KEY_ENV = "ASANA_API_KEY"
API_KEY_ENV_FALLBACK = "ASANA_ACCESS_TOKEN"
WORKSPACE_ENV = "ASANA_WORKSPACE"
CACHE_DIR_ENV = "ASANA_HELPERS_CACHE_DIR"
LOG_FILE_ENV = "ASANA_HELPERS_LOG_FILE"

LOG_FILE_NAME = "asana-helpers.log"


@dataclass
class AsanaSettings:
    """Resolved settings for one process."""

    api_key: Optional[str] = None
    workspace: Optional[str] = None
    cache_dir: Optional[Path] = None
    log_file: Optional[Path] = None
    config_source: str = "none"  # "env", "user", "none"

    def get_cache_dir(self) -> Path:
        if self.cache_dir:
            return Path(self.cache_dir)
        return Path(user_cache_dir("asana-helpers"))

    def get_log_file(self) -> Path:
        if self.log_file:
            return Path(self.log_file)
        return self.get_cache_dir() / LOG_FILE_NAME

    def require_api_key(self) -> str:
        """Return the API key or raise AuthenticationError."""
        if not self.api_key:
            raise AuthenticationError(
                "Asana API key not configured.",
                suggestions=[
                    f"Set: export {API_KEY_ENV}=your_personal_access_token",
                    "Or run: asana-helpers auth setup",
                ],
            )
        return self.api_key


def load_user_config(config_file: Path = USER_CONFIG_FILE) -> dict:
    """Load the user config file, returning {} when absent."""
    if not config_file.exists():
        return {}
    with open(config_file) as f:
        return json.load(f) or {}


def save_user_config(
    api_key: Optional[str] = None,
    workspace: Optional[str] = None,
    config_file: Path = USER_CONFIG_FILE,
) -> Path:
    """Merge values into the user config file and secure it."""
    data = load_user_config(config_file)
    if api_key:
        data["api_key"] = api_key
    if workspace:
        data["workspace"] = workspace

    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        json.dump(data, f, indent=2)
    os.chmod(config_file, 0o600)
    return config_file


def resolve_settings(config_file: Path = USER_CONFIG_FILE) -> AsanaSettings:
    """Resolve settings from the environment and the user config file."""
    settings = AsanaSettings()
    user_config = load_user_config(config_file)

    settings.api_key = os.environ.get(API_KEY_ENV) or os.environ.get(API_KEY_ENV_FALLBACK)
    if settings.api_key:
        settings.config_source = "env"
    elif user_config.get("api_key"):
        settings.api_key = user_config["api_key"]
        settings.config_source = "user"

    settings.workspace = os.environ.get(WORKSPACE_ENV) or user_config.get("workspace")

    cache_dir = os.environ.get(CACHE_DIR_ENV) or user_config.get("cache_dir")
    if cache_dir:
        settings.cache_dir = Path(cache_dir).expanduser()

    log_file = os.environ.get(LOG_FILE_ENV) or user_config.get("log_file")
    if log_file:
        settings.log_file = Path(log_file).expanduser()

    return settings


def get_auth_help_message() -> str:
    """Get helpful message about authentication options."""
    return f"""Asana authentication not configured.

To authenticate, use one of these methods:

1. Environment variable:
   $ export {API_KEY_ENV}=your_personal_access_token

2. Run auth setup:
   $ asana-helpers auth setup

To get a personal access token:
   https://app.asana.com/0/my-apps
"""
