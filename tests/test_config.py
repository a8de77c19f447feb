"""Tests for settings resolution."""

import json
import stat

import pytest

from asana_helpers.config import (
    API_KEY_ENV,
    API_KEY_ENV_FALLBACK,
    CACHE_DIR_ENV,
    LOG_FILE_ENV,
    WORKSPACE_ENV,
    AsanaSettings,
    get_auth_help_message,
    load_user_config,
    resolve_settings,
    save_user_config,
)
from asana_helpers.errors import AuthenticationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (API_KEY_ENV, API_KEY_ENV_FALLBACK, WORKSPACE_ENV, CACHE_DIR_ENV, LOG_FILE_ENV):
        monkeypatch.delenv(name, raising=False)


class TestResolveSettings:
    """Environment first, then the user config file."""

    def test_nothing_configured(self, tmp_path):
        settings = resolve_settings(tmp_path / "missing.json")
        assert settings.api_key is None
        assert settings.config_source == "none"

    def test_env_wins(self, tmp_path, monkeypatch):
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"api_key": "from-file", "workspace": "1"}))
        monkeypatch.setenv(API_KEY_ENV, "from-env")
        monkeypatch.setenv(WORKSPACE_ENV, "2")

        settings = resolve_settings(config)

        assert settings.api_key == "from-env"
        assert settings.workspace == "2"
        assert settings.config_source == "env"

    def test_fallback_env_name(self, tmp_path, monkeypatch):
        monkeypatch.setenv(API_KEY_ENV_FALLBACK, "token")
        assert resolve_settings(tmp_path / "missing.json").api_key == "token"

    def test_user_file(self, tmp_path):
        config = tmp_path / "config.json"
        config.write_text(json.dumps({
            "api_key": "from-file",
            "workspace": "1",
            "cache_dir": str(tmp_path / "cache"),
            "log_file": str(tmp_path / "log.jsonl"),
        }))

        settings = resolve_settings(config)

        assert settings.api_key == "from-file"
        assert settings.config_source == "user"
        assert settings.get_cache_dir() == tmp_path / "cache"
        assert settings.get_log_file() == tmp_path / "log.jsonl"

    def test_log_file_defaults_into_cache_dir(self, tmp_path):
        settings = AsanaSettings(cache_dir=tmp_path)
        assert settings.get_log_file() == tmp_path / "asana-helpers.log"

    def test_require_api_key(self):
        with pytest.raises(AuthenticationError) as exc_info:
            AsanaSettings().require_api_key()
        assert exc_info.value.suggestions
        assert AsanaSettings(api_key="k").require_api_key() == "k"


class TestUserConfigFile:
    """Saving credentials."""

    def test_save_merges_and_secures(self, tmp_path):
        config = tmp_path / "sub" / "config.json"
        save_user_config(api_key="k", config_file=config)
        save_user_config(workspace="5", config_file=config)

        assert load_user_config(config) == {"api_key": "k", "workspace": "5"}
        assert stat.S_IMODE(config.stat().st_mode) == 0o600

    def test_help_mentions_env_var(self):
        assert API_KEY_ENV in get_auth_help_message()
