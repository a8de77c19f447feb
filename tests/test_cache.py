"""Tests for the project cache."""

import json

import pytest

from asana_helpers.cache import CACHE_FILE_NAME, CACHE_TTL_MS, ProjectCache
from asana_helpers.errors import FileIOError

PROJECTS = [{"gid": "1", "name": "Alpha"}, {"gid": "2", "name": "Beta"}]


class TestProjectCache:
    """Load, save, expiry and clearing."""

    def test_save_then_load(self, tmp_path):
        cache = ProjectCache(tmp_path)
        cache.save("100", PROJECTS, now_ms=1_000)

        assert cache.load("100", now_ms=2_000) == PROJECTS

    def test_file_layout(self, tmp_path):
        cache = ProjectCache(tmp_path)
        cache.save("100", PROJECTS, now_ms=1_000)

        data = json.loads((tmp_path / CACHE_FILE_NAME).read_text())
        assert data == {"workspace": "100", "timestamp": 1_000, "projects": PROJECTS}

    def test_missing_file(self, tmp_path):
        assert ProjectCache(tmp_path).load("100") is None

    def test_other_workspace_is_miss(self, tmp_path):
        cache = ProjectCache(tmp_path)
        cache.save("100", PROJECTS, now_ms=1_000)

        assert cache.load("200", now_ms=1_000) is None

    def test_expired(self, tmp_path):
        cache = ProjectCache(tmp_path)
        cache.save("100", PROJECTS, now_ms=0)

        assert cache.load("100", now_ms=CACHE_TTL_MS) == PROJECTS
        assert cache.load("100", now_ms=CACHE_TTL_MS + 1) is None

    def test_corrupt_file_is_miss(self, tmp_path):
        (tmp_path / CACHE_FILE_NAME).write_text("{not json")
        assert ProjectCache(tmp_path).load("100") is None

    @pytest.mark.parametrize("timestamp", ["garbage", [1], {"ms": 1}])
    def test_bad_timestamp_is_miss(self, tmp_path, timestamp):
        payload = {"workspace": "1", "timestamp": timestamp, "projects": []}
        (tmp_path / CACHE_FILE_NAME).write_text(json.dumps(payload))

        assert ProjectCache(tmp_path).load("1") is None

    def test_projects_not_a_list_is_miss(self, tmp_path):
        payload = {"workspace": "1", "timestamp": 1_000, "projects": {"gid": "1"}}
        (tmp_path / CACHE_FILE_NAME).write_text(json.dumps(payload))

        assert ProjectCache(tmp_path).load("1", now_ms=1_000) is None

    def test_save_creates_directory(self, tmp_path):
        cache = ProjectCache(tmp_path / "nested" / "dir")
        cache.save("100", PROJECTS)

        assert cache.path.exists()

    def test_save_overwrites(self, tmp_path):
        cache = ProjectCache(tmp_path)
        cache.save("100", PROJECTS, now_ms=1_000)
        cache.save("200", PROJECTS[:1], now_ms=1_000)

        assert cache.load("100", now_ms=1_000) is None
        assert cache.load("200", now_ms=1_000) == PROJECTS[:1]

    def test_clear(self, tmp_path):
        cache = ProjectCache(tmp_path)
        cache.save("100", PROJECTS)

        assert cache.clear() is True
        assert not cache.path.exists()
        assert cache.clear() is False

    def test_clear_failure_raises(self, tmp_path, monkeypatch):
        cache = ProjectCache(tmp_path)
        cache.save("100", PROJECTS)

        def refuse(self):
            raise PermissionError("denied")

        monkeypatch.setattr("pathlib.Path.unlink", refuse)
        with pytest.raises(FileIOError):
            cache.clear()
