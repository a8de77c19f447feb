"""Tests for output formatting and file persistence."""

import json

import pytest
from rich.table import Table

from asana_helpers.errors import ValidationError
from asana_helpers.output import (
    format_response,
    render_cli,
    render_items,
    write_items,
)

ITEMS = [
    {"gid": "1", "name": "Alpha", "assignee": {"name": "Ann"}},
    {"gid": "2", "name": "Beta", "assignee": None},
]
FIELDS = ["name", "gid", "assignee.name"]


class TestFormatResponse:
    """Response envelopes."""

    def test_json_default(self):
        assert format_response({"a": 1}) == {"format": "json", "content": {"a": 1}}

    def test_text_with_renderer(self):
        response = format_response({"a": 1}, "text", lambda p: f"a={p['a']}")
        assert response == {"format": "text", "content": "a=1"}

    def test_text_without_renderer_dumps_json(self):
        assert format_response({"a": 1}, "TEXT")["content"] == json.dumps({"a": 1}, indent=2)

    def test_render_cli(self):
        assert render_cli({"format": "json", "content": [1]}) == "[\n  1\n]"
        assert render_cli({"format": "text", "content": "hi"}) == "hi"


class TestRenderItems:
    """Terminal renderings of result sets."""

    def test_list(self):
        text = render_items(ITEMS, FIELDS, "list", noun="task")
        lines = text.splitlines()
        assert lines[0] == "Found 2 task(s):"
        assert lines[2] == "1. Name: Alpha, Gid: 1, Name: Ann"
        assert lines[3] == "2. Name: Beta, Gid: 2, Name: "

    def test_inline_skips_blanks(self):
        text = render_items(ITEMS, FIELDS, "inline", noun="task")
        assert text.splitlines() == ["Found 2 task(s):", "Alpha, 1, Ann", "Beta, 2"]

    def test_table(self):
        table = render_items(ITEMS, FIELDS, "table", noun="task")
        assert isinstance(table, Table)
        assert table.row_count == 2
        assert [c.header for c in table.columns] == ["name", "gid", "name"]

    def test_json(self):
        assert json.loads(render_items(ITEMS, FIELDS, "json")) == ITEMS

    def test_csv_quoting(self):
        items = [{"gid": "1", "name": 'Say "hi", ok'}]
        text = render_items(items, ["gid", "name"], "csv")
        assert text == 'gid,name\n1,"Say ""hi"", ok"\n'

    def test_markdown_escapes_pipes(self):
        items = [{"gid": "1", "name": "a|b"}]
        text = render_items(items, ["gid", "name"], "markdown")
        assert text == "| gid | name |\n|---|---|\n| 1 | a\\|b |\n"

    def test_empty(self):
        assert render_items([], FIELDS, "list", noun="project") == "No projects found."
        assert render_items([], FIELDS, "json") == "[]"
        assert render_items([], ["gid"], "csv") == "gid\n"

    def test_booleans_rendered_lowercase(self):
        text = render_items([{"gid": "1", "completed": True}], ["completed"], "csv")
        assert text == "completed\ntrue\n"

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            render_items(ITEMS, FIELDS, "yaml")


class TestWriteItems:
    """Writing result sets to files."""

    def test_json_array(self, tmp_path):
        path = tmp_path / "out.json"
        result = write_items(ITEMS, str(path), "json")

        assert json.loads(path.read_text()) == ITEMS
        assert result == {"path": str(path), "format": "json", "count": 2, "appended": False}

    def test_json_append_writes_lines(self, tmp_path):
        path = tmp_path / "out.jsonl"
        write_items(ITEMS[:1], str(path), "json", append=True)
        result = write_items(ITEMS[1:], str(path), "json", append=True)

        lines = path.read_text().splitlines()
        assert [json.loads(line)["gid"] for line in lines] == ["1", "2"]
        assert result["appended"] is True

    def test_csv_header_once_when_appending(self, tmp_path):
        path = tmp_path / "out.csv"
        write_items(ITEMS[:1], str(path), "csv", fields=["gid", "name"], append=True)
        write_items(ITEMS[1:], str(path), "csv", fields=["gid", "name"], append=True)

        assert path.read_text() == "gid,name\n1,Alpha\n2,Beta\n"

    def test_overwrite_without_append(self, tmp_path):
        path = tmp_path / "out.csv"
        write_items(ITEMS, str(path), "csv", fields=["gid"])
        write_items(ITEMS[:1], str(path), "csv", fields=["gid"])

        assert path.read_text() == "gid\n1\n"

    def test_markdown(self, tmp_path):
        path = tmp_path / "out.md"
        write_items(ITEMS[:1], str(path), "markdown", fields=["gid", "name"])

        assert path.read_text() == "| gid | name |\n|---|---|\n| 1 | Alpha |\n"

    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "a" / "b" / "out.json"
        write_items(ITEMS, str(path))
        assert path.exists()

    def test_unsupported_format(self, tmp_path):
        with pytest.raises(ValidationError):
            write_items(ITEMS, str(tmp_path / "x"), "xml")
