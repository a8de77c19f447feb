"""Tests for the offset-token listing engine."""

import threading

import pytest

from asana_helpers.engines import fetch_tasks, task_matches
from asana_helpers.errors import RequestCancelledError, ValidationError
from asana_helpers.models import FetchQuery


def _task(gid, completed=False, section="1", assignee=None):
    return {
        "gid": str(gid),
        "name": f"Task {gid}",
        "completed": completed,
        "memberships": [{"section": {"gid": section}}],
        "assignee": {"gid": assignee} if assignee else None,
    }


class PagedClient:
    """GET /tasks over fixed pages chained by offset tokens."""

    def __init__(self, pages, on_call=None):
        self.pages = pages
        self.calls = []
        self.on_call = on_call

    def get_tasks(self, params):
        self.calls.append(dict(params))
        if self.on_call:
            self.on_call(len(self.calls))
        index = int(params.get("offset", "0"))
        data = self.pages[index] if index < len(self.pages) else []
        next_page = {"offset": str(index + 1)} if index + 1 < len(self.pages) else None
        return {"data": data, "next_page": next_page}


class TestPagination:
    """Offset tokens are followed until exhausted or capped."""

    def test_follows_offsets(self):
        pages = [[_task(i) for i in range(100)], [_task(i) for i in range(100, 200)], [_task(200)]]
        client = PagedClient(pages)

        result = fetch_tasks(client, FetchQuery(collection_gid="42"))

        assert len(result) == 201
        assert [c.get("offset") for c in client.calls] == [None, "1", "2"]

    def test_collection_param(self):
        client = PagedClient([[_task(1)]])
        fetch_tasks(client, FetchQuery(collection_gid="42", collection_type="section"))

        assert client.calls[0]["section"] == "42"
        assert "project" not in client.calls[0]
        assert client.calls[0]["limit"] == 100

    def test_cap_truncates(self):
        pages = [[_task(i) for i in range(100)], [_task(i) for i in range(100, 200)]]
        client = PagedClient(pages)

        result = fetch_tasks(client, FetchQuery(collection_gid="42", max_results=150))

        assert len(result) == 150
        assert len(client.calls) == 2

    def test_cap_reached_on_first_page_stops(self):
        pages = [[_task(i) for i in range(100)], [_task(i) for i in range(100, 200)]]
        client = PagedClient(pages)

        result = fetch_tasks(client, FetchQuery(collection_gid="42", max_results=10))

        assert len(result) == 10
        assert len(client.calls) == 1

    def test_empty_page_stops(self):
        client = PagedClient([[]])
        assert fetch_tasks(client, FetchQuery(collection_gid="42")) == []

    def test_since_params_forwarded(self):
        client = PagedClient([[_task(1)]])
        fetch_tasks(
            client,
            FetchQuery(collection_gid="42", completed_since="now", modified_since="2024-01-01T00:00:00Z"),
        )

        assert client.calls[0]["completed_since"] == "now"
        assert client.calls[0]["modified_since"] == "2024-01-01T00:00:00Z"


class TestFiltering:
    """Client-side filters apply per page."""

    def test_filters_fetch_required_fields(self):
        client = PagedClient([[_task(1)]])
        fetch_tasks(
            client,
            FetchQuery(collection_gid="42", completed=False, section="7", assignee="9"),
        )

        opt_fields = client.calls[0]["opt_fields"].split(",")
        for field in ("completed", "memberships.section.gid", "assignee.gid"):
            assert field in opt_fields

    def test_completed_filter_across_pages(self):
        pages = [
            [_task(1, completed=True), _task(2)],
            [_task(3), _task(4, completed=True)],
        ]
        result = fetch_tasks(PagedClient(pages), FetchQuery(collection_gid="42", completed=False))

        assert [t["gid"] for t in result] == ["2", "3"]

    def test_cap_counts_kept_tasks_only(self):
        pages = [
            [_task(i, completed=i % 2 == 0) for i in range(10)],
            [_task(i, completed=i % 2 == 0) for i in range(10, 20)],
        ]
        client = PagedClient(pages)

        result = fetch_tasks(client, FetchQuery(collection_gid="42", completed=False, max_results=8))

        assert len(result) == 8
        assert all(not t["completed"] for t in result)
        assert len(client.calls) == 2

    def test_section_filter(self):
        query = FetchQuery(collection_gid="42", section="7")
        assert task_matches(_task(1, section="7"), query)
        assert not task_matches(_task(1, section="8"), query)
        assert not task_matches({"gid": "1", "memberships": []}, query)

    def test_assignee_filter(self):
        query = FetchQuery(collection_gid="42", assignee="9")
        assert task_matches(_task(1, assignee="9"), query)
        assert not task_matches(_task(1, assignee="10"), query)
        assert not task_matches(_task(1), query)

    def test_unassigned_filter(self):
        query = FetchQuery(collection_gid="42", unassigned=True)
        assert task_matches(_task(1), query)
        assert not task_matches(_task(1, assignee="9"), query)

    def test_unassigned_wins_over_assignee(self):
        query = FetchQuery(collection_gid="42", unassigned=True, assignee="9")
        assert task_matches(_task(1), query)
        assert not task_matches(_task(1, assignee="9"), query)

    def test_no_filters_match_everything(self):
        assert task_matches({"gid": "1"}, FetchQuery(collection_gid="42"))


class TestCancellation:
    """Cancellation discards collected tasks."""

    def test_cancel_between_pages(self):
        event = threading.Event()
        pages = [[_task(i) for i in range(100)], [_task(i) for i in range(100, 200)]]
        client = PagedClient(pages, on_call=lambda n: event.set())

        with pytest.raises(RequestCancelledError) as exc_info:
            fetch_tasks(client, FetchQuery(collection_gid="42", cancel_event=event))

        assert len(client.calls) == 1
        assert exc_info.value.pages_fetched == 1


class TestValidation:
    """Queries are checked before any request."""

    @pytest.mark.parametrize("query", [
        FetchQuery(collection_gid="abc"),
        FetchQuery(collection_gid="42", collection_type="portfolio"),
        FetchQuery(collection_gid="42", section="x"),
        FetchQuery(collection_gid="42", max_results=0),
    ])
    def test_invalid_query(self, query):
        client = PagedClient([[_task(1)]])
        with pytest.raises(ValidationError):
            fetch_tasks(client, query)
        assert client.calls == []
