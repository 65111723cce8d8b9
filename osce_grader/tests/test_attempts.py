"""Tests for the grading attempt log."""

import asyncio
import json

import pytest

from osce_grader.attempts import find_attempt, list_attempts, save_attempt


class FakeAttempts:
    def __init__(self, rows=None):
        self.rows = rows or []
        self.queries = []

    async def list_all(self, table, filter_by_formula=None, max_records=None, sort=None):
        self.queries.append((table, filter_by_formula, max_records, sort))
        return self.rows[:max_records] if max_records else list(self.rows)

    async def create(self, table, fields):
        row = {"id": "recA", "createdTime": "2026-01-01T00:00:00.000Z", "fields": fields}
        self.rows.append(row)
        return row


def _row(n, session, created):
    return {
        "id": f"rec{n}",
        "createdTime": created,
        "fields": {"sessionId": session, "caseId": "4", "userId": "u1", "gradingText": f"report {n}"},
    }


def test_save_attempt_serializes_bands() -> None:
    store = FakeAttempts()
    row = asyncio.run(save_attempt(store, "s1", 4, "u1", "report", {"dgBand": "Pass"}))
    assert row["fields"]["caseId"] == "4"
    assert json.loads(row["fields"]["bands"]) == {"dgBand": "Pass"}


def test_find_attempt_filters_by_session_newest_first() -> None:
    store = FakeAttempts([_row(1, "s1", "2026-01-02")])
    found = asyncio.run(find_attempt(store, "s1"))
    assert found["gradingText"] == "report 1"
    table, formula, max_records, sort = store.queries[0]
    assert formula == "{sessionId}='s1'"
    assert max_records == 1
    assert sort == [{"field": "Created time", "direction": "desc"}]
    assert asyncio.run(find_attempt(FakeAttempts(), "s2")) is None
    with pytest.raises(ValueError):
        asyncio.run(find_attempt(store, "  "))


def test_list_attempts_sorts_and_clamps() -> None:
    rows = [_row(1, "s1", "2026-01-01"), _row(2, "", "2026-01-05"), _row(3, "s3", "2026-01-03")]
    store = FakeAttempts(rows)
    listed = asyncio.run(list_attempts(store, "u1"))
    assert [a["recordId"] for a in listed] == ["rec3", "rec1"]
    assert len(asyncio.run(list_attempts(store, "u1", limit=0))) == 1
    assert len(asyncio.run(list_attempts(store, "u1", limit="bogus"))) == 2
