"""Tests for the record store client against an httpx mock transport."""

import asyncio
import json

import httpx
import pytest

from osce_grader.errors import RecordStoreError
from osce_grader.records import RecordStore, escape_formula


def _store(handler) -> RecordStore:
    return RecordStore("key-123", "appBase", api_url="https://records.test", transport=httpx.MockTransport(handler))


def test_list_all_follows_pagination() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        assert request.headers["Authorization"] == "Bearer key-123"
        assert request.url.path == "/v0/appBase/Case 12"
        if request.url.params.get("offset") == "page2":
            return httpx.Response(200, json={"records": [{"id": "rec3", "fields": {}}]})
        return httpx.Response(
            200, json={"records": [{"id": "rec1", "fields": {}}, {"id": "rec2", "fields": {}}], "offset": "page2"}
        )

    async def run():
        async with _store(handler) as store:
            return await store.list_all("Case 12")

    rows = asyncio.run(run())
    assert [r["id"] for r in rows] == ["rec1", "rec2", "rec3"]
    assert len(seen) == 2


def test_find_first_passes_filter_and_limit() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["filterByFormula"] == "{UserID}='u1'"
        assert request.url.params["maxRecords"] == "1"
        return httpx.Response(200, json={"records": []})

    async def run():
        async with _store(handler) as store:
            return await store.find_first("Users", "{UserID}='u1'")

    assert asyncio.run(run()) is None


def test_update_and_create_bodies() -> None:
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append((request.method, request.url.path, json.loads(request.content)))
        if request.method == "POST":
            return httpx.Response(200, json={"records": [{"id": "recNew", "fields": {"a": 1}}]})
        return httpx.Response(200, json={"id": "rec1", "fields": {"a": 2}})

    async def run():
        async with _store(handler) as store:
            created = await store.create("Attempts", {"a": 1})
            updated = await store.update("Users", "rec1", {"a": 2})
            return created, updated

    created, updated = asyncio.run(run())
    assert created["id"] == "recNew"
    assert updated["id"] == "rec1"
    assert bodies[0] == ("POST", "/v0/appBase/Attempts", {"records": [{"fields": {"a": 1}}]})
    assert bodies[1] == ("PATCH", "/v0/appBase/Users/rec1", {"fields": {"a": 2}})


def test_http_error_carries_status_and_truncated_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, text="INVALID_REQUEST " + "y" * 1000)

    async def run():
        async with _store(handler) as store:
            await store.list_all("Users")

    with pytest.raises(RecordStoreError) as exc:
        asyncio.run(run())
    assert exc.value.status_code == 422
    assert exc.value.body.startswith("INVALID_REQUEST")
    assert len(exc.value.body) <= 301


def test_transport_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def run():
        async with _store(handler) as store:
            await store.list_all("Users")

    with pytest.raises(RecordStoreError) as exc:
        asyncio.run(run())
    assert exc.value.status_code is None


def test_escape_formula() -> None:
    assert escape_formula("o'brien") == "o\\'brien"
    assert escape_formula('a"b\\c') == 'a\\"b\\\\c'
    assert escape_formula(None) == ""


def test_requires_credentials() -> None:
    with pytest.raises(ValueError):
        RecordStore("", "appBase")
