# osce_grader/records.py
"""
records.py – async client for the remote tabular record store.

The store speaks the Airtable REST shape:

  GET   {api}/v0/{base}/{table}?filterByFormula=...&maxRecords=...&offset=...
  PATCH {api}/v0/{base}/{table}/{record_id}   {"fields": {...}}
  POST  {api}/v0/{base}/{table}               {"records": [{"fields": {...}}]}

Rows are returned as plain dicts: ``{"id", "createdTime", "fields"}``.

Environment (optional unless noted):
  AIRTABLE_API_URL               default 'https://api.airtable.com'
  AIRTABLE_API_KEY / AIRTABLE_BASE_ID             case (rubric) base
  AIRTABLE_USERS_API_KEY / AIRTABLE_USERS_BASE_ID users/attempts base
  RECORD_STORE_TIMEOUT_SECONDS   default '30'
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

from .errors import RecordStoreError, preview

logger = logging.getLogger(__name__)

AIRTABLE_API_URL = os.getenv("AIRTABLE_API_URL", "https://api.airtable.com")
RECORD_STORE_TIMEOUT_SECONDS = float(os.getenv("RECORD_STORE_TIMEOUT_SECONDS", "30"))
BODY_PREVIEW_CHARS = 300


def must_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing env var: {name}")
    return value


def escape_formula(value: Any) -> str:
    """Escape a value for use inside a single- or double-quoted formula string."""
    return str(value if value is not None else "").replace("\\", "\\\\").replace("'", "\\'").replace('"', '\\"')


class RecordStore:
    """Thin wrapper over ``httpx.AsyncClient`` for one base of the record store."""

    def __init__(
        self,
        api_key: str,
        base_id: str,
        api_url: str = AIRTABLE_API_URL,
        timeout: float = RECORD_STORE_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key or not base_id:
            raise ValueError("RecordStore needs both api_key and base_id")
        self.base_id = base_id
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def for_cases(cls, **kwargs: Any) -> "RecordStore":
        return cls(must_env("AIRTABLE_API_KEY"), must_env("AIRTABLE_BASE_ID"), **kwargs)

    @classmethod
    def for_users(cls, **kwargs: Any) -> "RecordStore":
        return cls(must_env("AIRTABLE_USERS_API_KEY"), must_env("AIRTABLE_USERS_BASE_ID"), **kwargs)

    async def __aenter__(self) -> "RecordStore":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _path(self, table: str, record_id: Optional[str] = None) -> str:
        # httpx percent-encodes spaces in the path ("Case 12" -> "Case%2012")
        path = f"/v0/{self.base_id}/{table}"
        return f"{path}/{record_id}" if record_id else path

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise RecordStoreError(f"Record store {method} {path} failed: {e}") from e
        if resp.is_error:
            raise RecordStoreError(
                f"Record store {method} {path} failed",
                status_code=resp.status_code,
                body=preview(resp.text, BODY_PREVIEW_CHARS),
            )
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise RecordStoreError(
                f"Record store {method} {path} returned non-JSON body",
                status_code=resp.status_code,
                body=preview(resp.text, BODY_PREVIEW_CHARS),
            ) from e

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def list_all(
        self,
        table: str,
        filter_by_formula: Optional[str] = None,
        max_records: Optional[int] = None,
        sort: Optional[List[Dict[str, str]]] = None,
    ) -> List[Dict[str, Any]]:
        """Return every matching row, following ``offset`` pagination."""
        params: Dict[str, Any] = {}
        if filter_by_formula:
            params["filterByFormula"] = filter_by_formula
        if max_records:
            params["maxRecords"] = max_records
        for i, s in enumerate(sort or []):
            params[f"sort[{i}][field]"] = s["field"]
            params[f"sort[{i}][direction]"] = s.get("direction", "asc")

        rows: List[Dict[str, Any]] = []
        offset: Optional[str] = None
        while True:
            page_params = dict(params)
            if offset:
                page_params["offset"] = offset
            data = await self._request("GET", self._path(table), params=page_params)
            rows.extend(data.get("records") or [])
            offset = data.get("offset")
            if not offset or (max_records and len(rows) >= max_records):
                break
        logger.debug("Fetched %d row(s) from %s", len(rows), table)
        return rows[:max_records] if max_records else rows

    async def find_first(self, table: str, filter_by_formula: str) -> Optional[Dict[str, Any]]:
        rows = await self.list_all(table, filter_by_formula=filter_by_formula, max_records=1)
        return rows[0] if rows else None

    async def update(self, table: str, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PATCH", self._path(table, record_id), json={"fields": fields})

    async def create(self, table: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request("POST", self._path(table), json={"records": [{"fields": fields}]})
        records = data.get("records") or []
        return records[0] if records else data
