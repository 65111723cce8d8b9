# osce_grader/attempts.py
"""Grading attempt log kept in the users base (one row per graded session)."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional

from .records import RecordStore, escape_formula

logger = logging.getLogger(__name__)

ATTEMPTS_TABLE = os.getenv("AIRTABLE_ATTEMPTS_TABLE", "Attempts")
MAX_LIST_LIMIT = 200


def _attempt_view(row: Dict[str, Any]) -> Dict[str, Any]:
    fields = row.get("fields") or {}
    return {
        "recordId": row.get("id"),
        "createdTime": row.get("createdTime"),
        "sessionId": fields.get("sessionId") or "",
        "caseId": fields.get("caseId"),
        "userId": fields.get("userId") or "",
        "gradingText": fields.get("gradingText") or "",
        "bands": fields.get("bands") or "",
    }


async def save_attempt(
    records: RecordStore,
    session_id: str,
    case_id: Any,
    user_id: str,
    grading_text: str,
    bands: Dict[str, str],
    table: str = ATTEMPTS_TABLE,
) -> Dict[str, Any]:
    fields = {
        "sessionId": session_id or "",
        "caseId": str(case_id),
        "userId": user_id or "",
        "gradingText": grading_text,
        "bands": json.dumps(bands),
    }
    row = await records.create(table, fields)
    logger.info("Saved attempt for session %s (case %s)", session_id, case_id)
    return row


async def find_attempt(records: RecordStore, session_id: str, table: str = ATTEMPTS_TABLE) -> Optional[Dict[str, Any]]:
    """Newest attempt recorded for ``session_id``, or None."""
    if not str(session_id or "").strip():
        raise ValueError("Missing sessionId")
    rows = await records.list_all(
        table,
        filter_by_formula=f"{{sessionId}}='{escape_formula(session_id)}'",
        max_records=1,
        sort=[{"field": "Created time", "direction": "desc"}],
    )
    return _attempt_view(rows[0]) if rows else None


async def list_attempts(
    records: RecordStore, user_id: str, limit: int = 50, table: str = ATTEMPTS_TABLE
) -> List[Dict[str, Any]]:
    """A user's attempts, newest first; ``limit`` is clamped to [1, 200]."""
    if not str(user_id or "").strip():
        raise ValueError("Missing userId")
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = 50
    limit = max(1, min(MAX_LIST_LIMIT, limit))
    rows = await records.list_all(table, filter_by_formula=f"{{userId}}='{escape_formula(user_id)}'")
    views = [_attempt_view(r) for r in rows]
    views = [v for v in views if v["sessionId"]]
    views.sort(key=lambda v: v["createdTime"] or "", reverse=True)
    return views[:limit]
