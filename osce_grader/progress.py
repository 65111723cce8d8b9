# osce_grader/progress.py
"""
progress.py – record that a user has completed a case.

The users table holds one row per user with a ``CompletedCases`` field
containing a JSON array of case ids.  The store has no compare-and-set, so an
update is read -> union -> write, and a failed write is retried once against a
fresh read.  Two writers racing inside that window can still lose an update.

Environment (optional):
  AIRTABLE_USERS_TABLE     default 'Users'
  AIRTABLE_USERS_ID_FIELD  default 'UserID'
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, List, Optional, Set

from .errors import RecordStoreError, UserNotFoundError
from .records import RecordStore, escape_formula

logger = logging.getLogger(__name__)

USERS_TABLE = os.getenv("AIRTABLE_USERS_TABLE", "Users")
USER_ID_FIELD = os.getenv("AIRTABLE_USERS_ID_FIELD", "UserID")
COMPLETED_FIELD = "CompletedCases"


@dataclass
class ProgressUpdate:
    completed: List[str]
    retried: bool = False


def parse_completed(raw: Any) -> Set[str]:
    """Accept a JSON array string or a native list; anything else is an empty set."""
    if isinstance(raw, list):
        return {str(x) for x in raw}
    if isinstance(raw, str) and raw.strip():
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unparseable %s value: %.80s", COMPLETED_FIELD, raw)
            return set()
        if isinstance(data, list):
            return {str(x) for x in data}
    return set()


def _user_formula(user_id: str, id_field: str) -> str:
    return f"{{{id_field}}}='{escape_formula(user_id)}'"


async def _find_user(records: RecordStore, user_id: str, table: str, id_field: str) -> Optional[dict]:
    return await records.find_first(table, _user_formula(user_id, id_field))


async def get_completed_cases(
    records: RecordStore,
    user_id: str,
    table: str = USERS_TABLE,
    id_field: str = USER_ID_FIELD,
) -> List[str]:
    user = await _find_user(records, user_id, table, id_field)
    if user is None:
        raise UserNotFoundError(f"User not found: {user_id}")
    return sorted(parse_completed((user.get("fields") or {}).get(COMPLETED_FIELD)))


async def mark_case_completed(
    records: RecordStore,
    user_id: str,
    case_id: Any,
    table: str = USERS_TABLE,
    id_field: str = USER_ID_FIELD,
    max_attempts: int = 2,
) -> ProgressUpdate:
    """
    Add ``case_id`` to the user's completed set.

    Each attempt re-reads the user row and merges against what it finds.  The
    default of two attempts is a single retry; the last write failure
    propagates, and a missing user on any read raises UserNotFoundError.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    case_key = str(case_id)

    for attempt in range(max_attempts):
        user = await _find_user(records, user_id, table, id_field)
        if user is None:
            suffix = " (retry)" if attempt else ""
            raise UserNotFoundError(f"User not found{suffix}: {user_id}")

        completed = parse_completed((user.get("fields") or {}).get(COMPLETED_FIELD))
        completed.add(case_key)
        ordered = sorted(completed)
        try:
            await records.update(table, user["id"], {COMPLETED_FIELD: json.dumps(ordered)})
        except RecordStoreError as e:
            if attempt + 1 >= max_attempts:
                raise
            logger.warning("Completed-cases write for %s failed (%s); retrying with a fresh read", user_id, e)
            continue
        return ProgressUpdate(completed=ordered, retried=attempt > 0)

    raise AssertionError("unreachable")
