# osce_grader/store.py
"""
store.py – staging of grading results keyed by session id.

Callers inject a store into the pipeline instead of sharing a module-level map.
Lifecycle per entry: created ``pending`` -> ``ready`` or ``error`` exactly once.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from .errors import StoreTransitionError


class Status(str, Enum):
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"


@dataclass
class StoreEntry:
    session_id: str
    status: Status = Status.PENDING
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    updated_at: Optional[float] = None


class GradingStore(Protocol):
    def create(self, session_id: str) -> StoreEntry: ...

    def get(self, session_id: str) -> Optional[StoreEntry]: ...

    def set_ready(self, session_id: str, result: Dict[str, Any]) -> StoreEntry: ...

    def set_error(self, session_id: str, error: str) -> StoreEntry: ...

    def status(self, session_id: str) -> Optional[Status]: ...


class InMemoryGradingStore:
    """Process-local GradingStore.  Safe to share between threads."""

    def __init__(self) -> None:
        self._entries: Dict[str, StoreEntry] = {}
        self._lock = threading.Lock()

    def create(self, session_id: str) -> StoreEntry:
        if not session_id:
            raise ValueError("session_id is required")
        with self._lock:
            if session_id in self._entries:
                raise StoreTransitionError(f"Entry already exists for session {session_id}")
            entry = StoreEntry(session_id=session_id)
            self._entries[session_id] = entry
            return entry

    def get(self, session_id: str) -> Optional[StoreEntry]:
        with self._lock:
            return self._entries.get(session_id)

    def status(self, session_id: str) -> Optional[Status]:
        entry = self.get(session_id)
        return entry.status if entry else None

    def _finish(self, session_id: str, status: Status, result: Optional[Dict[str, Any]], error: Optional[str]) -> StoreEntry:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                raise StoreTransitionError(f"No pending entry for session {session_id}")
            if entry.status is not Status.PENDING:
                raise StoreTransitionError(
                    f"Session {session_id} already {entry.status.value}; cannot set {status.value}"
                )
            entry.status = status
            entry.result = result
            entry.error = error
            entry.updated_at = time.time()
            return entry

    def set_ready(self, session_id: str, result: Dict[str, Any]) -> StoreEntry:
        return self._finish(session_id, Status.READY, result, None)

    def set_error(self, session_id: str, error: str) -> StoreEntry:
        return self._finish(session_id, Status.ERROR, None, error)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
