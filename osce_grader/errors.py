# osce_grader/errors.py
"""Exceptions raised by the grading pipeline.  All are fatal for the current run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

PREVIEW_CHARS = 400


def preview(text: Optional[str], limit: int = PREVIEW_CHARS) -> str:
    """Short, single-string preview of ``text`` for error messages."""
    s = str(text or "")
    return s if len(s) <= limit else s[:limit] + "…"


class GradingError(Exception):
    """Base class for fatal grading errors."""


@dataclass
class ClassifierError(GradingError):
    message: str
    status_code: Optional[int] = None
    body: str = ""

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status {self.status_code}): {self.body}"
        return f"{self.message}: {self.body}" if self.body else self.message


@dataclass
class MalformedResponseError(GradingError):
    reason: str
    preview: str

    def __str__(self) -> str:
        return f"Classifier returned non-JSON output ({self.reason}). Response text: {self.preview!r}"


@dataclass
class RecordStoreError(GradingError):
    message: str
    status_code: Optional[int] = None
    body: str = ""

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (HTTP {self.status_code}): {self.body}"
        return self.message


class UserNotFoundError(GradingError):
    pass


class StoreTransitionError(GradingError):
    pass
