# osce_grader/transcript.py
"""Transcript turns and their rendering for the classifier request."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Union

TRANSCRIPT_MAX_TURNS = int(os.getenv("TRANSCRIPT_MAX_TURNS", "120"))

_CLINICIAN_ROLES = {"user", "clinician", "doctor"}
_PATIENT_ROLES = {"assistant", "patient"}


@dataclass(frozen=True)
class Turn:
    role: str
    text: str

    @classmethod
    def from_obj(cls, obj: Union["Turn", Mapping[str, Any]]) -> "Turn":
        if isinstance(obj, Turn):
            return obj
        return cls(role=str(obj.get("role") or ""), text=str(obj.get("text") or ""))


def normalize_role(role: Any) -> str:
    r = str(role or "").strip().lower()
    if r in _CLINICIAN_ROLES:
        return "CLINICIAN"
    if r in _PATIENT_ROLES:
        return "PATIENT"
    return r.upper() if r else "UNKNOWN"


def load_turns(items: Iterable[Any]) -> List[Turn]:
    return [Turn.from_obj(item) for item in items or []]


def transcript_to_text(turns: Iterable[Any], max_turns: int = TRANSCRIPT_MAX_TURNS) -> str:
    """
    Render the most recent ``max_turns`` turns as ``ROLE: text`` lines.

    Older turns are dropped, not summarized.  Turns with no text are skipped
    after the cap is applied, so the cap counts raw turns.
    """
    recent = load_turns(turns)
    if max_turns > 0:
        recent = recent[-max_turns:]
    lines = []
    for turn in recent:
        text = turn.text.strip()
        if not text:
            continue
        lines.append(f"{normalize_role(turn.role)}: {text}")
    return "\n".join(lines)
