# osce_grader/normalizer.py
"""
normalizer.py – recover structured data from the classifier's raw text and
re-align it to the requested indicator order.

The model is asked for JSON only but nothing guarantees it.  Parsing is a
boundary: ``parse_response`` returns one of three tagged outcomes and nothing
untyped escapes past ``align_classification``.

Parse attempts, in order:
1. the whole (trimmed) text is a JSON object               -> ParsedOk
2. the widest ``{ ... }`` span (first '{' to last '}') is  -> RecoveredOk
3. anything else                                           -> Unparseable
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import MalformedResponseError, preview
from .indicators import CLINICAL_DOMAINS, RUBRIC_FIELDS, MarkingRubric, Polarity

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200

_TRUE_STRINGS = {"true", "yes", "1"}


# --------------------------------------------------------------------------- #
# Parse outcomes
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class ParsedOk:
    data: Dict[str, Any]


@dataclass(frozen=True)
class RecoveredOk:
    data: Dict[str, Any]
    span: tuple


@dataclass(frozen=True)
class Unparseable:
    reason: str
    preview: str


ParseOutcome = Union[ParsedOk, RecoveredOk, Unparseable]


def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        obj = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return obj if isinstance(obj, dict) else None


def parse_response(text: Optional[str]) -> ParseOutcome:
    """Classify ``text`` as directly parseable, recoverable, or unparseable."""
    if not text or not text.strip():
        return Unparseable(reason="empty response", preview="")
    t = text.strip()

    obj = _loads_object(t)
    if obj is not None:
        return ParsedOk(obj)

    start = t.find("{")
    end = t.rfind("}")
    if start >= 0 and end > start:
        obj = _loads_object(t[start : end + 1])
        if obj is not None:
            logger.warning("Recovered JSON object from chars %d-%d of classifier output", start, end)
            return RecoveredOk(obj, (start, end + 1))
        return Unparseable(reason="brace span is not valid JSON", preview=preview(t, PREVIEW_CHARS))

    return Unparseable(reason="no JSON object found", preview=preview(t, PREVIEW_CHARS))


def require_object(outcome: ParseOutcome) -> Dict[str, Any]:
    """Return the parsed object or raise :class:`MalformedResponseError`."""
    if isinstance(outcome, (ParsedOk, RecoveredOk)):
        return outcome.data
    raise MalformedResponseError(reason=outcome.reason, preview=outcome.preview)


# --------------------------------------------------------------------------- #
# Aligned results
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class IndicatorResult:
    """Evidence-backed judgment for one indicator (``flag`` is met or occurred)."""
    indicator: str
    flag: bool = False
    evidence: str = ""

    @property
    def met(self) -> bool:
        return self.flag

    @property
    def occurred(self) -> bool:
        return self.flag


@dataclass
class Classification:
    results: Dict[str, List[IndicatorResult]] = field(default_factory=dict)
    notes: Dict[str, Dict[str, str]] = field(default_factory=dict)

    def get(self, key: str) -> List[IndicatorResult]:
        return self.results.get(key, [])

    def note(self, section: str, name: str) -> str:
        return self.notes.get(section, {}).get(name, "")

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for key, _field, _domain, polarity in RUBRIC_FIELDS:
            flag_name = "occurred" if polarity is Polarity.NEGATIVE else "met"
            out[key] = [
                {"indicator": r.indicator, flag_name: r.flag, "evidence": r.evidence}
                for r in self.get(key)
            ]
        out["notes"] = self.notes
        return out


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def zip_results(indicators: List[str], entries: Any, flag_name: str) -> List[IndicatorResult]:
    """
    Re-emit one result per requested indicator, in request order.

    ``entries`` is whatever the model returned for this list.  Entries are
    matched on their trimmed ``indicator`` text; omitted indicators default to
    ``False`` with empty evidence, extras are ignored.  Evidence is only kept
    for a true flag.
    """
    lookup: Dict[str, Mapping[str, Any]] = {}
    if isinstance(entries, list):
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            key = str(entry.get("indicator") or "").strip()
            if key and key not in lookup:
                lookup[key] = entry

    out: List[IndicatorResult] = []
    for indicator in indicators:
        key = str(indicator).strip()
        found = lookup.get(key, {})
        flag = _as_bool(found.get(flag_name))
        evidence = str(found.get("evidence") or "").strip() if flag else ""
        out.append(IndicatorResult(indicator=key, flag=flag, evidence=evidence))
    return out


def _extract_notes(data: Mapping[str, Any]) -> Dict[str, Dict[str, str]]:
    raw = data.get("notes")
    if not isinstance(raw, dict):
        raw = {}
    sections = [d.key for d in CLINICAL_DOMAINS] + ["application", "overall"]
    notes: Dict[str, Dict[str, str]] = {}
    for section in sections:
        entry = raw.get(section)
        if not isinstance(entry, dict):
            continue
        cleaned = {str(k): str(v).strip() for k, v in entry.items() if isinstance(v, (str, int, float)) and str(v).strip()}
        if cleaned:
            notes[section] = cleaned
    return notes


def align_classification(marking: MarkingRubric, data: Mapping[str, Any]) -> Classification:
    """Zip a parsed response against all seven requested lists."""
    results: Dict[str, List[IndicatorResult]] = {}
    missing = 0
    for key, _field, _domain, polarity in RUBRIC_FIELDS:
        flag_name = "occurred" if polarity is Polarity.NEGATIVE else "met"
        requested = marking.texts(key)
        results[key] = zip_results(requested, data.get(key), flag_name)
        returned = data.get(key)
        returned_keys = {
            str(e.get("indicator") or "").strip()
            for e in (returned if isinstance(returned, list) else [])
            if isinstance(e, dict)
        }
        missing += sum(1 for t in requested if t.strip() not in returned_keys)
    if missing:
        logger.info("Classifier omitted %d indicator(s); defaulted to false", missing)
    return Classification(results=results, notes=_extract_notes(data))


def normalize_response(marking: MarkingRubric, text: Optional[str]) -> Classification:
    """Parse raw classifier text and align it; raises on unparseable output."""
    return align_classification(marking, require_object(parse_response(text)))
