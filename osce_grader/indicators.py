# osce_grader/indicators.py
"""
indicators.py – turn free-text rubric rows into ordered indicator lists.

A case's marking scheme lives in a table named ``Case {N}``.  Each row carries
bullet text in a handful of named fields ("DG positive", "CM negative", ...).
The text of a field is concatenated across rows and split into one indicator
per line.  Order matters: the position of an indicator in its list decides its
scoring weight, so nothing here sorts or de-duplicates.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

MIN_INDICATOR_CHARS = 3

_LINE_SPLIT = re.compile(r"(?:\r?\n)+")
_BULLET = re.compile(r"^[\-\*•]+\s*")
_ENUMERATOR = re.compile(r"^\(?\d+[\).\]]\s*")


class Domain(str, Enum):
    DATA_GATHERING = "DataGathering"
    CLINICAL_MANAGEMENT = "ClinicalManagement"
    RELATING_TO_OTHERS = "RelatingToOthers"
    APPLICATION = "Application"

    @property
    def key(self) -> str:
        return _DOMAIN_KEYS[self]

    @property
    def heading(self) -> str:
        return _DOMAIN_TITLES[self]


class Polarity(str, Enum):
    POSITIVE = "Positive"
    NEGATIVE = "Negative"


_DOMAIN_KEYS = {
    Domain.DATA_GATHERING: "dg",
    Domain.CLINICAL_MANAGEMENT: "cm",
    Domain.RELATING_TO_OTHERS: "rto",
    Domain.APPLICATION: "application",
}

_DOMAIN_TITLES = {
    Domain.DATA_GATHERING: "Data Gathering & Diagnosis",
    Domain.CLINICAL_MANAGEMENT: "Clinical Management",
    Domain.RELATING_TO_OTHERS: "Relating to Others",
    Domain.APPLICATION: "Application",
}

CLINICAL_DOMAINS: Tuple[Domain, ...] = (
    Domain.DATA_GATHERING,
    Domain.CLINICAL_MANAGEMENT,
    Domain.RELATING_TO_OTHERS,
)

# (wire key, rubric field name, domain, polarity) in request order.
RUBRIC_FIELDS: Tuple[Tuple[str, str, Domain, Polarity], ...] = (
    ("dg_positive", "DG positive", Domain.DATA_GATHERING, Polarity.POSITIVE),
    ("dg_negative", "DG negative", Domain.DATA_GATHERING, Polarity.NEGATIVE),
    ("cm_positive", "CM positive", Domain.CLINICAL_MANAGEMENT, Polarity.POSITIVE),
    ("cm_negative", "CM negative", Domain.CLINICAL_MANAGEMENT, Polarity.NEGATIVE),
    ("rto_positive", "RTO positive", Domain.RELATING_TO_OTHERS, Polarity.POSITIVE),
    ("rto_negative", "RTO negative", Domain.RELATING_TO_OTHERS, Polarity.NEGATIVE),
    ("application", "Application", Domain.APPLICATION, Polarity.POSITIVE),
)


def list_key(domain: Domain, polarity: Polarity) -> str:
    """Wire key of the indicator list for ``domain``/``polarity``."""
    if domain is Domain.APPLICATION:
        if polarity is not Polarity.POSITIVE:
            raise ValueError("Application indicators are positive-only")
        return "application"
    return f"{domain.key}_{polarity.value.lower()}"


@dataclass(frozen=True)
class Indicator:
    """A single rubric statement tagged with its domain, polarity and position."""
    text: str
    domain: Domain
    polarity: Polarity
    position: int


# --------------------------------------------------------------------------- #
# Parsing
# --------------------------------------------------------------------------- #

def parse_indicators(text: Optional[str]) -> List[str]:
    """
    Split rubric text into indicator statements.

    Lines are split on runs of line breaks, stripped of leading bullets
    (``-``, ``*``, ``•``) and enumerators (``1.``, ``2)``, ``(3]``), and
    dropped when shorter than three characters.  Empty input gives ``[]``.
    """
    if not text:
        return []
    out: List[str] = []
    for line in _LINE_SPLIT.split(str(text)):
        cleaned = _BULLET.sub("", line.strip())
        cleaned = _ENUMERATOR.sub("", cleaned).strip()
        if len(cleaned) >= MIN_INDICATOR_CHARS:
            out.append(cleaned)
    return out


def combine_field_across_rows(records: Iterable[Mapping[str, Any]], field_name: str) -> str:
    """Join the non-empty values of ``field_name`` across record rows with newlines."""
    parts: List[str] = []
    for record in records or []:
        fields = record.get("fields") or {}
        value = fields.get(field_name)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            parts.append(text)
    return "\n".join(parts)


# --------------------------------------------------------------------------- #
# Marking rubric
# --------------------------------------------------------------------------- #

@dataclass
class MarkingRubric:
    """The seven ordered indicator lists used for one grading run."""
    table: str = ""
    lists: Dict[str, List[Indicator]] = field(default_factory=dict)

    @classmethod
    def from_texts(cls, texts: Mapping[str, Iterable[str]], table: str = "") -> "MarkingRubric":
        """
        Build a rubric from already-parsed indicator strings keyed by wire key.

        Strings are trimmed and those shorter than ``MIN_INDICATOR_CHARS`` are
        dropped before positions are assigned.
        """
        lists: Dict[str, List[Indicator]] = {}
        for key, _field_name, domain, polarity in RUBRIC_FIELDS:
            kept = [str(t).strip() for t in texts.get(key, []) or []]
            kept = [t for t in kept if len(t) >= MIN_INDICATOR_CHARS]
            lists[key] = [
                Indicator(text=t, domain=domain, polarity=polarity, position=i)
                for i, t in enumerate(kept)
            ]
        return cls(table=table, lists=lists)

    def indicators(self, domain: Domain, polarity: Polarity = Polarity.POSITIVE) -> List[Indicator]:
        return self.lists.get(list_key(domain, polarity), [])

    def texts(self, key: str) -> List[str]:
        return [ind.text for ind in self.lists.get(key, [])]

    def as_payload(self) -> Dict[str, List[str]]:
        """Indicator strings keyed by wire key, in request order."""
        return {key: self.texts(key) for key, *_ in RUBRIC_FIELDS}

    def __len__(self) -> int:
        return sum(len(v) for v in self.lists.values())


def build_marking(records: Iterable[Mapping[str, Any]], table: str = "") -> MarkingRubric:
    """Concatenate each rubric field across ``records`` and parse it into indicators."""
    rows = list(records or [])
    texts = {
        key: parse_indicators(combine_field_across_rows(rows, field_name))
        for key, field_name, _domain, _polarity in RUBRIC_FIELDS
    }
    return MarkingRubric.from_texts(texts, table=table)


def case_table(case_id: Any) -> str:
    return f"Case {case_id}"


async def load_case_marking(records: Any, case_id: Any) -> MarkingRubric:
    """
    Fetch every row of the ``Case {case_id}`` table from ``records`` (a
    :class:`osce_grader.records.RecordStore`) and build the marking rubric.
    """
    table = case_table(case_id)
    rows = await records.list_all(table)
    if not rows:
        raise ValueError(f"No records found in {table}")
    marking = build_marking(rows, table=table)
    logger.info("Loaded %d indicator(s) from %s (%d row(s))", len(marking), table, len(rows))
    return marking
