# osce_grader/bands.py
"""
bands.py – deterministic conversion of indicator results into bands.

Rules:
- Indicator weight depends only on its position in its list.  The default
  rule gives the first three indicators weight 2 and the rest weight 1; pass a
  different ``weighting`` callable to change it.
- Positive ratio = weight of met indicators / total weight (1 when empty).
- Ratio -> band with closed lower bounds: 0.75 Pass, 0.55 Borderline Pass,
  0.35 Borderline Fail, otherwise Fail.
- Each negative indicator that occurred lowers the band by its weight.  The
  result is clamped to [Fail, Pass]; negatives never raise a band.
- Application uses the ratio step only.  Overall is the rounded mean of the
  four band indices.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, Iterable, Sequence, Tuple

from .indicators import Domain, Polarity, list_key
from .normalizer import Classification, IndicatorResult

WeightFn = Callable[[int], int]


class Band(IntEnum):
    FAIL = 0
    BORDERLINE_FAIL = 1
    BORDERLINE_PASS = 2
    PASS = 3

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def from_label(cls, label: str) -> "Band":
        for band, text in _LABELS.items():
            if text.lower() == str(label).strip().lower():
                return band
        raise ValueError(f"Unknown band label: {label!r}")

    @classmethod
    def clamped(cls, index: int) -> "Band":
        return cls(max(int(cls.FAIL), min(int(cls.PASS), int(index))))

    def __str__(self) -> str:
        return self.label


_LABELS = {
    Band.FAIL: "Fail",
    Band.BORDERLINE_FAIL: "Borderline Fail",
    Band.BORDERLINE_PASS: "Borderline Pass",
    Band.PASS: "Pass",
}

# (lower bound, band), highest first
RATIO_THRESHOLDS: Tuple[Tuple[float, Band], ...] = (
    (0.75, Band.PASS),
    (0.55, Band.BORDERLINE_PASS),
    (0.35, Band.BORDERLINE_FAIL),
)


def first_three_weighting(position: int) -> int:
    return 2 if position < 3 else 1


def weighted_ratio(flags: Sequence[bool], weighting: WeightFn = first_three_weighting) -> float:
    """Share of total weight carried by the ``True`` entries of ``flags``."""
    total = sum(weighting(i) for i in range(len(flags))) or 1
    got = sum(weighting(i) for i, flag in enumerate(flags) if flag)
    return got / total


def band_from_ratio(ratio: float) -> Band:
    for lower, band in RATIO_THRESHOLDS:
        if ratio >= lower:
            return band
    return Band.FAIL


def downgrade_total(occurred: Sequence[bool], weighting: WeightFn = first_three_weighting) -> int:
    return sum(weighting(i) for i, flag in enumerate(occurred) if flag)


def domain_band(
    positives: Iterable[IndicatorResult],
    negatives: Iterable[IndicatorResult],
    weighting: WeightFn = first_three_weighting,
) -> Band:
    """Band for one clinical domain: ratio step, then negative downgrade."""
    base = band_from_ratio(weighted_ratio([r.met for r in positives], weighting))
    penalty = downgrade_total([r.occurred for r in negatives], weighting)
    return Band.clamped(int(base) - penalty)


def application_band(results: Iterable[IndicatorResult], weighting: WeightFn = first_three_weighting) -> Band:
    return band_from_ratio(weighted_ratio([r.met for r in results], weighting))


def _round_half_away(x: float) -> int:
    return int(math.floor(abs(x) + 0.5)) * (1 if x >= 0 else -1)


def overall_band(bands: Iterable[Band]) -> Band:
    values = [int(b) for b in bands]
    if not values:
        return Band.FAIL
    return Band.clamped(_round_half_away(sum(values) / len(values)))


@dataclass(frozen=True)
class DomainBands:
    data_gathering: Band
    clinical_management: Band
    relating_to_others: Band
    application: Band
    overall: Band

    def for_domain(self, domain: Domain) -> Band:
        return {
            Domain.DATA_GATHERING: self.data_gathering,
            Domain.CLINICAL_MANAGEMENT: self.clinical_management,
            Domain.RELATING_TO_OTHERS: self.relating_to_others,
            Domain.APPLICATION: self.application,
        }[domain]

    def summary(self) -> Dict[str, str]:
        return {
            "dgBand": self.data_gathering.label,
            "cmBand": self.clinical_management.label,
            "rtoBand": self.relating_to_others.label,
            "appBand": self.application.label,
            "overallBand": self.overall.label,
        }


def compute_bands(classification: Classification, weighting: WeightFn = first_three_weighting) -> DomainBands:
    def _domain(domain: Domain) -> Band:
        return domain_band(
            classification.get(list_key(domain, Polarity.POSITIVE)),
            classification.get(list_key(domain, Polarity.NEGATIVE)),
            weighting,
        )

    dg = _domain(Domain.DATA_GATHERING)
    cm = _domain(Domain.CLINICAL_MANAGEMENT)
    rto = _domain(Domain.RELATING_TO_OTHERS)
    app = application_band(classification.get("application"), weighting)
    return DomainBands(
        data_gathering=dg,
        clinical_management=cm,
        relating_to_others=rto,
        application=app,
        overall=overall_band((dg, cm, rto, app)),
    )
