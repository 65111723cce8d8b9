# osce_grader/report.py
"""Markdown rendering of a graded classification.  Output is deterministic."""

from __future__ import annotations

from typing import List

from .bands import DomainBands
from .indicators import CLINICAL_DOMAINS, Domain, Polarity, list_key
from .normalizer import Classification, IndicatorResult

DOMAIN_ITEM_CAP = 8
APPLICATION_ITEM_CAP = 12


def _item(result: IndicatorResult) -> str:
    if result.evidence:
        return f'- {result.indicator} (evidence: "{result.evidence}")'
    return f"- {result.indicator}"


def _section(title: str, results: List[IndicatorResult], cap: int) -> List[str]:
    # extra entries beyond the cap are dropped without a marker
    lines = [f"{title}:"]
    lines.extend(_item(r) for r in results[:cap])
    if not results:
        lines.append("- None")
    lines.append("")
    return lines


def _notes(classification: Classification, section: str) -> List[str]:
    lines: List[str] = []
    strengths = classification.note(section, "strengths")
    improvements = classification.note(section, "improvements")
    if strengths:
        lines += [f"Strengths: {strengths}", ""]
    if improvements:
        lines += [f"What to improve: {improvements}", ""]
    return lines


def _positive_block(
    classification: Classification, key: str, cap: int
) -> List[str]:
    results = classification.get(key)
    lines = _section("Met indicators", [r for r in results if r.met], cap)
    lines += _section("Missed indicators", [r for r in results if not r.met], cap)
    return lines


def format_report(classification: Classification, bands: DomainBands) -> str:
    lines: List[str] = []

    for domain in CLINICAL_DOMAINS:
        lines.append(f"## {domain.heading}: **{bands.for_domain(domain).label}**")
        lines.append("")
        lines += _positive_block(classification, list_key(domain, Polarity.POSITIVE), DOMAIN_ITEM_CAP)
        triggered = [r for r in classification.get(list_key(domain, Polarity.NEGATIVE)) if r.occurred]
        lines += _section("Concerns noted", triggered, DOMAIN_ITEM_CAP)
        lines += _notes(classification, domain.key)

    lines.append(f"## {Domain.APPLICATION.heading}: **{bands.application.label}**")
    lines.append("")
    lines += _positive_block(classification, "application", APPLICATION_ITEM_CAP)
    lines += _notes(classification, "application")

    lines.append(f"## Overall: **{bands.overall.label}**")
    lines.append("")
    summary = classification.note("overall", "summary")
    next_steps = classification.note("overall", "next_steps")
    if summary:
        lines += [summary, ""]
    if next_steps:
        lines += ["Next steps:", next_steps, ""]

    s = bands.summary()
    lines.append(
        f"(Internal bands: DG={s['dgBand']}, CM={s['cmBand']}, RTO={s['rtoBand']}, "
        f"App={s['appBand']}, Overall={s['overallBand']})"
    )
    return "\n".join(lines)
