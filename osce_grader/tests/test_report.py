"""Tests for the markdown grading report."""

from osce_grader.bands import compute_bands
from osce_grader.indicators import MarkingRubric
from osce_grader.normalizer import align_classification
from osce_grader.report import APPLICATION_ITEM_CAP, DOMAIN_ITEM_CAP, format_report


def _graded(texts, data):
    marking = MarkingRubric.from_texts(texts)
    classification = align_classification(marking, data)
    return classification, compute_bands(classification)


def test_report_sections_and_evidence() -> None:
    classification, bands = _graded(
        {
            "dg_positive": ["Asks onset", "Asks severity"],
            "dg_negative": ["Interrupts patient"],
            "application": ["Uses guideline"],
        },
        {
            "dg_positive": [{"indicator": "Asks onset", "met": True, "evidence": "when did it start"}],
            "dg_negative": [{"indicator": "Interrupts patient", "occurred": True, "evidence": "cut off"}],
            "notes": {
                "dg": {"strengths": "Clear opening", "improvements": "Let the patient finish"},
                "overall": {"summary": "Reasonable attempt", "next_steps": "Practise listening"},
            },
        },
    )
    report = format_report(classification, bands)
    assert report.startswith("## Data Gathering & Diagnosis: **Fail**")
    assert '- Asks onset (evidence: "when did it start")' in report
    assert "Missed indicators:\n- Asks severity" in report
    assert 'Concerns noted:\n- Interrupts patient (evidence: "cut off")' in report
    assert "Strengths: Clear opening" in report
    assert "What to improve: Let the patient finish" in report
    assert "## Clinical Management: **Fail**" in report
    assert "## Relating to Others:" in report
    assert "## Application: **Fail**" in report
    assert "## Overall: **Fail**" in report
    assert "Reasonable attempt" in report
    assert "Next steps:\nPractise listening" in report
    assert report.endswith("(Internal bands: DG=Fail, CM=Fail, RTO=Fail, App=Fail, Overall=Fail)")


def test_report_caps_are_silent() -> None:
    dg = [f"data item {i}" for i in range(DOMAIN_ITEM_CAP + 4)]
    app = [f"app item {i}" for i in range(APPLICATION_ITEM_CAP + 3)]
    classification, bands = _graded(
        {"dg_positive": dg, "application": app},
        {"dg_positive": [{"indicator": t, "met": True} for t in dg]},
    )
    report = format_report(classification, bands)
    assert f"- data item {DOMAIN_ITEM_CAP - 1}" in report
    assert f"- data item {DOMAIN_ITEM_CAP}\n" not in report
    assert f"- app item {APPLICATION_ITEM_CAP - 1}" in report
    assert f"- app item {APPLICATION_ITEM_CAP}\n" not in report
    assert "more" not in report


def test_report_is_deterministic() -> None:
    texts = {"cm_positive": ["Explains plan"], "cm_negative": ["Unsafe advice"]}
    data = {"cm_positive": [{"indicator": "Explains plan", "met": True}]}
    first = format_report(*_graded(texts, data))
    second = format_report(*_graded(texts, data))
    assert first == second
    assert "Concerns noted:\n- None" in first


def test_missed_indicators_never_show_evidence() -> None:
    classification, bands = _graded(
        {"dg_positive": ["Asks onset", "Asks severity"], "dg_negative": ["Interrupts patient"]},
        {
            "dg_positive": [
                {"indicator": "Asks onset", "met": True, "evidence": "when did it start"},
                {"indicator": "Asks severity", "met": False, "evidence": "rated pain 7/10"},
            ],
            "dg_negative": [{"indicator": "Interrupts patient", "occurred": False, "evidence": "let them finish"}],
        },
    )
    report = format_report(classification, bands)
    assert "Missed indicators:\n- Asks severity\n" in report
    assert "rated pain" not in report
    assert "let them finish" not in report
