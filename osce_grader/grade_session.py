# osce_grader/grade_session.py
"""
grade_session.py – entry point for grading one OSCE transcript against a case.

Pipeline (one linear sequence of awaited calls per run):
  case rows -> marking rubric -> classifier -> normalizer -> bands -> report

Optional follow-ups once a report exists: save the attempt and add the case to
the user's completed set.  Those only run when a user id is given.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from . import attempts, indicators, progress
from .bands import DomainBands, WeightFn, compute_bands, first_three_weighting
from .classifier import DEFAULT_MODEL, LLM_TIMEOUT_SECONDS, STRICT_REASK, EvidenceClassifier
from .indicators import MarkingRubric
from .normalizer import Classification, Unparseable, align_classification, parse_response, require_object
from .records import RecordStore
from .report import format_report
from .store import GradingStore, InMemoryGradingStore

logger = logging.getLogger(__name__)


@dataclass
class GradingOutcome:
    report: str
    bands: DomainBands
    classification: Classification

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gradingText": self.report,
            "bands": self.bands.summary(),
            "classification": self.classification.to_dict(),
        }


async def classify_transcript(
    transcript: Iterable[Any],
    marking: MarkingRubric,
    classifier: EvidenceClassifier,
    strict_reask: bool = STRICT_REASK,
) -> Classification:
    turns = list(transcript)
    raw = await classifier.classify(turns, marking)
    outcome = parse_response(raw)
    if isinstance(outcome, Unparseable) and strict_reask:
        logger.warning("Classifier output unparseable (%s); re-asking once with strict prompt", outcome.reason)
        outcome = parse_response(await classifier.classify(turns, marking, strict=True))
    return align_classification(marking, require_object(outcome))


async def grade_transcript(
    transcript: Iterable[Any],
    marking: MarkingRubric,
    classifier: EvidenceClassifier,
    weighting: WeightFn = first_three_weighting,
    strict_reask: bool = STRICT_REASK,
) -> GradingOutcome:
    classification = await classify_transcript(transcript, marking, classifier, strict_reask=strict_reask)
    bands = compute_bands(classification, weighting)
    logger.info("Bands: %s", bands.summary())
    return GradingOutcome(report=format_report(classification, bands), bands=bands, classification=classification)


async def grade_case(
    case_records: RecordStore,
    case_id: Any,
    transcript: Iterable[Any],
    classifier: EvidenceClassifier,
    weighting: WeightFn = first_three_weighting,
    strict_reask: bool = STRICT_REASK,
) -> GradingOutcome:
    marking = await indicators.load_case_marking(case_records, case_id)
    return await grade_transcript(transcript, marking, classifier, weighting, strict_reask)


async def run_grading_job(
    store: GradingStore,
    session_id: str,
    case_records: RecordStore,
    case_id: Any,
    transcript: Iterable[Any],
    classifier: EvidenceClassifier,
    user_records: Optional[RecordStore] = None,
    user_id: Optional[str] = None,
    record_attempt: bool = True,
    mark_completed: bool = True,
    weighting: WeightFn = first_three_weighting,
    strict_reask: bool = STRICT_REASK,
) -> GradingOutcome:
    """
    Grade a session and publish the result through ``store``.

    The store entry is created pending and finished exactly once: ready with
    the report and band summary, or error with the message.  Errors are
    re-raised after being recorded.
    """
    store.create(session_id)
    try:
        outcome = await grade_case(case_records, case_id, transcript, classifier, weighting, strict_reask)
    except Exception as e:
        store.set_error(session_id, str(e) or type(e).__name__)
        raise
    store.set_ready(session_id, {"gradingText": outcome.report, "bands": outcome.bands.summary()})

    if user_records is not None and user_id:
        if record_attempt:
            await attempts.save_attempt(
                user_records, session_id, case_id, user_id, outcome.report, outcome.bands.summary()
            )
        if mark_completed:
            update = await progress.mark_case_completed(user_records, user_id, case_id)
            logger.info("User %s has %d completed case(s)", user_id, len(update.completed))
    return outcome


# --------------------------------------------------------------------------- #
# CLI
# --------------------------------------------------------------------------- #

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Grade an OSCE transcript against a case marking scheme.")
    parser.add_argument("--case", required=True, help="Case number; rubric rows are read from table 'Case <N>'.")
    parser.add_argument(
        "--transcript",
        required=True,
        help="Path to a JSON file holding a list of {role, text} turns.",
    )
    parser.add_argument("--session", default=None, help="Session id used for the result store and attempt log.")
    parser.add_argument("--user", default=None, help="User id for the attempt log and completed-case tracking.")
    parser.add_argument(
        "--record-attempt",
        action="store_true",
        help="Save the graded attempt to the attempts table (requires --user).",
    )
    parser.add_argument(
        "--mark-completed",
        action="store_true",
        help="Add the case to the user's completed set (requires --user).",
    )

    # LLM engine
    parser.add_argument(
        "--engine-base-url",
        default=None,
        help="Base URL of an OpenAI-compatible classifier server; sets OPENAI_BASE_URL for this run.",
    )
    parser.add_argument("--model", default=DEFAULT_MODEL, help="OpenAI chat model used for classification.")
    parser.add_argument(
        "--timeout",
        type=float,
        default=LLM_TIMEOUT_SECONDS,
        help="Seconds to wait for the classifier before failing the run.",
    )
    parser.add_argument(
        "--strict-reask",
        action="store_true",
        default=STRICT_REASK,
        help="Re-ask once with a stricter prompt if the first answer is not JSON.",
    )

    parser.add_argument(
        "--out",
        default=None,
        help="Write the grading result (report, bands, session and case ids) as JSON here instead of stdout.",
    )
    return parser.parse_args(argv)


def load_transcript(path: str) -> List[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("transcript", [])
    if not isinstance(data, list) or not data:
        raise ValueError(f"Transcript file has no turns: {path}")
    return data


async def _run(args: argparse.Namespace) -> Dict[str, Any]:
    transcript = load_transcript(args.transcript)
    logger.info("Loaded %d transcript turn(s)", len(transcript))
    classifier = EvidenceClassifier(model=args.model, timeout=args.timeout)
    session_id = args.session or f"cli-case-{args.case}"
    wants_user_store = bool(args.user and (args.record_attempt or args.mark_completed))

    store = InMemoryGradingStore()
    async with RecordStore.for_cases() as case_records:
        user_records = RecordStore.for_users() if wants_user_store else None
        try:
            outcome = await run_grading_job(
                store,
                session_id,
                case_records,
                args.case,
                transcript,
                classifier,
                user_records=user_records,
                user_id=args.user,
                record_attempt=args.record_attempt,
                mark_completed=args.mark_completed,
                strict_reask=args.strict_reask,
            )
        finally:
            if user_records is not None:
                await user_records.aclose()

    result = outcome.to_dict()
    result["sessionId"] = session_id
    result["caseId"] = str(args.case)
    return result


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO)
    args = parse_args(argv)

    if not os.path.isfile(args.transcript):
        raise FileNotFoundError(f"Transcript file not found: {args.transcript}")
    if (args.record_attempt or args.mark_completed) and not args.user:
        raise SystemExit("--record-attempt/--mark-completed require --user")

    # Wire env for downstream modules
    if args.engine_base_url:
        os.environ["OPENAI_BASE_URL"] = args.engine_base_url

    result = asyncio.run(_run(args))
    _emit_results(result, args.out)


def _emit_results(result: Dict[str, Any], out_path: Optional[str]) -> None:
    text = json.dumps(result, ensure_ascii=False, indent=2)
    if not out_path:
        print(text)
        return
    parent = os.path.dirname(out_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(text + "\n")
    logger.info(
        "Grading for session %s (case %s, overall %s) written to %s",
        result.get("sessionId"), result.get("caseId"), result.get("bands", {}).get("overallBand"), out_path,
    )


if __name__ == "__main__":
    main()
