# osce_grader/classifier.py
"""
classifier.py – build the evidence classification request and call the
OpenAI API (v1.0+).

One request per grading run carries the rendered transcript and all seven
indicator lists.  The model is asked to mark each indicator met/occurred with
supporting evidence, conservatively, as a single JSON object.

Key capabilities:
- Lazy AsyncOpenAI client creation; respects OPENAI_BASE_URL (e.g., vLLM).
- Zero temperature, capped max_tokens, JSON-object response format.
- Explicit request timeout; the SDK's own retries are disabled.
- Transport and non-success responses surface as ClassifierError with the
  status code and a truncated body.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Iterable, List, Optional

import openai

from .errors import ClassifierError, preview
from .indicators import RUBRIC_FIELDS, MarkingRubric, Polarity
from .transcript import TRANSCRIPT_MAX_TURNS, transcript_to_text

logger = logging.getLogger(__name__)


def _bool_env(name: str, default: bool) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


# Tunables
DEFAULT_MODEL = os.getenv("GRADER_MODEL", "gpt-4o-mini")
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "2200"))
DEFAULT_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0"))
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "120"))
STRICT_REASK = _bool_env("GRADER_STRICT_REASK", False)


# --------------------------------------------------------------------------- #
# Prompt construction
# --------------------------------------------------------------------------- #

SYSTEM_PROMPT = (
    "You are an OSCE examiner reviewing a consultation transcript.\n"
    "For every indicator supplied, decide whether the transcript clearly evidences it.\n"
    "Be conservative: mark an indicator true ONLY if it is clearly evidenced in the transcript.\n"
    "If you are unsure, mark it false and leave evidence as an empty string.\n"
    "Positive indicators use the field 'met'; negative indicators use the field 'occurred'.\n"
    "Evidence is a short quote or paraphrase from the transcript (max ~20 words).\n"
    "Copy each indicator's text exactly as given and keep the list order.\n"
    "Return ONLY a single valid JSON object matching output_schema_hint. No markdown, no commentary.\n"
)

STRICT_SYSTEM_PROMPT = (
    "Return ONLY valid JSON. No markdown. No commentary outside JSON.\n"
    "Follow output_schema_hint exactly. Mark an indicator true only when clearly evidenced; "
    "otherwise false with empty evidence. Keep notes short.\n"
)


def schema_hint() -> Dict[str, Any]:
    """Example object shown to the model to bias it toward the expected shape."""
    hint: Dict[str, Any] = {}
    for key, _field, _domain, polarity in RUBRIC_FIELDS:
        flag = "occurred" if polarity is Polarity.NEGATIVE else "met"
        hint[key] = [{"indicator": "string", flag: "true|false", "evidence": "string"}]
    hint["notes"] = {
        "dg": {"strengths": "string", "improvements": "string"},
        "cm": {"strengths": "string", "improvements": "string"},
        "rto": {"strengths": "string", "improvements": "string"},
        "overall": {"summary": "string", "next_steps": "string"},
    }
    return hint


def response_schema() -> Dict[str, Any]:
    """JSON schema describing a conformant classifier answer."""

    def _list(flag: str) -> Dict[str, Any]:
        return {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "indicator": {"type": "string"},
                    flag: {"type": "boolean"},
                    "evidence": {"type": "string"},
                },
                "required": ["indicator", flag, "evidence"],
            },
        }

    properties: Dict[str, Any] = {}
    for key, _field, _domain, polarity in RUBRIC_FIELDS:
        properties[key] = _list("occurred" if polarity is Polarity.NEGATIVE else "met")
    properties["notes"] = {"type": "object"}
    return {
        "type": "object",
        "properties": properties,
        "required": [key for key, *_ in RUBRIC_FIELDS],
    }


def build_payload(transcript: Iterable[Any], marking: MarkingRubric, max_turns: int = TRANSCRIPT_MAX_TURNS) -> Dict[str, Any]:
    turns = list(transcript or [])
    if not turns:
        raise ValueError("Transcript missing/empty")
    text = transcript_to_text(turns, max_turns=max_turns)
    if not text.strip():
        raise ValueError("Transcript text empty after formatting")
    return {
        "transcript": text,
        "indicators": marking.as_payload(),
        "output_schema_hint": schema_hint(),
    }


def build_messages(payload: Dict[str, Any], strict: bool = False) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": STRICT_SYSTEM_PROMPT if strict else SYSTEM_PROMPT},
        {"role": "user", "content": json.dumps(payload, ensure_ascii=False, indent=2)},
    ]


# --------------------------------------------------------------------------- #
# LLM client
# --------------------------------------------------------------------------- #

def _make_client(timeout: float) -> openai.AsyncOpenAI:
    """Construct an AsyncOpenAI client on demand. Honors OPENAI_BASE_URL."""
    kwargs: Dict[str, Any] = {
        "api_key": os.getenv("OPENAI_API_KEY", "EMPTY"),
        "timeout": timeout,
        "max_retries": 0,
    }
    base_url = os.getenv("OPENAI_BASE_URL")
    if base_url:
        kwargs["base_url"] = base_url
    return openai.AsyncOpenAI(**kwargs)


class EvidenceClassifier:
    """Sends one classification request per grading run and returns the raw text."""

    def __init__(
        self,
        model: Optional[str] = None,
        client: Any = None,
        timeout: Optional[float] = None,
        max_tokens: int = LLM_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        max_turns: int = TRANSCRIPT_MAX_TURNS,
    ) -> None:
        self.model = model or DEFAULT_MODEL
        self.timeout = timeout if timeout is not None else LLM_TIMEOUT_SECONDS
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_turns = max_turns
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = _make_client(self.timeout)
        return self._client

    async def classify(self, transcript: Iterable[Any], marking: MarkingRubric, strict: bool = False) -> str:
        """Return the model's raw answer text.  Raises ClassifierError on any failure."""
        payload = build_payload(transcript, marking, max_turns=self.max_turns)
        kwargs: Dict[str, Any] = dict(
            model=self.model,
            messages=build_messages(payload, strict=strict),
            max_tokens=self.max_tokens if not strict else self.max_tokens + 400,
            temperature=self.temperature,
            response_format={"type": "json_object"},
            timeout=self.timeout,
        )
        logger.info(
            "Requesting classification of %d indicator(s) with %s (strict=%s)",
            len(marking), self.model, strict,
        )
        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.APIStatusError as e:
            raise ClassifierError(
                "Classifier request failed", status_code=e.status_code, body=preview(e.response.text)
            ) from e
        except openai.APITimeoutError as e:
            raise ClassifierError(f"Classifier request timed out after {self.timeout}s") from e
        except openai.APIConnectionError as e:
            raise ClassifierError("Classifier request could not connect", body=preview(str(e))) from e
        except openai.APIError as e:
            raise ClassifierError(f"Classifier request failed: {type(e).__name__}", body=preview(str(e))) from e

        try:
            raw = response.choices[0].message.content or ""
        except (AttributeError, IndexError) as e:
            raise ClassifierError("Classifier response had no message content", body=preview(repr(response))) from e
        logger.info("Classifier returned %d character(s)", len(raw))
        return raw
