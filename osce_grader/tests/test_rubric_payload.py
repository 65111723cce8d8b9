"""Validate the indicator payload sent to the classifier.

Rubric rows arrive from a remote table, so this checks that whatever
``build_marking`` makes of them still conforms to the expected request schema
(seven lists of strings, no extra properties).  Keeping this test ensures the
request stays machine-parsable when rubric fields change.
"""

import pytest
import jsonschema

from osce_grader.indicators import RUBRIC_FIELDS, build_marking

SCHEMA = {
    "type": "object",
    "properties": {
        key: {
            "type": "array",
            "items": {"type": "string", "minLength": 3},
        }
        for key, *_ in RUBRIC_FIELDS
    },
    "required": [key for key, *_ in RUBRIC_FIELDS],
    "additionalProperties": False,
}

ROWS = [
    {"fields": {"DG positive": "1. Asks about onset\n2. Asks about severity", "DG negative": "- ok\n- Leading questions"}},
    {"fields": {"CM positive": "• Explains diagnosis", "RTO negative": "* Dismisses concerns", "Application": 42}},
    {"fields": {"Notes": "ignored field"}},
]


def test_marking_payload_valid() -> None:
    payload = build_marking(ROWS).as_payload()
    try:
        jsonschema.validate(payload, SCHEMA)
    except jsonschema.ValidationError as exc:
        pytest.fail(f"Marking payload is invalid: {exc.message}")
    assert payload["dg_negative"] == ["Leading questions"]
    assert payload["application"] == []


def test_empty_marking_payload_valid() -> None:
    jsonschema.validate(build_marking([]).as_payload(), SCHEMA)
