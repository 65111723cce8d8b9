"""Indicator-based OSCE transcript grading.

Importing this package makes the submodules ``indicators``, ``classifier``,
``normalizer``, ``bands``, ``report``, ``progress`` and ``store`` available.
Run ``python -m osce_grader.grade_session`` (or ``osce-grade``) to grade a
transcript against a case from the command line.
"""
# osce_grader/__init__.py
__all__ = [
    "attempts",
    "bands",
    "classifier",
    "indicators",
    "normalizer",
    "progress",
    "records",
    "report",
    "store",
    "transcript",
]
__version__ = "0.1.0"
