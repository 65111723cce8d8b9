"""Tests for the injected grading result store."""

import pytest

from osce_grader.errors import StoreTransitionError
from osce_grader.store import InMemoryGradingStore, Status


def test_pending_then_ready() -> None:
    store = InMemoryGradingStore()
    store.create("s1")
    assert store.status("s1") is Status.PENDING
    entry = store.set_ready("s1", {"gradingText": "ok"})
    assert entry.status is Status.READY
    assert store.get("s1").result == {"gradingText": "ok"}
    assert store.get("s1").updated_at is not None


def test_transition_happens_exactly_once() -> None:
    store = InMemoryGradingStore()
    store.create("s1")
    store.set_error("s1", "boom")
    with pytest.raises(StoreTransitionError):
        store.set_ready("s1", {})
    with pytest.raises(StoreTransitionError):
        store.set_error("s1", "again")
    assert store.get("s1").error == "boom"


def test_create_twice_and_unknown_session() -> None:
    store = InMemoryGradingStore()
    store.create("s1")
    with pytest.raises(StoreTransitionError):
        store.create("s1")
    with pytest.raises(StoreTransitionError):
        store.set_ready("missing", {})
    assert store.status("missing") is None
    assert len(store) == 1


def test_stores_are_independent() -> None:
    a, b = InMemoryGradingStore(), InMemoryGradingStore()
    a.create("s1")
    assert b.get("s1") is None
