"""Unit tests for the OutboxEvent model.

Covers:
- Default status is PENDING.
- mark_as_published() / mark_as_failed() transitions.
- ``deliverable`` queryset honours the retry budget.
"""

from __future__ import annotations

import pytest

from modules.core.models import EventStatus, OutboxEvent

pytestmark = pytest.mark.unit


def _make_event(**overrides) -> OutboxEvent:
    defaults = {
        "event_type": "OrderCreated",
        "payload": {"aggregate_id": "abc-123", "total_amount": "99.90"},
        "aggregate_id": "abc-123",
        "topic": "notify_managers",
    }
    defaults.update(overrides)
    return OutboxEvent.objects.create(**defaults)


class TestOutboxEventTransitions:
    def test_new_event_is_pending(self):
        event = _make_event()
        event.refresh_from_db()
        assert event.status == EventStatus.PENDING
        assert event.retry_count == 0
        assert event.payload["total_amount"] == "99.90"

    def test_mark_as_failed_then_published(self):
        event = _make_event()

        event.mark_as_failed("RuntimeError: boom")
        event.refresh_from_db()
        assert event.status == EventStatus.FAILED
        assert event.retry_count == 1
        assert event.error_message == "RuntimeError: boom"

        event.mark_as_published()
        event.refresh_from_db()
        assert event.is_published
        assert event.processed_at is not None
        assert event.error_message is None

    def test_str_contains_topic(self):
        assert "notify_managers" in str(_make_event())


class TestDeliverableQuerySet:
    def test_excludes_published_and_exhausted_rows(self):
        pending = _make_event()
        retryable = _make_event(status=EventStatus.FAILED, retry_count=2)
        _make_event(status=EventStatus.FAILED, retry_count=5)
        _make_event(status=EventStatus.PUBLISHED)

        ids = set(OutboxEvent.objects.deliverable(max_retries=5).values_list("id", flat=True))

        assert ids == {pending.id, retryable.id}
