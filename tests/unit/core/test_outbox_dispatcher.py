"""Unit tests for the outbox-backed side-effect dispatcher."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.db import transaction
from django.utils import timezone

from modules.core.middleware import correlation_id_var
from modules.core.models import EventStatus, OutboxEvent
from modules.core.outbox import OutboxDispatcher
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import InMemoryEventBus

pytestmark = pytest.mark.unit


@dataclass(frozen=True)
class ThingHappened(DomainEvent):
    label: str = ""


class RecordingHandler:
    def __init__(self, name, fail=False, only_label=None):
        self.name = name
        self.fail = fail
        self.only_label = only_label
        self.seen = []

    def applies_to(self, event) -> bool:
        return self.only_label is None or event.label == self.only_label

    def handle(self, event) -> None:
        if self.fail:
            raise RuntimeError("handler exploded")
        self.seen.append(event)


@pytest.fixture()
def bus():
    return InMemoryEventBus()


@pytest.fixture()
def dispatcher(bus):
    return OutboxDispatcher(bus=bus)


class TestStaging:
    def test_one_row_per_applicable_handler(self, bus, dispatcher):
        bus.subscribe(ThingHappened, RecordingHandler("first"))
        bus.subscribe(ThingHappened, RecordingHandler("second"))
        bus.subscribe(ThingHappened, RecordingHandler("picky", only_label="other"))

        rows = dispatcher.stage_events([ThingHappened(aggregate_id=uuid4(), label="x")])

        assert sorted(row.topic for row in rows) == ["first", "second"]
        assert all(row.event_type == "ThingHappened" for row in rows)
        assert all(row.status == EventStatus.PENDING for row in rows)

    def test_no_subscribers_writes_nothing(self, dispatcher):
        assert dispatcher.stage_events([ThingHappened(aggregate_id=uuid4())]) == []
        assert OutboxEvent.objects.count() == 0

    def test_delivery_scheduled_after_commit(
        self, bus, dispatcher, django_capture_on_commit_callbacks
    ):
        handler = RecordingHandler("first")
        bus.subscribe(ThingHappened, handler)

        with patch("modules.core.outbox._enqueue") as enqueue:
            with django_capture_on_commit_callbacks(execute=True) as callbacks:
                rows = dispatcher.stage_events([ThingHappened(aggregate_id=uuid4())])

        assert len(callbacks) == 1
        enqueue.assert_called_once_with([str(rows[0].id)], correlation_id="")

    def test_request_correlation_id_travels_with_delivery(
        self, bus, dispatcher, django_capture_on_commit_callbacks
    ):
        bus.subscribe(ThingHappened, RecordingHandler("first"))
        token = correlation_id_var.set("req-42")
        try:
            with patch("modules.core.outbox._enqueue") as enqueue:
                with django_capture_on_commit_callbacks(execute=True):
                    rows = dispatcher.stage_events([ThingHappened(aggregate_id=uuid4())])
        finally:
            correlation_id_var.reset(token)

        enqueue.assert_called_once_with([str(rows[0].id)], correlation_id="req-42")


@pytest.mark.django_db(transaction=True)
def test_staging_outside_transaction_is_rejected():
    dispatcher = OutboxDispatcher(bus=InMemoryEventBus())
    assert not transaction.get_connection().in_atomic_block
    with pytest.raises(RuntimeError):
        dispatcher.stage_events([ThingHappened(aggregate_id=uuid4())])


class TestDelivery:
    def test_successful_handler_publishes_row(self, bus, dispatcher):
        handler = RecordingHandler("first")
        bus.subscribe(ThingHappened, handler)
        aggregate_id = uuid4()
        (row,) = dispatcher.stage_events([ThingHappened(aggregate_id=aggregate_id, label="hi")])

        assert dispatcher.deliver(str(row.id)) is True

        row.refresh_from_db()
        assert row.status == EventStatus.PUBLISHED
        assert handler.seen[0].aggregate_id == aggregate_id
        assert handler.seen[0].label == "hi"

    def test_failing_handler_is_recorded_not_raised(self, bus, dispatcher):
        good = RecordingHandler("good")
        bus.subscribe(ThingHappened, good)
        bus.subscribe(ThingHappened, RecordingHandler("bad", fail=True))
        rows = dispatcher.stage_events([ThingHappened(aggregate_id=uuid4())])

        results = {row.topic: dispatcher.deliver(str(row.id)) for row in rows}

        assert results == {"good": True, "bad": False}
        bad = OutboxEvent.objects.get(topic="bad")
        assert bad.status == EventStatus.FAILED
        assert bad.retry_count == 1
        assert "handler exploded" in bad.error_message
        assert len(good.seen) == 1

    def test_published_row_is_not_delivered_twice(self, bus, dispatcher):
        handler = RecordingHandler("first")
        bus.subscribe(ThingHappened, handler)
        (row,) = dispatcher.stage_events([ThingHappened(aggregate_id=uuid4())])

        dispatcher.deliver(str(row.id))
        dispatcher.deliver(str(row.id))

        assert len(handler.seen) == 1

    def test_unknown_topic_fails_row(self, dispatcher):
        row = OutboxEvent.objects.create(
            event_type="ThingHappened",
            aggregate_id=str(uuid4()),
            payload={},
            topic="nobody",
        )

        assert dispatcher.deliver(str(row.id)) is False
        row.refresh_from_db()
        assert row.status == EventStatus.FAILED

    def test_missing_row_is_skipped(self, dispatcher):
        assert dispatcher.deliver(str(uuid4())) is False


class TestRelay:
    def test_relay_requeues_stale_deliverable_rows(self, dispatcher):
        stale = OutboxEvent.objects.create(
            event_type="ThingHappened", aggregate_id="1", payload={}, topic="a"
        )
        fresh = OutboxEvent.objects.create(
            event_type="ThingHappened", aggregate_id="2", payload={}, topic="a"
        )
        OutboxEvent.objects.filter(id=stale.id).update(
            updated_at=timezone.now() - timedelta(minutes=5)
        )

        with patch("modules.core.outbox._enqueue") as enqueue:
            count = dispatcher.relay()

        assert count == 1
        enqueue.assert_called_once_with([str(stale.id)])
        assert str(fresh.id) not in enqueue.call_args.args[0]
