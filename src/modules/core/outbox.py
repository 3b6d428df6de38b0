"""Post-commit side-effect dispatcher backed by the transactional outbox.

``stage`` runs inside the caller's transaction: every domain event
collected on an aggregate becomes one ``OutboxEvent`` row per subscribed
handler, so each action (notify, loyalty, referral) is delivered, retried
and audited on its own.  Delivery is scheduled with
``transaction.on_commit`` and happens in a Celery worker; nothing here
ever propagates a handler failure to the code that committed the order.
"""

from __future__ import annotations

from datetime import timedelta
from functools import partial
from typing import Iterable, List, Optional

import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from modules.core.middleware import correlation_id_var
from modules.core.models import OutboxEvent
from shared.domain.bus import IEventBus
from shared.domain.events import DomainEvent, DomainEventMixin
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)

RELAY_GRACE_PERIOD = timedelta(seconds=60)


class OutboxDispatcher:
    def __init__(self, bus: Optional[IEventBus] = None) -> None:
        self._bus = bus or event_bus

    # ------------------------------------------------------------------
    # Staging (inside the core transaction)
    # ------------------------------------------------------------------

    def stage(self, aggregate: DomainEventMixin) -> List[OutboxEvent]:
        """Persist the aggregate's pending events and schedule delivery."""
        rows = self.stage_events(aggregate.domain_events)
        aggregate.clear_domain_events()
        return rows

    def stage_events(self, events: Iterable[DomainEvent]) -> List[OutboxEvent]:
        if not transaction.get_connection().in_atomic_block:
            raise RuntimeError("Outbox events must be staged inside a transaction.")

        rows: List[OutboxEvent] = []
        for event in events:
            payload = event.to_payload()
            for handler in self._bus.handlers_for(type(event)):
                if not handler.applies_to(event):
                    continue
                rows.append(
                    OutboxEvent.objects.create(
                        event_type=event.event_name,
                        aggregate_id=str(event.aggregate_id),
                        payload=payload,
                        topic=handler.name,
                    )
                )

        if rows:
            ids = [str(row.id) for row in rows]
            transaction.on_commit(
                partial(_enqueue, ids, correlation_id=correlation_id_var.get()),
                robust=True,
            )
            logger.info("outbox.staged", count=len(rows), topics=[r.topic for r in rows])
        return rows

    # ------------------------------------------------------------------
    # Delivery (worker side)
    # ------------------------------------------------------------------

    def deliver(self, outbox_event_id: str) -> bool:
        """Run the handler for one outbox row.

        Returns ``True`` when the row is (or already was) published.
        Handler errors are logged and recorded on the row, never raised.
        """
        with transaction.atomic():
            row = (
                OutboxEvent.objects.select_for_update(skip_locked=True)
                .filter(id=outbox_event_id)
                .first()
            )
            if row is None:
                logger.info("outbox.skipped", outbox_event_id=str(outbox_event_id))
                return False
            if row.is_published:
                return True

            log = logger.bind(
                outbox_event_id=str(row.id),
                event_type=row.event_type,
                topic=row.topic,
                aggregate_id=row.aggregate_id,
            )
            try:
                handler = self._bus.get_handler(row.topic)
                event = self._bus.event_class(row.event_type).from_payload(row.payload)
                with transaction.atomic():
                    handler.handle(event)
            except Exception as exc:
                log.exception("outbox.delivery_failed", retry_count=row.retry_count + 1)
                row.mark_as_failed(f"{type(exc).__name__}: {exc}")
                return False

            row.mark_as_published()
            log.info("outbox.delivered")
            return True

    def relay(self, limit: Optional[int] = None) -> int:
        """Re-enqueue rows whose post-commit delivery never completed."""
        cutoff = timezone.now() - RELAY_GRACE_PERIOD
        limit = limit or settings.OUTBOX_RELAY_BATCH_SIZE
        ids = [
            str(pk)
            for pk in OutboxEvent.objects.deliverable(settings.OUTBOX_MAX_RETRIES)
            .filter(updated_at__lt=cutoff)
            .values_list("id", flat=True)[:limit]
        ]
        if ids:
            _enqueue(ids)
        logger.info("outbox.relayed", count=len(ids))
        return len(ids)


def _enqueue(outbox_event_ids: List[str], correlation_id: str = "") -> None:
    from modules.core.tasks import deliver_outbox_event

    for outbox_event_id in outbox_event_ids:
        try:
            deliver_outbox_event.delay(outbox_event_id, correlation_id)
        except Exception:
            # Broker down: the row stays PENDING and the relay retries it.
            logger.exception("outbox.enqueue_failed", outbox_event_id=outbox_event_id)


outbox_dispatcher = OutboxDispatcher()
