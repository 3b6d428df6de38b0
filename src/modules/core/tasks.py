"""Asynchronous tasks of the core module."""

import structlog
from celery import shared_task

from modules.core.outbox import outbox_dispatcher

logger = structlog.get_logger(__name__)


@shared_task(name="core.deliver_outbox_event", ignore_result=True)
def deliver_outbox_event(outbox_event_id: str, correlation_id: str = "") -> bool:
    """Deliver one side-effect row; failures are recorded, not raised.

    ``correlation_id`` is the id of the request that committed the row, so
    the delivery logs can be joined with the request logs.
    """
    if not correlation_id:
        return outbox_dispatcher.deliver(outbox_event_id)
    with structlog.contextvars.bound_contextvars(correlation_id=correlation_id):
        return outbox_dispatcher.deliver(outbox_event_id)


@shared_task(name="core.relay_outbox_events")
def relay_outbox_events() -> dict:
    """Periodic safety net for rows whose post-commit delivery was lost."""
    count = outbox_dispatcher.relay()
    logger.info("task.relay_outbox_events", relayed=count)
    return {"relayed": count}
