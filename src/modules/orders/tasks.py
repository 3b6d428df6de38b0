"""Celery tasks of the Orders module."""

from __future__ import annotations

import structlog
from celery import shared_task

from modules.orders.services import OrderService

logger = structlog.get_logger(__name__)


@shared_task(name="orders.auto_cancel_stale_orders", ignore_result=True)
def auto_cancel_stale_orders() -> int:
    cancelled = OrderService().auto_cancel_stale_orders()
    logger.info("task.auto_cancel_stale_orders", cancelled=cancelled)
    return cancelled
