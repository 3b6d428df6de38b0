"""Scheduled cancellation of orders nobody picked up."""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from modules.orders.constants import ChangeSource, OrderStatus
from modules.orders.services import AUTO_CANCEL_COMMENT
from modules.orders.tasks import auto_cancel_stale_orders

pytestmark = pytest.mark.integration


@pytest.fixture()
def product(make_product):
    return make_product(stock=10)


def _place_at(place_order, user, product, when):
    with freeze_time(when):
        return place_order(user, (product, 2))


def test_cancels_only_stale_new_orders(order_service, place_order, advance, client_user, product):
    now = timezone.now()
    stale = _place_at(place_order, client_user, product, now - timedelta(hours=73))
    fresh = _place_at(place_order, client_user, product, now - timedelta(hours=71))
    stale_processing = _place_at(place_order, client_user, product, now - timedelta(hours=80))
    advance(stale_processing, OrderStatus.PROCESSING)

    cancelled = order_service.auto_cancel_stale_orders(now=now)

    assert cancelled == 1
    stale.refresh_from_db()
    fresh.refresh_from_db()
    stale_processing.refresh_from_db()
    assert stale.status == OrderStatus.CANCELLED
    assert stale.cancelled_by == ChangeSource.CRON
    assert stale.cancelled_reason == AUTO_CANCEL_COMMENT.format(hours=72)
    assert fresh.status == OrderStatus.NEW_ORDER
    assert stale_processing.status == OrderStatus.PROCESSING

    history = stale.status_history.last()
    assert history.change_source == ChangeSource.CRON
    assert history.changed_by_id is None

    product.refresh_from_db()
    assert product.stock_quantity == 6


def test_second_run_is_a_no_op(order_service, place_order, client_user, product):
    now = timezone.now()
    _place_at(place_order, client_user, product, now - timedelta(hours=100))

    assert order_service.auto_cancel_stale_orders(now=now) == 1
    assert order_service.auto_cancel_stale_orders(now=now) == 0

    product.refresh_from_db()
    assert product.stock_quantity == 10


def test_celery_task(place_order, client_user, product, settings):
    settings.ORDER_AUTO_CANCEL_HOURS = 1
    order = _place_at(place_order, client_user, product, timezone.now() - timedelta(hours=2))

    auto_cancel_stale_orders.delay()

    order.refresh_from_db()
    assert order.status == OrderStatus.CANCELLED
