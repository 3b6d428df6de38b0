"""Concurrent checkouts against the same scarce stock."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest
from django.contrib.auth import get_user_model
from django.db import connections

from modules.orders.exceptions import InsufficientStock
from modules.orders.models import Order
from modules.products.models import Product

pytestmark = [pytest.mark.integration, pytest.mark.django_db(transaction=True)]

WORKERS = 10
STOCK = 5


def test_never_oversells(order_service, checkout, make_line):
    product = Product.objects.create(
        code="SCARCE-1", name="Scarce", price_retail=Decimal("10.00"), stock_quantity=STOCK
    )
    users = [
        get_user_model().objects.create_user(username=f"buyer{n}", password="x")
        for n in range(WORKERS)
    ]
    barrier = Barrier(WORKERS)

    def checkout_one(user):
        from modules.orders.dtos import CreateOrderDTO

        dto = CreateOrderDTO(
            actor_id=user.pk, checkout=checkout, lines=[make_line(product, 1)]
        )
        try:
            barrier.wait(timeout=10)
            order_service.create_order(dto)
            return "ok"
        except InsufficientStock:
            return "out_of_stock"
        finally:
            connections.close_all()

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        results = list(pool.map(checkout_one, users))

    product.refresh_from_db()
    assert results.count("ok") == STOCK
    assert results.count("out_of_stock") == WORKERS - STOCK
    assert product.stock_quantity == 0
    assert Order.objects.count() == STOCK
