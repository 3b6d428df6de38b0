"""Unit tests for order creation with atomic stock reservation."""

from __future__ import annotations

import re
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.test import override_settings

from modules.customers.models import ClientType
from modules.orders.constants import ChangeSource, OrderStatus, PaymentStatus
from modules.orders.dtos import CreateOrderDTO
from modules.orders.exceptions import EmptyCart, InsufficientStock, WholesaleRuleViolation
from modules.orders.models import Order, OrderItem
from modules.products.models import Product
from modules.wholesale.models import RuleType, WholesaleRule

pytestmark = pytest.mark.unit

ORDER_NUMBER_RE = re.compile(r"^ORD-\d{8}-[0-9A-F]{6}$")


def _stock(product: Product) -> int:
    product.refresh_from_db()
    return product.stock_quantity


class TestCreateOrder:
    def test_totals_stock_and_snapshot(self, place_order, client_user, make_product):
        first = make_product(price="100.00", stock=10)
        second = make_product(price="50.00", stock=10)

        order = place_order(client_user, (first, 3), (second, 2))

        assert order.status == OrderStatus.NEW_ORDER
        assert order.total_amount == Decimal("400.00")
        assert order.items_count == 5
        assert order.payment_status == PaymentStatus.PENDING
        assert order.user_id == client_user.pk
        assert _stock(first) == 7
        assert _stock(second) == 8

        items = {item.product_id: item for item in order.items.all()}
        assert items[first.id].price_at_order == Decimal("100.00")
        assert items[first.id].subtotal == Decimal("300.00")
        assert items[second.id].product_code == second.code
        assert items[second.id].product_name == second.name

    def test_order_number_format(self, place_order, client_user, make_product):
        order = place_order(client_user, (make_product(), 1))

        assert ORDER_NUMBER_RE.match(order.order_number)

    def test_creation_history_record(self, place_order, client_user, make_product):
        order = place_order(client_user, (make_product(), 1))

        (history,) = order.status_history.all()
        assert history.old_status is None
        assert history.new_status == OrderStatus.NEW_ORDER
        assert history.change_source == ChangeSource.SYSTEM
        assert history.changed_by_id == client_user.pk

    def test_checkout_fields_stored(self, place_order, client_user, make_product):
        order = place_order(client_user, (make_product(), 1))

        assert order.contact_name == "Olena Petrenko"
        assert order.delivery_method == "nova_poshta"
        assert order.delivery_warehouse_ref == "WH-12"
        assert order.payment_method == "cod"

    def test_guest_order(self, place_order, make_product):
        order = place_order(None, (make_product(), 2))

        assert order.user_id is None
        assert order.items_count == 2

    def test_snapshot_survives_price_change(self, place_order, client_user, make_product):
        product = make_product(price="100.00")
        order = place_order(client_user, (product, 1))

        Product.objects.filter(pk=product.pk).update(price_retail=Decimal("999.00"))

        order.refresh_from_db()
        assert order.items.get().price_at_order == Decimal("100.00")
        assert order.total_amount == Decimal("100.00")


class TestCreateOrderFailures:
    def test_insufficient_stock_leaves_nothing_behind(
        self, place_order, client_user, make_product
    ):
        product = make_product(stock=10)

        with pytest.raises(InsufficientStock) as exc_info:
            place_order(client_user, (product, 15))

        assert exc_info.value.available == 10
        assert exc_info.value.requested == 15
        assert _stock(product) == 10
        assert not Order.objects.exists()

    def test_failure_on_later_line_rolls_back_earlier_reservations(
        self, place_order, client_user, make_product
    ):
        plenty = make_product(stock=100)
        scarce = make_product(stock=1)

        with pytest.raises(InsufficientStock):
            place_order(client_user, (plenty, 5), (scarce, 2))

        assert _stock(plenty) == 100
        assert _stock(scarce) == 1
        assert not OrderItem.objects.exists()

    def test_empty_cart(self, order_service, client_user, checkout):
        dto = CreateOrderDTO(actor_id=client_user.pk, checkout=checkout, lines=[])

        with pytest.raises(EmptyCart):
            order_service.create_order(dto)

    def test_wholesale_violation_reserves_nothing(
        self, place_order, wholesale_user, make_product
    ):
        product = make_product(price="10.00", stock=50)
        WholesaleRule.objects.create(rule_type=RuleType.MIN_ORDER_AMOUNT, value=Decimal("1000"))

        with pytest.raises(WholesaleRuleViolation):
            place_order(wholesale_user, (product, 5), client_type=ClientType.WHOLESALE)

        assert _stock(product) == 50
        assert not Order.objects.exists()


class TestOrderNumberCollisions:
    def test_collision_is_retried(self, place_order, client_user, make_product):
        product = make_product(stock=10)
        numbers = ["ORD-20260101-AAAAAA", "ORD-20260101-AAAAAA", "ORD-20260101-BBBBBB"]

        with patch.object(Order, "generate_order_number", side_effect=numbers):
            first = place_order(client_user, (product, 1))
            second = place_order(client_user, (product, 1))

        assert first.order_number == "ORD-20260101-AAAAAA"
        assert second.order_number == "ORD-20260101-BBBBBB"
        assert _stock(product) == 8

    @override_settings(ORDER_NUMBER_MAX_RETRIES=2)
    def test_exhausted_retries(self, place_order, client_user, make_product):
        product = make_product(stock=10)
        place_order(client_user, (product, 1))
        taken = Order.objects.get().order_number

        with patch.object(Order, "generate_order_number", return_value=taken):
            with pytest.raises(RuntimeError):
                place_order(client_user, (product, 1))

        assert Order.objects.count() == 1
        assert _stock(product) == 9


class TestBuildOrderRequest:
    def test_explicit_items_use_wholesale_price(
        self, order_service, wholesale_user, make_product, checkout
    ):
        product = make_product(price="100.00", price_wholesale=Decimal("70.00"))

        dto = order_service.build_order_request(
            wholesale_user.pk, checkout, items=[(product.id, 2)]
        )

        assert dto.client_type == ClientType.WHOLESALE
        assert dto.lines[0].unit_price == Decimal("70.00")

    def test_guest_without_items_has_no_lines(self, order_service, checkout):
        dto = order_service.build_order_request(None, checkout)

        assert dto.client_type == ClientType.RETAIL
        assert dto.lines == []
