"""HTTP API of the order engine."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from modules.cart.models import CartItem
from modules.orders.constants import OrderStatus

pytestmark = pytest.mark.integration

ORDERS_URL = "/api/v1/orders/"

CHECKOUT = {
    "contact_name": "Olena Petrenko",
    "contact_phone": "+380501234567",
    "contact_email": "olena@example.com",
    "delivery_method": "nova_poshta",
    "delivery_city": "Kyiv",
    "delivery_warehouse_ref": "WH-12",
    "payment_method": "cod",
}


def detail_url(order_id, suffix=""):
    return f"{ORDERS_URL}{order_id}/{suffix}"


def _codes(response):
    return [error["code"] for error in response.json()["errors"]]


@pytest.fixture()
def product(make_product):
    return make_product(price="100.00", stock=10)


@pytest.fixture()
def order(place_order, client_user, product):
    return place_order(client_user, (product, 2))


class TestCheckout:
    def test_guest_checkout(self, api_client, product):
        payload = {**CHECKOUT, "items": [{"product_id": str(product.id), "quantity": 3}]}

        response = api_client.post(ORDERS_URL, payload, format="json")

        assert response.status_code == 201
        data = response.json()
        assert data["user_id"] is None
        assert data["status"] == OrderStatus.NEW_ORDER
        assert Decimal(data["total_amount"]) == Decimal("300.00")
        assert data["items"][0]["product_code"] == product.code
        assert data["status_history"][0]["new_status"] == OrderStatus.NEW_ORDER

    def test_guest_needs_items(self, api_client):
        response = api_client.post(ORDERS_URL, CHECKOUT, format="json")

        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "items"

    def test_client_checks_out_cart(
        self, api_client, client_user, product, django_capture_on_commit_callbacks
    ):
        CartItem.objects.create(user=client_user, product=product, quantity=4)
        api_client.force_authenticate(user=client_user)

        with django_capture_on_commit_callbacks(execute=True):
            response = api_client.post(ORDERS_URL, CHECKOUT, format="json")

        assert response.status_code == 201
        assert response.json()["items_count"] == 4
        assert response.json()["user_id"] == client_user.pk
        assert not CartItem.objects.filter(user=client_user).exists()

    def test_empty_cart(self, api_client, client_user):
        api_client.force_authenticate(user=client_user)

        response = api_client.post(ORDERS_URL, CHECKOUT, format="json")

        assert response.status_code == 400
        assert _codes(response) == ["empty_cart"]

    def test_insufficient_stock_conflict(self, api_client, product):
        payload = {**CHECKOUT, "items": [{"product_id": str(product.id), "quantity": 15}]}

        response = api_client.post(ORDERS_URL, payload, format="json")

        assert response.status_code == 409
        assert _codes(response) == ["insufficient_stock"]
        product.refresh_from_db()
        assert product.stock_quantity == 10

    def test_unknown_product(self, api_client):
        payload = {**CHECKOUT, "items": [{"product_id": str(uuid4()), "quantity": 1}]}

        response = api_client.post(ORDERS_URL, payload, format="json")

        assert response.status_code == 404
        assert _codes(response) == ["product_not_found"]

    def test_invalid_payload(self, api_client, product):
        payload = {**CHECKOUT, "payment_method": "barter", "items": []}

        response = api_client.post(ORDERS_URL, payload, format="json")

        assert response.status_code == 400
        assert response.json()["type"] == "validation_error"


class TestReading:
    def test_requires_authentication(self, api_client):
        assert api_client.get(ORDERS_URL).status_code == 401

    def test_clients_see_own_orders(
        self, api_client, place_order, client_user, other_user, product, order
    ):
        place_order(other_user, (product, 1))
        api_client.force_authenticate(user=client_user)

        response = api_client.get(ORDERS_URL)

        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert response.json()["results"][0]["id"] == str(order.id)

    def test_managers_see_all_and_filter(
        self, api_client, place_order, advance, manager_user, other_user, product, order
    ):
        advance(place_order(other_user, (product, 1)), OrderStatus.PROCESSING)
        api_client.force_authenticate(user=manager_user)

        assert api_client.get(ORDERS_URL).json()["count"] == 2
        filtered = api_client.get(ORDERS_URL, {"status": "processing"}).json()
        assert filtered["count"] == 1
        assert api_client.get(ORDERS_URL, {"min_total": "150"}).json()["count"] == 1

    def test_foreign_order_is_not_found(self, api_client, other_user, order):
        api_client.force_authenticate(user=other_user)

        response = api_client.get(detail_url(order.id))

        assert response.status_code == 404
        assert _codes(response) == ["order_not_found"]

    def test_retrieve_own_order(self, api_client, client_user, order):
        api_client.force_authenticate(user=client_user)

        response = api_client.get(detail_url(order.id))

        assert response.status_code == 200
        assert response.json()["order_number"] == order.order_number


class TestStatusChanges:
    def test_manager_moves_order(self, api_client, manager_user, order):
        api_client.force_authenticate(user=manager_user)

        response = api_client.patch(
            detail_url(order.id), {"status": "processing", "comment": "Picking"}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["status"] == "processing"
        assert response.json()["status_history"][-1]["comment"] == "Picking"

    def test_client_cannot_patch(self, api_client, client_user, order):
        api_client.force_authenticate(user=client_user)

        response = api_client.patch(detail_url(order.id), {"status": "processing"}, format="json")

        assert response.status_code == 403

    def test_invalid_transition(self, api_client, manager_user, order):
        api_client.force_authenticate(user=manager_user)

        response = api_client.patch(detail_url(order.id), {"status": "shipped"}, format="json")

        assert response.status_code == 400
        assert _codes(response) == ["invalid_order_status"]

    def test_client_cancels(self, api_client, client_user, order, product):
        api_client.force_authenticate(user=client_user)

        response = api_client.post(
            detail_url(order.id, "cancel/"), {"reason": "Found cheaper"}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["cancelled_reason"] == "Found cheaper"
        product.refresh_from_db()
        assert product.stock_quantity == 10

    def test_cannot_cancel_foreign_order(self, api_client, other_user, order):
        api_client.force_authenticate(user=other_user)

        response = api_client.post(detail_url(order.id, "cancel/"), {}, format="json")

        assert response.status_code == 403
        assert _codes(response) == ["transition_forbidden"]

    def test_payment_confirmation(self, api_client, advance, manager_user, order):
        advance(order, OrderStatus.PROCESSING, OrderStatus.CONFIRMED)
        api_client.force_authenticate(user=manager_user)

        response = api_client.post(detail_url(order.id, "payment/"))

        assert response.status_code == 200
        assert response.json()["status"] == "paid"
        assert response.json()["payment_status"] == "paid"


class TestFulfilment:
    def test_edit_items(self, api_client, manager_user, order, make_product):
        extra = make_product(price="25.00", stock=5)
        item = order.items.get()
        api_client.force_authenticate(user=manager_user)

        response = api_client.put(
            detail_url(order.id, "items/"),
            {
                "changes": [
                    {"action": "update", "item_id": str(item.id), "quantity": 1},
                    {"action": "add", "product_id": str(extra.id), "quantity": 2},
                ]
            },
            format="json",
        )

        assert response.status_code == 200
        assert Decimal(response.json()["total_amount"]) == Decimal("150.00")
        assert response.json()["items_count"] == 3

    def test_edit_without_required_fields(self, api_client, manager_user, order):
        api_client.force_authenticate(user=manager_user)

        response = api_client.put(
            detail_url(order.id, "items/"), {"changes": [{"action": "remove"}]}, format="json"
        )

        assert response.status_code == 400

    def test_tracking_number_set_once(self, api_client, manager_user, order):
        api_client.force_authenticate(user=manager_user)
        url = detail_url(order.id, "tracking/")

        first = api_client.post(url, {"tracking_number": "20450000000001"}, format="json")
        second = api_client.post(url, {"tracking_number": "20450000000002"}, format="json")

        assert first.status_code == 200
        assert first.json()["tracking_number"] == "20450000000001"
        assert second.status_code == 400
        assert _codes(second) == ["tracking_number_already_set"]
