import itertools
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from modules.cart.dtos import CartLineDTO
from modules.customers.models import ClientType, Customer
from modules.orders.constants import DeliveryMethod, PaymentMethod
from modules.orders.dtos import CheckoutDTO, CreateOrderDTO
from modules.orders.services import OrderService
from modules.products.models import Product

User = get_user_model()


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def client_user():
    return User.objects.create_user(
        username="client", password="testpass123", email="client@example.com"
    )


@pytest.fixture()
def other_user():
    return User.objects.create_user(username="other", password="testpass123")


@pytest.fixture()
def manager_user():
    return User.objects.create_user(
        username="manager", password="testpass123", is_staff=True
    )


@pytest.fixture()
def wholesale_user():
    user = User.objects.create_user(username="wholesaler", password="testpass123")
    Customer.objects.create(
        user=user,
        client_type=ClientType.WHOLESALE,
        company_name="Opt Trade LLC",
        phone="+380501112233",
    )
    return user


@pytest.fixture()
def make_product():
    """Factory for active products with unique codes."""
    counter = itertools.count(1)

    def _make(price="100.00", stock=10, **overrides) -> Product:
        number = next(counter)
        data = {
            "code": f"SKU-{number:03d}",
            "name": f"Product {number}",
            "price_retail": Decimal(price),
            "stock_quantity": stock,
        }
        data.update(overrides)
        return Product.objects.create(**data)

    return _make


@pytest.fixture()
def checkout():
    return CheckoutDTO(
        contact_name="Olena Petrenko",
        contact_phone="+380501234567",
        contact_email="olena@example.com",
        delivery_method=DeliveryMethod.NOVA_POSHTA,
        delivery_city="Kyiv",
        delivery_warehouse_ref="WH-12",
        payment_method=PaymentMethod.COD,
    )


@pytest.fixture()
def order_service():
    return OrderService()


def line_for(product: Product, quantity: int, client_type=ClientType.RETAIL) -> CartLineDTO:
    return CartLineDTO(
        product_id=product.id,
        code=product.code,
        name=product.name,
        unit_price=product.price_for(client_type),
        quantity=quantity,
        is_promo=product.is_promo,
    )


@pytest.fixture()
def place_order(order_service, checkout):
    """Create an order for ``user`` from ``(product, quantity)`` pairs."""

    def _place(user, *lines, client_type=ClientType.RETAIL):
        dto = CreateOrderDTO(
            actor_id=user.pk if user is not None else None,
            client_type=client_type,
            checkout=checkout,
            lines=[line_for(product, qty, client_type) for product, qty in lines],
        )
        return order_service.create_order(dto)

    return _place


@pytest.fixture()
def advance(order_service, manager_user):
    """Walk an order along allowed edges as a manager."""

    def _advance(order, *statuses):
        for new_status in statuses:
            order = order_service.transition(order.id, new_status, manager_user.pk, "manager")
        return order

    return _advance


@pytest.fixture()
def make_line():
    return line_for
