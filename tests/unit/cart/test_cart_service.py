from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from modules.cart.models import CartItem
from modules.cart.services import CartService
from modules.customers.models import ClientType
from modules.products.exceptions import ProductNotFound
from modules.products.models import ProductStatus

pytestmark = pytest.mark.unit


@pytest.fixture()
def cart():
    return CartService()


class TestCartLines:
    def test_lines_priced_for_client_type(self, cart, client_user, make_product):
        product = make_product(price="100.00", price_wholesale=Decimal("75.00"), is_promo=True)
        CartItem.objects.create(user=client_user, product=product, quantity=3)

        retail = cart.lines_for_user(client_user.pk, ClientType.RETAIL)
        wholesale = cart.lines_for_user(client_user.pk, ClientType.WHOLESALE)

        assert retail[0].unit_price == Decimal("100.00")
        assert retail[0].subtotal == Decimal("300.00")
        assert retail[0].is_promo is True
        assert wholesale[0].unit_price == Decimal("75.00")

    def test_wholesale_falls_back_to_retail_price(self, cart, make_product):
        product = make_product(price="40.00")

        (line,) = cart.lines_for_items([(product.id, 2)], ClientType.WHOLESALE)

        assert line.unit_price == Decimal("40.00")
        assert line.code == product.code

    def test_unknown_or_inactive_product(self, cart, make_product):
        inactive = make_product(status=ProductStatus.INACTIVE)

        with pytest.raises(ProductNotFound):
            cart.lines_for_items([(uuid4(), 1)], ClientType.RETAIL)
        with pytest.raises(ProductNotFound):
            cart.lines_for_items([(inactive.id, 1)], ClientType.RETAIL)

    def test_clear(self, cart, client_user, make_product):
        CartItem.objects.create(user=client_user, product=make_product(), quantity=1)

        assert cart.clear(client_user.pk) == 1
        assert not CartItem.objects.filter(user=client_user).exists()
