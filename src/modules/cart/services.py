"""Cart service: builds checkout lines and clears carts after checkout."""

from __future__ import annotations

from typing import Any, Iterable, List, Optional, Tuple

import structlog

from modules.cart.dtos import CartLineDTO
from modules.cart.models import CartItem
from modules.products.exceptions import ProductNotFound
from modules.products.models import Product
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class CartService:
    def __init__(self, product_repository: Optional[IProductRepository] = None) -> None:
        self._product_repo = product_repository or ProductDjangoRepository()

    def lines_for_user(self, user_id: Any, client_type: str) -> List[CartLineDTO]:
        """Lines from the user's server-side cart, priced for *client_type*."""
        items = (
            CartItem.objects.filter(user_id=user_id)
            .select_related("product")
            .order_by("created_at")
        )
        lines = []
        for item in items:
            self._ensure_sellable(item.product, item.product_id)
            lines.append(self._to_line(item.product, item.quantity, client_type))
        return lines

    def lines_for_items(
        self, items: Iterable[Tuple[Any, int]], client_type: str
    ) -> List[CartLineDTO]:
        """Lines from explicit ``(product_id, quantity)`` pairs (guest checkout)."""
        items = list(items)
        products = self._product_repo.get_many(product_id for product_id, _ in items)
        lines = []
        for product_id, quantity in items:
            product = products.get(str(product_id))
            self._ensure_sellable(product, product_id)
            lines.append(self._to_line(product, quantity, client_type))
        return lines

    def clear(self, user_id: Any) -> int:
        deleted, _ = CartItem.objects.filter(user_id=user_id).delete()
        logger.info("cart.cleared", user_id=user_id, removed=deleted)
        return deleted

    @staticmethod
    def _ensure_sellable(product: Product | None, product_id: Any) -> None:
        if product is None or not product.is_active:
            raise ProductNotFound(f"Product {product_id} not found.")

    @staticmethod
    def _to_line(product: Product, quantity: int, client_type: str) -> CartLineDTO:
        return CartLineDTO(
            product_id=product.id,
            code=product.code,
            name=product.name,
            unit_price=product.price_for(client_type),
            quantity=quantity,
            is_promo=product.is_promo,
        )
