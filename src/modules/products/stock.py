"""Stock ledger: atomic conditional adjustment of available quantity.

``reserve`` is a single ``UPDATE products SET stock_quantity =
stock_quantity - n WHERE id = ? AND stock_quantity >= n``.  The database
evaluates the condition and the write together, so two concurrent
reservations can never both succeed against stock that only covers one.
There is no read-then-write in Python.

Both operations only make sense inside the caller's unit of work and
refuse to run outside ``transaction.atomic``: a failed reservation later
in the same batch must be able to roll back earlier ones.
"""

from __future__ import annotations

from typing import Any, Iterable, Tuple

import structlog
from django.db import transaction
from django.db.models import F

from modules.products.exceptions import InsufficientStock
from modules.products.models import Product

logger = structlog.get_logger(__name__)


class StockLedger:
    def reserve(self, product_id: Any, quantity: int) -> bool:
        """Decrement stock by *quantity* only if enough is available."""
        self._require_atomic()
        if quantity <= 0:
            raise ValueError("Reserved quantity must be positive.")
        updated = Product.objects.filter(
            id=product_id, stock_quantity__gte=quantity
        ).update(stock_quantity=F("stock_quantity") - quantity)
        if updated:
            logger.info("stock.reserved", product_id=str(product_id), quantity=quantity)
        else:
            logger.info(
                "stock.reservation_rejected",
                product_id=str(product_id),
                quantity=quantity,
            )
        return bool(updated)

    def release(self, product_id: Any, quantity: int) -> bool:
        """Add *quantity* back.  ``False`` only if the product row is gone."""
        self._require_atomic()
        if quantity <= 0:
            raise ValueError("Released quantity must be positive.")
        updated = Product.objects.filter(id=product_id).update(
            stock_quantity=F("stock_quantity") + quantity
        )
        if updated:
            logger.info("stock.released", product_id=str(product_id), quantity=quantity)
        else:
            logger.warning(
                "stock.release_skipped_missing_product",
                product_id=str(product_id),
                quantity=quantity,
            )
        return bool(updated)

    def available(self, product_id: Any) -> int:
        value = (
            Product.objects.filter(id=product_id)
            .values_list("stock_quantity", flat=True)
            .first()
        )
        return value or 0

    def reserve_or_raise(
        self, product_id: Any, quantity: int, product_name: str | None = None
    ) -> None:
        """``reserve`` that raises ``InsufficientStock`` on failure.

        Raising aborts the enclosing atomic block, discarding every earlier
        reservation of the same batch.
        """
        if not self.reserve(product_id, quantity):
            raise InsufficientStock(
                product_id=product_id,
                available=self.available(product_id),
                requested=quantity,
                product_name=product_name,
            )

    def reserve_many(self, lines: Iterable[Tuple[Any, int, str | None]]) -> None:
        """Reserve ``(product_id, quantity, name)`` lines all-or-nothing.

        Lines are applied in product-id order so concurrent batches touching
        the same products lock rows in the same sequence.
        """
        for product_id, quantity, name in sorted(lines, key=lambda line: str(line[0])):
            self.reserve_or_raise(product_id, quantity, name)

    def release_many(self, lines: Iterable[Tuple[Any, int]]) -> None:
        for product_id, quantity in sorted(lines, key=lambda line: str(line[0])):
            self.release(product_id, quantity)

    @staticmethod
    def _require_atomic() -> None:
        if not transaction.get_connection().in_atomic_block:
            raise RuntimeError("Stock must be adjusted inside transaction.atomic().")

