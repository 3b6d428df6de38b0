"""Product and stock exceptions.

Raised by the stock ledger and repositories; the order views translate
them into HTTP responses.
"""

from __future__ import annotations

from typing import Any, Optional


class ProductNotFound(Exception):
    """The requested product does not exist or has been soft-deleted."""


class InsufficientStock(Exception):
    """Not enough available stock to reserve the requested quantity.

    Carries the product id and the quantity still available so callers can
    present an actionable message.
    """

    def __init__(
        self,
        product_id: Any,
        available: int,
        requested: int,
        product_name: Optional[str] = None,
    ) -> None:
        self.product_id = product_id
        self.available = available
        self.requested = requested
        self.product_name = product_name
        label = product_name or str(product_id)
        super().__init__(
            f"Product {label}: requested {requested}, available {available}."
        )
