"""Order domain exceptions.

Raised by the service layer when business rules are violated.  The API
layer catches them by category and translates them into HTTP responses:

- ``OrderValidationError`` subclasses -> 400
- ``OrderLookupError`` subclasses and ``ProductNotFound`` -> 404
- ``TransitionForbidden`` -> 403
- ``InsufficientStock`` -> 409
"""

from __future__ import annotations

from typing import Any, Optional

from modules.products.exceptions import InsufficientStock, ProductNotFound

__all__ = [
    "EmptyCart",
    "InsufficientStock",
    "InvalidOrderStatus",
    "OrderItemNotFound",
    "OrderLookupError",
    "OrderNotEditable",
    "OrderNotFound",
    "OrderValidationError",
    "ProductNotFound",
    "TrackingNumberAlreadySet",
    "TransitionForbidden",
    "WholesaleRuleViolation",
]


class OrderValidationError(Exception):
    """The request is well-formed but breaks an order business rule."""


class OrderLookupError(Exception):
    """A referenced order or order item does not exist."""


class OrderNotFound(OrderLookupError):
    """The requested order does not exist."""


class OrderItemNotFound(OrderLookupError):
    """The item does not exist or belongs to another order."""


class InvalidOrderStatus(OrderValidationError):
    """Unknown status or a transition outside the allowed table."""


class EmptyCart(OrderValidationError):
    """Checkout (or an item edit) would produce an order without lines."""


class OrderNotEditable(OrderValidationError):
    """Line items can only change while the order is not yet paid."""


class WholesaleRuleViolation(OrderValidationError):
    """A wholesale rule rejected the proposed lines.

    ``offending`` is the value that failed the check (order amount or line
    quantity); ``product_id`` is set for product-scoped rules.
    """

    def __init__(
        self,
        message: str,
        rule_type: str,
        value: Any,
        offending: Any,
        product_id: Optional[Any] = None,
    ) -> None:
        self.rule_type = rule_type
        self.value = value
        self.offending = offending
        self.product_id = product_id
        super().__init__(message)


class TransitionForbidden(Exception):
    """The actor is not allowed to perform this transition."""


class TrackingNumberAlreadySet(OrderValidationError):
    """A tracking number can be assigned to an order only once."""
