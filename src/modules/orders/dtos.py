"""Order DTOs for the service layer.

Framework-agnostic data transfer objects using Pydantic v2.  These are
the contracts between the API layer (DRF serializers) and the services.
DTOs are immutable (``frozen=True``).

- ``CheckoutDTO``: contact, delivery and payment data of a checkout.
- ``CreateOrderDTO``: actor, client type, checkout data and cart lines.
- ``OrderItemChangeDTO``: one ``update`` / ``remove`` / ``add`` edit.
- ``EditOrderItemsDTO``: a batch of item edits applied atomically.
"""

from __future__ import annotations

from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from modules.cart.dtos import CartLineDTO
from modules.customers.models import ClientType
from modules.orders.constants import DeliveryMethod, PaymentMethod

# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


class CheckoutDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    contact_name: str = Field(min_length=2, max_length=255)
    contact_phone: str = Field(min_length=10, max_length=20)
    contact_email: str = ""
    delivery_method: DeliveryMethod
    delivery_city: str = ""
    delivery_warehouse_ref: str = ""
    delivery_address: str = ""
    payment_method: PaymentMethod
    comment: str = Field(default="", max_length=500)


class CreateOrderDTO(BaseModel):
    """Immutable input of ``OrderService.create_order``.

    ``actor_id`` is ``None`` for guest checkouts.  ``lines`` may be empty
    here; the service reports that as ``EmptyCart``.
    """

    model_config = ConfigDict(frozen=True)

    actor_id: Optional[int] = None
    client_type: ClientType = ClientType.RETAIL
    checkout: CheckoutDTO
    lines: List[CartLineDTO]

    @model_validator(mode="after")
    def no_duplicate_products(self) -> CreateOrderDTO:
        """Prevent duplicate product IDs in the same order."""
        product_ids = [line.product_id for line in self.lines]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError("Duplicate product IDs are not allowed in the same order.")
        return self


# ---------------------------------------------------------------------------
# Item edits
# ---------------------------------------------------------------------------


class OrderItemChangeDTO(BaseModel):
    """One item edit.

    - ``update``: ``item_id`` + new ``quantity``
    - ``remove``: ``item_id``
    - ``add``: ``product_id`` + ``quantity``
    """

    model_config = ConfigDict(frozen=True)

    action: Literal["update", "remove", "add"]
    item_id: Optional[UUID] = None
    product_id: Optional[UUID] = None
    quantity: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def fields_match_action(self) -> OrderItemChangeDTO:
        if self.action in ("update", "remove") and self.item_id is None:
            raise ValueError(f"'{self.action}' requires item_id.")
        if self.action == "add" and self.product_id is None:
            raise ValueError("'add' requires product_id.")
        if self.action in ("update", "add") and self.quantity is None:
            raise ValueError(f"'{self.action}' requires quantity.")
        return self


class EditOrderItemsDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    changes: List[OrderItemChangeDTO] = Field(min_length=1)
    comment: str = ""
