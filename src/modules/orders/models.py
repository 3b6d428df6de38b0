"""Order, OrderItem and OrderStatusHistory models.

Business rules implemented:
- ``order_number`` is a human-readable unique identifier
  (``ORD-YYYYMMDD-XXXXXX``); collisions are retried by the repository.
- Status changes follow ``VALID_TRANSITIONS`` (enforced by the state
  machine, which locks the row first).
- Every transition and every item edit writes exactly one history record.
- OrderItem snapshots product code, name and unit price at order time;
  ``subtotal`` is always ``price_at_order * quantity``.
- ``items_count`` / ``total_amount`` are recomputed from the items after
  creation and after every edit.
- Orders are never deleted.
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any

import structlog
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.core.money import line_total, money_sum
from modules.customers.models import ClientType
from modules.orders.constants import (
    EDITABLE_STATES,
    ORDER_SOURCE_WEB,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    ChangeSource,
    DeliveryMethod,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)


class Order(DomainEventMixin, BaseModel):
    """Order aggregate root.

    ``user`` is nullable: guest checkouts carry only contact data.
    """

    order_number = models.CharField(max_length=20, unique=True, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.NEW_ORDER,
    )
    client_type = models.CharField(
        max_length=16,
        choices=ClientType.choices,
        default=ClientType.RETAIL,
    )
    total_amount = models.DecimalField(
        max_digits=14, decimal_places=2, default=Decimal("0.00")
    )
    items_count = models.PositiveIntegerField(default=0)
    discount_amount = models.DecimalField(
        max_digits=14, decimal_places=2, default=Decimal("0.00")
    )
    delivery_cost = models.DecimalField(
        max_digits=14, decimal_places=2, default=Decimal("0.00")
    )

    # Checkout
    contact_name = models.CharField(max_length=255)
    contact_phone = models.CharField(max_length=20)
    contact_email = models.EmailField(blank=True, default="")
    delivery_method = models.CharField(max_length=20, choices=DeliveryMethod.choices)
    delivery_city = models.CharField(max_length=255, blank=True, default="")
    delivery_warehouse_ref = models.CharField(max_length=100, blank=True, default="")
    delivery_address = models.CharField(max_length=500, blank=True, default="")
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    comment = models.TextField(blank=True, default="")
    source = models.CharField(max_length=20, default=ORDER_SOURCE_WEB)

    # Fulfilment / cancellation
    tracking_number = models.CharField(max_length=64, blank=True, default="")
    cancelled_reason = models.TextField(blank=True, default="")
    cancelled_by = models.CharField(
        max_length=20, choices=ChangeSource.choices, blank=True, default=""
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
            models.Index(fields=["user", "-created_at"], name="orders_user_created_idx"),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_STATES

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def recalculate_totals(self) -> None:
        """Recompute ``items_count`` and ``total_amount`` from stored items."""
        items = list(self.items.all())
        self.items_count = sum(item.quantity for item in items)
        self.total_amount = money_sum(item.subtotal for item in items)

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``ORD-YYYYMMDD-XXXXXX``."""
        now = timezone.localtime()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderItem(BaseModel):
    """Line item with an immutable snapshot of the product at order time.

    ``product`` is a weak reference: the snapshot fields keep the line
    readable after the product row disappears.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product = models.ForeignKey(
        "products.Product",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="order_items",
    )
    product_code = models.CharField(max_length=64)
    product_name = models.CharField(max_length=255)
    price_at_order = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, editable=False)
    is_promo = models.BooleanField(default=False)

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.subtotal = line_total(self.price_at_order, self.quantity)
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "subtotal" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["subtotal"]
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product_code} x{self.quantity} ({self.subtotal})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status changes.

    ``old_status`` is null only for the creation record.  Item edits are
    recorded with ``old_status == new_status``.  ``changed_by`` is null for
    guest, system and scheduled changes.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status = models.CharField(max_length=20, choices=OrderStatus.choices)
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    change_source = models.CharField(max_length=20, choices=ChangeSource.choices)
    comment = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["order", "created_at"], name="osh_order_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.order_id}: {self.old_status} -> {self.new_status}"
