"""Product catalog model with stock control.

Business rules implemented:
- Product ``code`` is unique in the system (normalised to uppercase).
- Retail price must be greater than zero; wholesale price is optional.
- Stock quantity can never be negative (DB check constraint, and every
  decrement goes through ``StockLedger.reserve``).
- Soft delete via ``deleted_at`` (inherited from SoftDeleteModel).
"""

from __future__ import annotations

from decimal import Decimal

import structlog

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import SoftDeleteModel

logger = structlog.get_logger(__name__)


class ProductStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"


class Product(SoftDeleteModel):
    """Product aggregate root.

    ``stock_quantity`` is the *available* quantity: reserving stock for an
    order decrements it, cancelling or returning the order adds it back.
    """

    code = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    price_retail = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    price_wholesale = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    stock_quantity = models.PositiveIntegerField(default=0)
    is_promo = models.BooleanField(default=False)
    status = models.CharField(
        max_length=20,
        choices=ProductStatus.choices,
        default=ProductStatus.ACTIVE,
    )

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["status"], name="products_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price_retail__gt=0),
                name="products_price_retail_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(stock_quantity__gte=0),
                name="products_stock_non_negative",
            ),
        ]

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def price_for(self, client_type: str) -> Decimal:
        """Unit price for a client type, falling back to the retail price."""
        if client_type == "wholesale" and self.price_wholesale:
            return self.price_wholesale
        return self.price_retail

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE and not self.is_deleted

    # ------------------------------------------------------------------
    # Validation / Persistence
    # ------------------------------------------------------------------

    def clean(self) -> None:
        super().clean()
        if self.code:
            self.code = self.code.strip().upper()
        if self.price_retail is not None and self.price_retail <= 0:
            raise ValidationError({"price_retail": "Price must be greater than zero."})

    def save(self, *args, **kwargs) -> None:
        is_new = self._state.adding
        if self.code:
            self.code = self.code.strip().upper()
        super().save(*args, **kwargs)
        if is_new:
            logger.info(
                "product_created",
                product_id=str(self.id),
                code=self.code,
            )

    def __str__(self) -> str:
        return f"{self.code} - {self.name}"
