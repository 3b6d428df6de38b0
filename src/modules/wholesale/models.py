"""Wholesale rules: constraints wholesale orders must satisfy.

A rule without a product applies to the whole order (only
``min_order_amount`` is meaningful there); a rule with a product applies
to that product's line (``min_quantity`` and ``multiplicity``).
"""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel


class RuleType(models.TextChoices):
    MIN_ORDER_AMOUNT = "min_order_amount", "Minimum order amount"
    MIN_QUANTITY = "min_quantity", "Minimum quantity"
    MULTIPLICITY = "multiplicity", "Quantity multiplicity"


class WholesaleRuleQuerySet(models.QuerySet):
    def active(self) -> WholesaleRuleQuerySet:
        return self.filter(is_active=True)


class WholesaleRule(BaseModel):
    rule_type = models.CharField(max_length=32, choices=RuleType.choices)
    product = models.ForeignKey(
        "products.Product",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="wholesale_rules",
    )
    value = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    is_active = models.BooleanField(default=True)

    objects = WholesaleRuleQuerySet.as_manager()

    class Meta:
        db_table = "wholesale_rules"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["rule_type", "is_active"], name="wholesale_type_active_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(value__gt=0),
                name="wholesale_rules_value_positive",
            ),
        ]

    @property
    def is_order_level(self) -> bool:
        return self.product_id is None

    def __str__(self) -> str:
        scope = self.product_id or "order"
        return f"{self.rule_type}={self.value} ({scope})"
