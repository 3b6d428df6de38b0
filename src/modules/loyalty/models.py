"""Loyalty program: levels, per-user accounts and the points ledger.

Every balance change is a ``LoyaltyTransaction`` row with signed points.
A given order can be credited (``earn``) at most once and reversed at most
once; both are enforced by partial unique constraints so duplicate
deliveries of the same side effect cannot double-count.
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models

from modules.core.models import BaseModel


class LoyaltyLevel(BaseModel):
    name = models.CharField(max_length=50, unique=True)
    min_spent = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    points_multiplier = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal("1.00")
    )
    discount_percent = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal("0.00")
    )
    sort_order = models.PositiveSmallIntegerField(default=0)

    class Meta:
        db_table = "loyalty_levels"
        ordering = ["sort_order"]

    def __str__(self) -> str:
        return self.name


class LoyaltyAccount(BaseModel):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="loyalty_account",
    )
    points = models.IntegerField(default=0)
    total_spent = models.DecimalField(
        max_digits=14, decimal_places=2, default=Decimal("0.00")
    )
    level = models.ForeignKey(
        LoyaltyLevel,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="accounts",
    )

    class Meta:
        db_table = "loyalty_accounts"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(points__gte=0),
                name="loyalty_accounts_points_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user_id}: {self.points} pts"


class TransactionKind(models.TextChoices):
    EARN = "earn", "Earned"
    SPEND = "spend", "Spent"
    MANUAL_ADD = "manual_add", "Manual credit"
    MANUAL_DEDUCT = "manual_deduct", "Manual deduction"
    REVERSAL = "reversal", "Reversal"


class LoyaltyTransaction(BaseModel):
    account = models.ForeignKey(
        LoyaltyAccount,
        on_delete=models.CASCADE,
        related_name="transactions",
    )
    kind = models.CharField(max_length=20, choices=TransactionKind.choices)
    points = models.IntegerField()
    # Order spend counted toward the level; set on earn and reversal rows.
    amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="loyalty_transactions",
    )
    description = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        db_table = "loyalty_transactions"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(kind="earn"),
                name="loyalty_tx_one_earn_per_order",
            ),
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(kind="reversal"),
                name="loyalty_tx_one_reversal_per_order",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.kind} {self.points:+d} ({self.account_id})"
