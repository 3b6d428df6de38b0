"""Referral links between a referrer and the user they brought in."""

from __future__ import annotations

import secrets

from django.conf import settings
from django.db import models

from modules.core.models import BaseModel


class ReferralStatus(models.TextChoices):
    REGISTERED = "registered", "Registered"
    FIRST_ORDER = "first_order", "First order completed"
    BONUS_GRANTED = "bonus_granted", "Bonus granted"


class BonusType(models.TextChoices):
    POINTS = "points", "Loyalty points"


def generate_referral_code() -> str:
    return secrets.token_hex(4).upper()


class Referral(BaseModel):
    referrer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="referrals_made",
    )
    referred = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="referral",
    )
    referral_code = models.CharField(max_length=16, default=generate_referral_code)
    status = models.CharField(
        max_length=20,
        choices=ReferralStatus.choices,
        default=ReferralStatus.REGISTERED,
    )
    bonus_type = models.CharField(
        max_length=20, choices=BonusType.choices, blank=True, default=""
    )
    bonus_value = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True
    )
    converted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "referrals"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="referrals_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.referrer_id} -> {self.referred_id} [{self.status}]"
