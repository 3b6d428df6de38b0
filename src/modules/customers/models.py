"""Customer profile attached to an authenticated user.

Holds the client type that selects pricing and wholesale rule checks.
A user without a profile is treated as a retail client.  Phone numbers
are masked in ``__str__`` and logs.
"""

from __future__ import annotations

import structlog
from django.conf import settings
from django.db import models

from modules.core.models import BaseModel

logger = structlog.get_logger(__name__)


class ClientType(models.TextChoices):
    RETAIL = "retail", "Retail"
    WHOLESALE = "wholesale", "Wholesale"


class Customer(BaseModel):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="customer",
    )
    client_type = models.CharField(
        max_length=16,
        choices=ClientType.choices,
        default=ClientType.RETAIL,
    )
    company_name = models.CharField(max_length=255, blank=True, default="")
    phone = models.CharField(max_length=20, blank=True, default="")
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "customers"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["client_type"], name="customers_client_type_idx"),
        ]

    @property
    def is_wholesale(self) -> bool:
        return self.client_type == ClientType.WHOLESALE

    def __str__(self) -> str:
        suffix = self.phone[-4:] if self.phone else "????"
        return f"{self.user} ({self.client_type}, ***{suffix})"
