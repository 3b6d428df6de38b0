"""Loyalty points service.

Points for a completed order are ``floor(amount * base rate * level
multiplier)``.  Crediting and reversing are idempotent per order, so the
outbox may deliver the same side effect more than once.
"""

from __future__ import annotations

import math
from decimal import Decimal
from typing import Any, Optional

import structlog
from django.conf import settings
from django.db import transaction

from modules.core.money import to_money
from modules.loyalty.exceptions import InsufficientPoints
from modules.loyalty.models import (
    LoyaltyAccount,
    LoyaltyLevel,
    LoyaltyTransaction,
    TransactionKind,
)

logger = structlog.get_logger(__name__)


class LoyaltyService:
    def get_or_create_account(self, user_id: Any) -> LoyaltyAccount:
        account, created = LoyaltyAccount.objects.get_or_create(
            user_id=user_id,
            defaults={"level": LoyaltyLevel.objects.order_by("sort_order").first()},
        )
        if created:
            logger.info("loyalty.account_created", user_id=str(user_id))
        return account

    def points_for(self, account: LoyaltyAccount, amount: Decimal) -> int:
        multiplier = account.level.points_multiplier if account.level else Decimal("1")
        rate = Decimal(str(settings.LOYALTY_BASE_POINTS_RATE))
        return math.floor(to_money(amount) * rate * multiplier)

    @transaction.atomic
    def earn_points(
        self, user_id: Any, order_id: Any, amount: Decimal
    ) -> Optional[LoyaltyTransaction]:
        """Credit points for a completed order (once per order)."""
        account = self._lock_account(user_id)
        log = logger.bind(user_id=str(user_id), order_id=str(order_id))

        if LoyaltyTransaction.objects.filter(
            order_id=order_id, kind=TransactionKind.EARN
        ).exists():
            log.info("loyalty.earn_already_recorded")
            return None

        points = self.points_for(account, amount)
        if points <= 0:
            log.info("loyalty.earn_skipped", amount=str(amount))
            return None

        account.points += points
        account.total_spent = to_money(account.total_spent + to_money(amount))
        account.save(update_fields=["points", "total_spent"])
        tx = LoyaltyTransaction.objects.create(
            account=account,
            kind=TransactionKind.EARN,
            points=points,
            amount=to_money(amount),
            order_id=order_id,
            description=f"Points for order {order_id}",
        )
        self.recalculate_level(account)
        log.info("loyalty.points_earned", points=points, balance=account.points)
        return tx

    @transaction.atomic
    def reverse_order_points(
        self, user_id: Any, order_id: Any, reason: str = ""
    ) -> Optional[LoyaltyTransaction]:
        """Debit exactly the points earned for *order_id*, once.

        The order amount is taken back out of ``total_spent`` and the level
        recalculated.  No earn transaction means nothing to reverse.  Raises
        ``InsufficientPoints`` when the balance no longer covers the debit.
        """
        account = self._lock_account(user_id)
        log = logger.bind(user_id=str(user_id), order_id=str(order_id))

        earned = LoyaltyTransaction.objects.filter(
            order_id=order_id, kind=TransactionKind.EARN, account=account
        ).first()
        if earned is None or earned.points <= 0:
            log.info("loyalty.reversal_nothing_earned")
            return None
        if LoyaltyTransaction.objects.filter(
            order_id=order_id, kind=TransactionKind.REVERSAL
        ).exists():
            log.info("loyalty.reversal_already_recorded")
            return None
        if account.points < earned.points:
            raise InsufficientPoints(available=account.points, requested=earned.points)

        account.points -= earned.points
        account.total_spent = max(to_money(account.total_spent - earned.amount), Decimal("0.00"))
        account.save(update_fields=["points", "total_spent"])
        tx = LoyaltyTransaction.objects.create(
            account=account,
            kind=TransactionKind.REVERSAL,
            points=-earned.points,
            amount=-earned.amount,
            order_id=order_id,
            description=reason or f"Reversal for order {order_id}",
        )
        self.recalculate_level(account)
        log.info("loyalty.points_reversed", points=earned.points, balance=account.points)
        return tx

    @transaction.atomic
    def adjust_points(
        self, user_id: Any, points: int, kind: str, description: str = ""
    ) -> LoyaltyTransaction:
        """Manual credit (``manual_add``) or deduction (``manual_deduct``)."""
        if kind not in (TransactionKind.MANUAL_ADD, TransactionKind.MANUAL_DEDUCT):
            raise ValueError(f"Unsupported adjustment kind: {kind}.")
        if points <= 0:
            raise ValueError("Adjusted points must be positive.")

        account = self._lock_account(user_id)
        delta = points if kind == TransactionKind.MANUAL_ADD else -points
        if account.points + delta < 0:
            raise InsufficientPoints(available=account.points, requested=points)

        account.points += delta
        account.save(update_fields=["points"])
        tx = LoyaltyTransaction.objects.create(
            account=account, kind=kind, points=delta, description=description
        )
        logger.info(
            "loyalty.points_adjusted",
            user_id=str(user_id),
            kind=kind,
            points=delta,
            balance=account.points,
        )
        return tx

    def recalculate_level(self, account: LoyaltyAccount) -> Optional[LoyaltyLevel]:
        """Move the account to the highest level its total spend reaches."""
        levels = list(LoyaltyLevel.objects.order_by("sort_order"))
        if not levels:
            return None
        new_level = levels[0]
        for level in levels:
            if account.total_spent >= level.min_spent:
                new_level = level
        if new_level.pk != account.level_id:
            account.level = new_level
            account.save(update_fields=["level"])
            logger.info(
                "loyalty.level_changed",
                user_id=str(account.user_id),
                level=new_level.name,
            )
        return new_level

    def _lock_account(self, user_id: Any) -> LoyaltyAccount:
        self.get_or_create_account(user_id)
        return LoyaltyAccount.objects.select_for_update().select_related("level").get(
            user_id=user_id
        )
