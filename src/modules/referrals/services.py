"""Referral conversion: the referred user's first completed order."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from modules.loyalty.models import TransactionKind
from modules.loyalty.services import LoyaltyService
from modules.referrals.models import BonusType, Referral, ReferralStatus

logger = structlog.get_logger(__name__)


class ReferralService:
    def __init__(self, loyalty_service: Optional[LoyaltyService] = None) -> None:
        self._loyalty = loyalty_service or LoyaltyService()

    @transaction.atomic
    def convert_on_first_order(self, referred_user_id: Any, order_id: Any) -> bool:
        """Grant the referrer's bonus if this is the referred user's first order.

        Only a referral still in ``registered`` converts; the row is locked so
        concurrent deliveries cannot both grant the bonus.  Returns whether a
        bonus was granted.
        """
        referral = (
            Referral.objects.select_for_update()
            .filter(referred_id=referred_user_id)
            .first()
        )
        log = logger.bind(referred_user_id=str(referred_user_id), order_id=str(order_id))
        if referral is None or referral.status != ReferralStatus.REGISTERED:
            log.info("referral.conversion_skipped")
            return False

        referral.status = ReferralStatus.FIRST_ORDER
        referral.converted_at = timezone.now()
        referral.save(update_fields=["status", "converted_at"])

        bonus = settings.REFERRAL_BONUS_POINTS
        self._loyalty.adjust_points(
            referral.referrer_id,
            bonus,
            TransactionKind.MANUAL_ADD,
            description=f"Referral bonus for order {order_id}",
        )

        referral.status = ReferralStatus.BONUS_GRANTED
        referral.bonus_type = BonusType.POINTS
        referral.bonus_value = Decimal(bonus)
        referral.save(update_fields=["status", "bonus_type", "bonus_value"])
        log.info(
            "referral.bonus_granted",
            referrer_id=str(referral.referrer_id),
            points=bonus,
        )
        return True
