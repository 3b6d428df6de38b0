"""Side-effect handlers for Orders domain events.

Each handler is delivered from its own outbox row after the order
transaction commits.  Handlers must be idempotent: a row may be delivered
more than once (relay after a crash, manual retry).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Union

import structlog

from modules.loyalty.services import LoyaltyService
from modules.notifications.services import NotificationService
from modules.orders.constants import RESTOCK_STATES, OrderStatus
from modules.orders.events import OrderCreated, OrderItemsEdited, OrderStatusChanged
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.referrals.services import ReferralService
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class NotifyManagersOnOrderCreated(IEventHandler[OrderCreated]):
    name = "notify_managers"

    def applies_to(self, event: OrderCreated) -> bool:
        return True

    def handle(self, event: OrderCreated) -> None:
        NotificationService().notify_managers(
            title=f"New order {event.order_number}",
            body=f"{event.items_count} item(s), total {event.total_amount}.",
            order_id=event.aggregate_id,
        )


class NotifyOwnerOnOrderChange(
    IEventHandler[Union[OrderStatusChanged, OrderItemsEdited]]
):
    name = "notify_owner"

    def applies_to(self, event: Union[OrderStatusChanged, OrderItemsEdited]) -> bool:
        return event.user_id is not None

    def handle(self, event: Union[OrderStatusChanged, OrderItemsEdited]) -> None:
        if isinstance(event, OrderStatusChanged):
            title = f"Order {event.order_number} is now {event.new_status}"
            body = f"Status changed from {event.old_status} to {event.new_status}."
        else:
            title = f"Order {event.order_number} was updated"
            body = f"{event.items_count} item(s), new total {event.total_amount}."
        NotificationService().notify_user(
            event.user_id, title=title, body=body, order_id=event.aggregate_id
        )


class CreditLoyaltyOnCompletion(IEventHandler[OrderStatusChanged]):
    name = "credit_loyalty"

    def applies_to(self, event: OrderStatusChanged) -> bool:
        return event.new_status == OrderStatus.COMPLETED and event.user_id is not None

    def handle(self, event: OrderStatusChanged) -> None:
        # Holding the order lock serializes this with a later cancel/return:
        # either the reversal sees the earn, or this sees the order already
        # cancelled or returned.
        order = OrderDjangoRepository().get_for_update(event.aggregate_id)
        if order is None or order.status != OrderStatus.COMPLETED:
            logger.info(
                "loyalty.credit_skipped",
                order_id=str(event.aggregate_id),
                status=getattr(order, "status", None),
            )
            return
        LoyaltyService().earn_points(
            event.user_id, event.aggregate_id, Decimal(event.total_amount)
        )


class ConvertReferralOnCompletion(IEventHandler[OrderStatusChanged]):
    name = "convert_referral"

    def applies_to(self, event: OrderStatusChanged) -> bool:
        return event.new_status == OrderStatus.COMPLETED and event.user_id is not None

    def handle(self, event: OrderStatusChanged) -> None:
        ReferralService().convert_on_first_order(event.user_id, event.aggregate_id)


class ReverseLoyaltyOnCancellation(IEventHandler[OrderStatusChanged]):
    name = "reverse_loyalty"

    def applies_to(self, event: OrderStatusChanged) -> bool:
        return event.new_status in RESTOCK_STATES and event.user_id is not None

    def handle(self, event: OrderStatusChanged) -> None:
        LoyaltyService().reverse_order_points(
            event.user_id,
            event.aggregate_id,
            reason=f"Order {event.order_number} {event.new_status}",
        )


notify_managers_handler = NotifyManagersOnOrderCreated()
notify_owner_handler = NotifyOwnerOnOrderChange()
credit_loyalty_handler = CreditLoyaltyOnCompletion()
convert_referral_handler = ConvertReferralOnCompletion()
reverse_loyalty_handler = ReverseLoyaltyOnCancellation()
