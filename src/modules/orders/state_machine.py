"""Order status state machine.

The allowed edges live in ``VALID_TRANSITIONS`` (plain data).  Who may
take an edge is a separate capability check per change source:
managers, the system and scheduled jobs may take any allowed edge, while
a client may only cancel their own order while it is still new or being
processed.

Entering ``cancelled`` or ``returned`` puts every line quantity back on
stock in the same transaction as the status change.  The order row is
locked first and terminal states have no outgoing edges, so a second
cancel or return can never restock twice.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import structlog
from django.db import transaction

from modules.core.money import to_money
from modules.orders.constants import (
    CLIENT_CANCELLABLE_STATES,
    RESTOCK_STATES,
    ChangeSource,
    OrderStatus,
    PaymentStatus,
)
from modules.orders.events import OrderStatusChanged
from modules.orders.exceptions import (
    InvalidOrderStatus,
    OrderNotFound,
    TransitionForbidden,
)
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.repositories.interfaces import IOrderRepository
from modules.products.stock import StockLedger

logger = structlog.get_logger(__name__)


def _any_allowed_edge(order: Order, new_status: str, actor_id: Any) -> bool:
    return True


def _client_may(order: Order, new_status: str, actor_id: Any) -> bool:
    return (
        new_status == OrderStatus.CANCELLED
        and order.status in CLIENT_CANCELLABLE_STATES
    )


CAPABILITIES: Dict[str, Callable[[Order, str, Any], bool]] = {
    ChangeSource.MANAGER: _any_allowed_edge,
    ChangeSource.SYSTEM: _any_allowed_edge,
    ChangeSource.CRON: _any_allowed_edge,
    ChangeSource.CLIENT_ACTION: _client_may,
}


class OrderStateMachine:
    def __init__(
        self,
        order_repository: Optional[IOrderRepository] = None,
        stock_ledger: Optional[StockLedger] = None,
    ) -> None:
        self._order_repo = order_repository or OrderDjangoRepository()
        self._stock = stock_ledger or StockLedger()

    @transaction.atomic
    def transition(
        self,
        order_id: Any,
        new_status: str,
        actor_id: Optional[Any],
        change_source: str,
        comment: str = "",
    ) -> Order:
        """Move an order to *new_status*.

        Raises:
            OrderNotFound: order does not exist.
            TransitionForbidden: the change source may not take this edge,
                or a client acts on someone else's order.
            InvalidOrderStatus: unknown status or edge outside the table.
        """
        if change_source not in CAPABILITIES:
            raise ValueError(f"Unknown change source: {change_source}.")

        order = self._order_repo.get_for_update(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")

        old_status = order.status
        log = logger.bind(
            order_id=str(order.id),
            current_status=old_status,
            new_status=new_status,
            change_source=change_source,
        )

        if change_source == ChangeSource.CLIENT_ACTION and (
            actor_id is None or order.user_id != actor_id
        ):
            log.warning("order.transition_not_owner", actor_id=actor_id)
            raise TransitionForbidden("You can only change your own orders.")

        if new_status not in OrderStatus.values or not order.can_transition_to(
            new_status
        ):
            log.warning("order.invalid_transition")
            raise InvalidOrderStatus(
                f"Cannot transition from {old_status} to {new_status}."
            )

        if not CAPABILITIES[change_source](order, new_status, actor_id):
            log.warning("order.transition_forbidden")
            raise TransitionForbidden(
                "Orders can only be cancelled by the client while new or processing."
            )

        if new_status in RESTOCK_STATES:
            self._stock.release_many(
                (item.product_id, item.quantity)
                for item in order.items.all()
                if item.product_id is not None
            )

        order.status = new_status
        if new_status == OrderStatus.CANCELLED:
            order.cancelled_reason = comment
            order.cancelled_by = change_source
        if new_status == OrderStatus.PAID:
            order.payment_status = PaymentStatus.PAID

        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                order_number=order.order_number,
                user_id=order.user_id,
                old_status=old_status,
                new_status=new_status,
                change_source=change_source,
                total_amount=str(to_money(order.total_amount)),
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order,
            old_status=old_status,
            new_status=new_status,
            change_source=change_source,
            changed_by_id=actor_id,
            comment=comment,
        )

        log.info("order.status_changed")
        return order
