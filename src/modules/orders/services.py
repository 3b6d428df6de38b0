"""Order service layer (use cases).

``OrderService`` is the entry point used by the API, Celery tasks and
other modules.  Every write is one atomic unit; side effects (manager and
owner notifications, loyalty, referrals) are staged to the outbox inside
that unit and delivered after commit, so they can never undo an order.

Business rules enforced:
- Checkout needs at least one line; wholesale lines must satisfy the
  active wholesale rules.
- Stock is reserved with conditional updates, all-or-nothing.
- Status transitions follow the state machine; clients may only cancel
  their own new or processing orders.
- Line items are editable only before payment.
"""

from __future__ import annotations

from datetime import timedelta
from functools import partial
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from modules.cart.services import CartService
from modules.core.money import to_money
from modules.customers.repositories.django_repository import CustomerDjangoRepository
from modules.orders.constants import ChangeSource, OrderStatus
from modules.orders.dtos import CheckoutDTO, CreateOrderDTO, OrderItemChangeDTO
from modules.orders.events import OrderCreated
from modules.orders.exceptions import (
    EmptyCart,
    InvalidOrderStatus,
    OrderNotFound,
    TrackingNumberAlreadySet,
)
from modules.orders.item_editor import OrderItemEditor
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.state_machine import OrderStateMachine
from modules.products.stock import StockLedger
from modules.wholesale.services import WholesaleRuleEvaluator

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.customers.repositories.interfaces import ICustomerRepository
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

AUTO_CANCEL_COMMENT = "Automatically cancelled: not processed within {hours} hours"


class OrderService:
    """Application service for Order use-cases.

    Receives collaborators via constructor injection; defaults wire the
    Django implementations.
    """

    def __init__(
        self,
        order_repository: Optional[IOrderRepository] = None,
        customer_repository: Optional[ICustomerRepository] = None,
        stock_ledger: Optional[StockLedger] = None,
        wholesale_evaluator: Optional[WholesaleRuleEvaluator] = None,
        cart_service: Optional[CartService] = None,
    ) -> None:
        self._order_repo = order_repository or OrderDjangoRepository()
        self._customer_repo = customer_repository or CustomerDjangoRepository()
        self._stock = stock_ledger or StockLedger()
        self._wholesale = wholesale_evaluator or WholesaleRuleEvaluator()
        self._cart = cart_service or CartService()
        self._state_machine = OrderStateMachine(self._order_repo, self._stock)
        self._item_editor = OrderItemEditor(
            order_repository=self._order_repo, stock_ledger=self._stock
        )

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def build_order_request(
        self,
        actor_id: Optional[Any],
        checkout: CheckoutDTO,
        items: Optional[Iterable[Tuple[Any, int]]] = None,
    ) -> CreateOrderDTO:
        """Resolve client type and cart lines for a checkout.

        Explicit ``(product_id, quantity)`` items win over the server cart;
        guests must pass them.
        """
        client_type = self._customer_repo.client_type_for(actor_id)
        if items is not None:
            lines = self._cart.lines_for_items(items, client_type)
        elif actor_id is not None:
            lines = self._cart.lines_for_user(actor_id, client_type)
        else:
            lines = []
        return CreateOrderDTO(
            actor_id=actor_id,
            client_type=client_type,
            checkout=checkout,
            lines=lines,
        )

    @transaction.atomic
    def create_order(self, dto: CreateOrderDTO) -> Order:
        """Create an order from cart lines with atomic stock reservation.

        Steps:
        1. Reject an empty cart and check wholesale rules.
        2. Reserve every line (sorted by product id); the first shortage
           raises ``InsufficientStock`` and rolls back all reservations.
        3. Persist order + item snapshots + the creation history record.
        4. Stage ``OrderCreated``; after commit clear the actor's cart.

        Raises:
            EmptyCart: no lines.
            WholesaleRuleViolation: a wholesale rule rejects the lines.
            InsufficientStock: not enough stock for a line.
        """
        log = logger.bind(
            actor_id=dto.actor_id,
            client_type=dto.client_type,
            line_count=len(dto.lines),
        )
        log.info("order.creation_started")

        if not dto.lines:
            raise EmptyCart("Cart is empty.")
        self._wholesale.evaluate(dto.lines, dto.client_type)

        self._stock.reserve_many(
            (line.product_id, line.quantity, line.name) for line in dto.lines
        )

        order = self._order_repo.create(
            {
                "user_id": dto.actor_id,
                "client_type": dto.client_type,
                **dto.checkout.model_dump(),
            },
            [
                {
                    "product_id": line.product_id,
                    "product_code": line.code,
                    "product_name": line.name,
                    "price_at_order": line.unit_price,
                    "quantity": line.quantity,
                    "is_promo": line.is_promo,
                }
                for line in dto.lines
            ],
        )
        self._order_repo.add_history(
            order,
            old_status=None,
            new_status=OrderStatus.NEW_ORDER,
            change_source=ChangeSource.SYSTEM,
            changed_by_id=dto.actor_id,
            comment="Order created",
        )
        order.add_domain_event(
            OrderCreated(
                aggregate_id=order.id,
                order_number=order.order_number,
                user_id=order.user_id,
                total_amount=str(to_money(order.total_amount)),
                items_count=order.items_count,
            )
        )
        self._order_repo.save(order)

        if dto.actor_id is not None:
            transaction.on_commit(partial(self._cart.clear, dto.actor_id), robust=True)

        log.info(
            "order.created",
            order_id=str(order.id),
            order_number=order.order_number,
            total_amount=str(order.total_amount),
        )
        return order

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def transition(
        self,
        order_id: Any,
        new_status: str,
        actor_id: Optional[Any],
        change_source: str,
        comment: str = "",
    ) -> Order:
        return self._state_machine.transition(
            order_id, new_status, actor_id, change_source, comment
        )

    def cancel_by_client(self, order_id: Any, actor_id: Any, reason: str = "") -> Order:
        return self.transition(
            order_id,
            OrderStatus.CANCELLED,
            actor_id,
            ChangeSource.CLIENT_ACTION,
            reason,
        )

    def confirm_payment(self, order_id: Any, actor_id: Optional[Any] = None) -> Order:
        """Payment collaborator callback: move the order to ``paid``."""
        return self.transition(
            order_id,
            OrderStatus.PAID,
            actor_id,
            ChangeSource.SYSTEM,
            "Payment confirmed",
        )

    def auto_cancel_stale_orders(self, now=None) -> int:
        """Cancel ``new_order`` orders older than ``ORDER_AUTO_CANCEL_HOURS``.

        Each order goes through the state machine on its own, so stock is
        restocked and history written; an order that moved on in the
        meantime is skipped.
        """
        hours = settings.ORDER_AUTO_CANCEL_HOURS
        cutoff = (now or timezone.now()) - timedelta(hours=hours)
        stale_ids = list(
            self._order_repo.queryset()
            .filter(status=OrderStatus.NEW_ORDER, created_at__lt=cutoff)
            .values_list("id", flat=True)
        )
        cancelled = 0
        for order_id in stale_ids:
            try:
                self.transition(
                    order_id,
                    OrderStatus.CANCELLED,
                    None,
                    ChangeSource.CRON,
                    AUTO_CANCEL_COMMENT.format(hours=hours),
                )
            except InvalidOrderStatus:
                logger.info("order.auto_cancel_skipped", order_id=str(order_id))
                continue
            cancelled += 1
        logger.info("order.auto_cancel_finished", cancelled=cancelled, cutoff=cutoff.isoformat())
        return cancelled

    # ------------------------------------------------------------------
    # Items / fulfilment
    # ------------------------------------------------------------------

    def edit_items(
        self,
        order_id: Any,
        changes: List[OrderItemChangeDTO],
        actor_id: Optional[Any],
        comment: str = "",
    ) -> Order:
        return self._item_editor.edit_items(order_id, changes, actor_id, comment)

    @transaction.atomic
    def set_tracking_number(
        self, order_id: Any, tracking_number: str, actor_id: Optional[Any] = None
    ) -> Order:
        order = self._order_repo.get_for_update(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        if order.is_terminal:
            raise InvalidOrderStatus(
                f"Cannot set a tracking number on a {order.status} order."
            )
        if order.tracking_number:
            raise TrackingNumberAlreadySet(
                f"Order {order.order_number} already has tracking number "
                f"{order.tracking_number}."
            )
        order.tracking_number = tracking_number.strip()
        order.save(update_fields=["tracking_number"])
        logger.info(
            "order.tracking_number_set",
            order_id=str(order.id),
            actor_id=actor_id,
        )
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: Any) -> Order:
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(self, user: Any) -> QuerySet:
        """Orders visible to *user*: managers see all, clients their own."""
        queryset = self._order_repo.queryset()
        if not getattr(user, "is_staff", False):
            queryset = queryset.filter(user_id=user.pk)
        return queryset
