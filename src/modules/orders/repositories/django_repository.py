"""Django ORM implementation of the Order repository.

Writes never open their own transaction: the order services define the
unit of work and the repository runs inside it.  Order-number collisions
are retried inside a savepoint so a duplicate number does not poison the
enclosing transaction.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import QuerySet

from modules.core.outbox import outbox_dispatcher
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    def create(self, data: Dict[str, Any], items: Sequence[Dict[str, Any]]) -> Order:
        """Insert an order and its items.

        ``data`` holds the Order field values; each entry of ``items`` holds
        ``product_id``, ``product_code``, ``product_name``,
        ``price_at_order``, ``quantity`` and ``is_promo``.
        """
        order = self._insert_with_unique_number(data)
        for item_data in items:
            OrderItem(order=order, **item_data).save()

        order.recalculate_totals()
        order.save(update_fields=["items_count", "total_amount"])
        logger.info(
            "order.persisted",
            order_id=str(order.id),
            order_number=order.order_number,
            item_count=len(items),
        )
        return order

    def _insert_with_unique_number(self, data: Dict[str, Any]) -> Order:
        max_retries = settings.ORDER_NUMBER_MAX_RETRIES
        for attempt in range(1, max_retries + 1):
            order = Order(order_number=Order.generate_order_number(), **data)
            try:
                with transaction.atomic():
                    order.save(force_insert=True)
            except IntegrityError:
                if not Order.objects.filter(order_number=order.order_number).exists():
                    raise
                logger.warning(
                    "order.number_collision",
                    order_number=order.order_number,
                    attempt=attempt,
                )
                continue
            return order
        raise RuntimeError(
            f"Failed to generate a unique order_number after {max_retries} attempts."
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def queryset(self) -> QuerySet:
        return Order.objects.select_related("user").prefetch_related(
            "items", "status_history"
        )

    def get_by_id(self, id: Any) -> Optional[Order]:
        """Retrieve an order with items and history prefetched.

        Returns ``None`` for non-existent or malformed IDs.
        """
        try:
            return self.queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: Any) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE).

        Items are not prefetched: callers mutate them under the lock and
        must read them fresh.
        """
        try:
            return Order.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_item(self, order_id: Any, item_id: Any) -> Optional[OrderItem]:
        try:
            return OrderItem.objects.filter(order_id=order_id, id=item_id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        queryset = self.queryset()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    # ------------------------------------------------------------------
    # Save (IRepository contract)
    # ------------------------------------------------------------------

    def save(self, entity: Order) -> Order:
        """Persist the order and stage its pending domain events."""
        entity.save()
        rows = outbox_dispatcher.stage(entity)
        logger.info("order.saved", order_id=str(entity.id), outbox_rows=len(rows))
        return entity

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_history(
        self,
        order: Order,
        old_status: Optional[str],
        new_status: str,
        change_source: str,
        changed_by_id: Optional[Any] = None,
        comment: str = "",
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order=order,
            old_status=old_status,
            new_status=new_status,
            change_source=change_source,
            changed_by_id=changed_by_id,
            comment=comment,
        )
        logger.info(
            "order.history_added",
            order_id=str(order.id),
            old_status=old_status,
            new_status=new_status,
            change_source=change_source,
        )
        return history
