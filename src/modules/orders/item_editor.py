"""Manager edits of an order's line items.

A batch of ``update`` / ``remove`` / ``add`` changes is applied in one
transaction with the order row locked.  Stock follows every quantity
change; an insufficient-stock failure on any change rolls back the whole
batch.  Totals are recomputed from the stored items afterwards.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import structlog
from django.db import transaction

from modules.core.money import to_money
from modules.orders.constants import ChangeSource
from modules.orders.dtos import OrderItemChangeDTO
from modules.orders.events import OrderItemsEdited
from modules.orders.exceptions import (
    EmptyCart,
    OrderItemNotFound,
    OrderNotEditable,
    OrderNotFound,
    ProductNotFound,
)
from modules.orders.models import Order, OrderItem
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.repositories.interfaces import IOrderRepository
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.products.repositories.interfaces import IProductRepository
from modules.products.stock import StockLedger

logger = structlog.get_logger(__name__)

EDIT_HISTORY_COMMENT = "Order items edited"


class OrderItemEditor:
    def __init__(
        self,
        order_repository: Optional[IOrderRepository] = None,
        product_repository: Optional[IProductRepository] = None,
        stock_ledger: Optional[StockLedger] = None,
    ) -> None:
        self._order_repo = order_repository or OrderDjangoRepository()
        self._product_repo = product_repository or ProductDjangoRepository()
        self._stock = stock_ledger or StockLedger()

    @transaction.atomic
    def edit_items(
        self,
        order_id: Any,
        changes: Sequence[OrderItemChangeDTO],
        actor_id: Optional[Any],
        comment: str = "",
    ) -> Order:
        """Apply *changes* to the order's items.

        Raises:
            OrderNotFound / OrderItemNotFound / ProductNotFound
            OrderNotEditable: status is paid or later.
            InsufficientStock: an increase or addition cannot be covered.
            EmptyCart: the batch would leave the order without items.
        """
        order = self._order_repo.get_for_update(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(order_id=str(order.id), status=order.status)
        if not order.is_editable:
            log.warning("order.edit_not_allowed")
            raise OrderNotEditable(
                f"Items of an order in status {order.status} cannot be edited."
            )

        for change in changes:
            if change.action == "remove":
                self._remove(order, change)
            elif change.action == "update":
                self._update(order, change)
            else:
                self._add(order, change)

        if not order.items.exists():
            raise EmptyCart("An order cannot be left without items; cancel it instead.")

        order.recalculate_totals()
        order.add_domain_event(
            OrderItemsEdited(
                aggregate_id=order.id,
                order_number=order.order_number,
                user_id=order.user_id,
                total_amount=str(to_money(order.total_amount)),
                items_count=order.items_count,
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order,
            old_status=order.status,
            new_status=order.status,
            change_source=ChangeSource.MANAGER,
            changed_by_id=actor_id,
            comment=comment or EDIT_HISTORY_COMMENT,
        )
        log.info(
            "order.items_edited",
            changes=len(changes),
            items_count=order.items_count,
            total_amount=str(order.total_amount),
        )
        return order

    # ------------------------------------------------------------------
    # Individual changes
    # ------------------------------------------------------------------

    def _existing_item(self, order: Order, item_id: Any) -> OrderItem:
        item = self._order_repo.get_item(order.id, item_id)
        if item is None:
            raise OrderItemNotFound(f"Item {item_id} not found in order {order.id}.")
        return item

    def _remove(self, order: Order, change: OrderItemChangeDTO) -> None:
        item = self._existing_item(order, change.item_id)
        if item.product_id is not None:
            self._stock.release(item.product_id, item.quantity)
        item.delete()
        logger.info("order.item_removed", order_id=str(order.id), item_id=str(item.id))

    def _update(self, order: Order, change: OrderItemChangeDTO) -> None:
        item = self._existing_item(order, change.item_id)
        delta = change.quantity - item.quantity
        if delta and item.product_id is not None:
            if delta > 0:
                self._stock.reserve_or_raise(item.product_id, delta, item.product_name)
            else:
                self._stock.release(item.product_id, -delta)
        item.quantity = change.quantity
        item.save(update_fields=["quantity"])
        logger.info(
            "order.item_updated",
            order_id=str(order.id),
            item_id=str(item.id),
            delta=delta,
        )

    def _add(self, order: Order, change: OrderItemChangeDTO) -> None:
        product = self._product_repo.get_by_id(change.product_id)
        if product is None or not product.is_active:
            raise ProductNotFound(f"Product {change.product_id} not found.")
        self._stock.reserve_or_raise(product.id, change.quantity, product.name)
        item = OrderItem(
            order=order,
            product=product,
            product_code=product.code,
            product_name=product.name,
            price_at_order=product.price_for(order.client_type),
            quantity=change.quantity,
            is_promo=product.is_promo,
        )
        item.save()
        logger.info(
            "order.item_added",
            order_id=str(order.id),
            item_id=str(item.id),
            product_id=str(product.id),
        )
