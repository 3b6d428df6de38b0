"""Order repository interface.

Extends ``IRepository[Order]`` with the methods the order services need:
creation with order-number retry, locked reads and the history trail.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.orders.models import Order, OrderItem, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The aggregate includes OrderItem children and OrderStatusHistory
    records.  Mutations must run inside the caller's transaction.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any], items: Sequence[Dict[str, Any]]) -> Order:
        """Insert an order and its items under a freshly generated number."""

    @abstractmethod
    def get_for_update(self, id: Any) -> Optional[Order]:
        """Retrieve an order with a row-level lock."""

    @abstractmethod
    def queryset(self) -> QuerySet:
        """Base queryset with relations eager-loaded for reads."""

    @abstractmethod
    def get_item(self, order_id: Any, item_id: Any) -> Optional[OrderItem]:
        """Retrieve an item only if it belongs to *order_id*."""

    @abstractmethod
    def add_history(
        self,
        order: Order,
        old_status: Optional[str],
        new_status: str,
        change_source: str,
        changed_by_id: Optional[Any] = None,
        comment: str = "",
    ) -> OrderStatusHistory:
        """Append one record to the order's audit trail."""
