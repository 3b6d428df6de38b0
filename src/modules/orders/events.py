"""Domain events for the Orders bounded context.

Fields are plain strings / ints so events survive the round trip through
the outbox JSON payload.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    order_number: str = ""
    user_id: Optional[int] = None
    total_amount: str = "0.00"
    items_count: int = 0


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    order_number: str = ""
    user_id: Optional[int] = None
    old_status: str = ""
    new_status: str = ""
    change_source: str = ""
    total_amount: str = "0.00"


@dataclass(frozen=True)
class OrderItemsEdited(DomainEvent):
    order_number: str = ""
    user_id: Optional[int] = None
    total_amount: str = "0.00"
    items_count: int = 0
