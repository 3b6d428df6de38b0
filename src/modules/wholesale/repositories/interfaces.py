from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterable, List

if TYPE_CHECKING:
    from modules.wholesale.models import WholesaleRule


class IWholesaleRuleRepository(ABC):
    @abstractmethod
    def order_level_rules(self) -> List[WholesaleRule]:
        """Active rules without a product."""

    @abstractmethod
    def product_rules(self, product_ids: Iterable[Any]) -> List[WholesaleRule]:
        """Active rules scoped to any of *product_ids*."""
