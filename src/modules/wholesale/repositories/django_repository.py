from __future__ import annotations

from typing import Any, Iterable, List

from modules.wholesale.models import WholesaleRule
from modules.wholesale.repositories.interfaces import IWholesaleRuleRepository


class WholesaleRuleDjangoRepository(IWholesaleRuleRepository):
    def order_level_rules(self) -> List[WholesaleRule]:
        return list(WholesaleRule.objects.active().filter(product__isnull=True))

    def product_rules(self, product_ids: Iterable[Any]) -> List[WholesaleRule]:
        return list(
            WholesaleRule.objects.active().filter(product_id__in=list(product_ids))
        )
