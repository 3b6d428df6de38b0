"""Wholesale rule evaluation.

Checks proposed order lines of a wholesale client against the active rule
set.  Order-level minimum amounts are checked first, then each line's
product-scoped minimum quantity and multiplicity.  The first violation
raises ``WholesaleRuleViolation``; nothing is reserved or written here.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional, Sequence

import structlog

from modules.cart.dtos import CartLineDTO
from modules.core.money import money_sum, to_money
from modules.customers.models import ClientType
from modules.orders.exceptions import WholesaleRuleViolation
from modules.wholesale.models import RuleType, WholesaleRule
from modules.wholesale.repositories.django_repository import (
    WholesaleRuleDjangoRepository,
)
from modules.wholesale.repositories.interfaces import IWholesaleRuleRepository

logger = structlog.get_logger(__name__)


class WholesaleRuleEvaluator:
    def __init__(self, rule_repository: Optional[IWholesaleRuleRepository] = None) -> None:
        self._rules = rule_repository or WholesaleRuleDjangoRepository()

    def evaluate(self, lines: Sequence[CartLineDTO], client_type: str) -> None:
        """Raise ``WholesaleRuleViolation`` if *lines* break any active rule.

        Retail clients are never checked.
        """
        if client_type != ClientType.WHOLESALE:
            return

        total = money_sum(line.subtotal for line in lines)
        for rule in self._rules.order_level_rules():
            if rule.rule_type != RuleType.MIN_ORDER_AMOUNT:
                continue
            minimum = to_money(rule.value)
            if total < minimum:
                self._reject(
                    f"Minimum wholesale order amount is {minimum}; "
                    f"add {minimum - total} more.",
                    rule,
                    offending=total,
                )

        by_product: Dict[str, List[WholesaleRule]] = {}
        for rule in self._rules.product_rules(line.product_id for line in lines):
            by_product.setdefault(str(rule.product_id), []).append(rule)

        for line in lines:
            for rule in by_product.get(str(line.product_id), []):
                self._check_line(line, rule)

    def _check_line(self, line: CartLineDTO, rule: WholesaleRule) -> None:
        # Rule values are decimals; 0.5 or 2.5 are valid multiplicities.
        value = Decimal(str(rule.value))
        required = _plain(value)
        if rule.rule_type == RuleType.MIN_QUANTITY and line.quantity < value:
            self._reject(
                f"Product {line.name}: minimum wholesale quantity is {required}, "
                f"requested {line.quantity}.",
                rule,
                offending=line.quantity,
            )
        if rule.rule_type == RuleType.MULTIPLICITY and Decimal(line.quantity) % value:
            self._reject(
                f"Product {line.name}: quantity must be a multiple of {required}, "
                f"requested {line.quantity}.",
                rule,
                offending=line.quantity,
            )

    @staticmethod
    def _reject(message: str, rule: WholesaleRule, offending) -> None:
        logger.info(
            "wholesale.rule_violated",
            rule_id=str(rule.id),
            rule_type=rule.rule_type,
            value=str(rule.value),
            offending=str(offending),
        )
        value = (
            to_money(rule.value)
            if rule.rule_type == RuleType.MIN_ORDER_AMOUNT
            else Decimal(str(rule.value))
        )
        raise WholesaleRuleViolation(
            message,
            rule_type=rule.rule_type,
            value=value,
            offending=offending,
            product_id=rule.product_id,
        )


def _plain(value: Decimal) -> str:
    """``Decimal("12.00")`` -> ``"12"``, ``Decimal("2.50")`` -> ``"2.5"``."""
    return format(value.normalize(), "f")
