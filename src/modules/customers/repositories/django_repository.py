"""Django ORM implementation of the Customer repository."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction

from modules.customers.models import ClientType, Customer
from modules.customers.repositories.interfaces import ICustomerRepository

logger = structlog.get_logger(__name__)


class CustomerDjangoRepository(ICustomerRepository):
    def get_by_id(self, id: Any) -> Optional[Customer]:
        try:
            return Customer.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Customer]:
        queryset = Customer.objects.select_related("user")
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: Customer) -> Customer:
        entity.save()
        logger.info("customer.saved", customer_id=str(entity.id))
        return entity

    def get_by_user(self, user_id: Any) -> Optional[Customer]:
        if user_id is None:
            return None
        return Customer.objects.filter(user_id=user_id).first()

    def client_type_for(self, user_id: Any) -> str:
        customer = self.get_by_user(user_id)
        if customer is None or not customer.is_active:
            return ClientType.RETAIL
        return customer.client_type
