"""Customer repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.customers.models import Customer


class ICustomerRepository(IRepository["Customer"]):
    @abstractmethod
    def get_by_user(self, user_id: Any) -> Optional[Customer]:
        """Retrieve the profile of a user, ``None`` if the user has none."""

    @abstractmethod
    def client_type_for(self, user_id: Any) -> str:
        """Client type of a user (retail when unknown or inactive)."""
