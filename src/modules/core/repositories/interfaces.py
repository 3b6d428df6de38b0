"""Base repository contract shared by the module repositories.

Services are written against these interfaces and receive the Django
implementations by default, so tests and other callers can swap them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Iterable, Optional, TypeVar

T = TypeVar("T")


class IRepository(ABC, Generic[T]):
    @abstractmethod
    def get_by_id(self, id: Any) -> Optional[T]:
        """``None`` for missing or malformed ids."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> Iterable[T]:
        """Entities matching the optional ORM-style ``filters``."""

    @abstractmethod
    def save(self, entity: T) -> T:
        """Persist *entity* inside the caller's unit of work."""
