"""Domain bus interfaces for side-effect handlers."""

from __future__ import annotations

from typing import Generic, List, Protocol, Type, TypeVar

from shared.domain.events import DomainEvent

E = TypeVar("E", bound=DomainEvent, contravariant=True)


class IEventHandler(Protocol, Generic[E]):
    """Handler interface for domain events.

    ``name`` is stable across deployments: it is persisted on outbox rows
    and used to find the handler again at delivery time.  ``applies_to``
    filters events at staging time so no row is written for a no-op.
    """

    name: str

    def applies_to(self, event: E) -> bool: ...

    def handle(self, event: E) -> None: ...


class IEventBus(Protocol):
    """Registry of handlers per event class."""

    def subscribe(self, event_class: Type[E], handler: IEventHandler[E]) -> None: ...

    def handlers_for(self, event_class: Type[DomainEvent]) -> List[IEventHandler]: ...

    def get_handler(self, name: str) -> IEventHandler: ...

    def event_class(self, event_name: str) -> Type[DomainEvent]: ...
