"""In-memory handler registry shared by the outbox dispatcher."""

from __future__ import annotations

from typing import Dict, List, Type

from shared.domain.bus import IEventBus, IEventHandler
from shared.domain.events import DomainEvent


class UnknownHandler(LookupError):
    """No handler / event class is registered under the given name."""


class InMemoryEventBus(IEventBus):
    """Simple in-process registry: event class -> handlers, name -> handler."""

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[IEventHandler]] = {}
        self._by_name: Dict[str, IEventHandler] = {}
        self._event_classes: Dict[str, Type[DomainEvent]] = {}

    def subscribe(self, event_class: Type[DomainEvent], handler: IEventHandler) -> None:
        handlers = self._handlers.setdefault(event_class, [])
        if handler not in handlers:
            handlers.append(handler)
        self._by_name[handler.name] = handler
        self._event_classes[event_class.__name__] = event_class

    def handlers_for(self, event_class: Type[DomainEvent]) -> List[IEventHandler]:
        return list(self._handlers.get(event_class, []))

    def get_handler(self, name: str) -> IEventHandler:
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownHandler(f"No handler registered as {name!r}.") from None

    def event_class(self, event_name: str) -> Type[DomainEvent]:
        try:
            return self._event_classes[event_name]
        except KeyError:
            raise UnknownHandler(f"No event class registered as {event_name!r}.") from None

    def clear(self) -> None:
        self._handlers.clear()
        self._by_name.clear()
        self._event_classes.clear()


# Global bus instance (singleton)

event_bus = InMemoryEventBus()
