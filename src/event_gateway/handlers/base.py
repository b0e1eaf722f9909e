"""Base handler class and registry for repository event handling."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator

from core.errors.exceptions import RegistryFrozenError
from event_gateway.schemas.events import Event

logger = logging.getLogger(__name__)


class EventHandler(ABC):
    """In-process consumer of routed events.

    Subclasses set ``name`` and implement ``on_receive``. Handlers run
    synchronously on the message path and must not block for long.
    """

    name: str = ""

    @abstractmethod
    def on_receive(self, event: Event) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class HandlerRegistry:
    """Registry mapping handler names to handler instances.

    Populated at startup, then frozen; lookups after that are read-only.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, EventHandler] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, name: str, handler: EventHandler) -> None:
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register handler '{name}': registry is frozen",
                context={"handler_name": name},
            )
        if not name:
            raise ValueError("Handler name must be non-empty")
        if name in self._handlers:
            logger.warning(
                "Replacing registered handler",
                extra={
                    "handler_name": name,
                    "previous": type(self._handlers[name]).__name__,
                    "replacement": type(handler).__name__,
                },
            )
        self._handlers[name] = handler
        logger.debug(
            "Registered handler",
            extra={"handler_name": name, "handler_class": type(handler).__name__},
        )

    def get(self, name: str) -> EventHandler | None:
        return self._handlers.get(name)

    def names(self) -> list[str]:
        return sorted(self._handlers)

    def freeze(self) -> None:
        self._frozen = True
        logger.info("Handler registry frozen", extra={"handlers": self.names()})

    def __contains__(self, name: str) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())
