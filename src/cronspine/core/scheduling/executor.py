"""Executor contract and the event-name handler registry.

Manifesto:
    The runner does not know what a job *does*. It hands an event to an
    :class:`Executor` and gets an :class:`Outcome` back. The default
    executor, :class:`EventDispatcher`, resolves the event name through a
    :class:`HandlerRegistry`; registration happens at import time (or via
    ``cronspine --handlers module``) and resolution at run time.

ARCHITECTURE
────────────
::

    HandlerRegistry
      ├── .register(name, handler)  ─ store handler
      ├── .get(name)                ─ lookup (KeyError if absent)
      ├── .has(name)                ─ existence check
      └── .list_handlers()          ─ registered names

    register_handler(name)      ─ decorator (default registry)
    get_default_registry()      ─ module-level singleton
    reset_default_registry()    ─ clear for testing

    EventDispatcher(registry).execute(event) → Outcome
      handler(request, event) → None | Outcome | status | (status, msg)
                                  anything else → Outcome(ERROR)

BEST PRACTICES
──────────────
- Pass an explicit ``HandlerRegistry`` in tests.
- Call ``reset_default_registry()`` in test fixtures.

Tags:
    cronspine, execution, registry, handler-registry, executor
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from cronspine.core.logging import get_logger
from cronspine.core.scheduling.events import Outcome, RequestEvent
from cronspine.core.status import StatusEnum

logger = get_logger(__name__)

Handler = Callable[[Any, RequestEvent], Any]


@runtime_checkable
class Executor(Protocol):
    """Synchronously executes one job event."""

    def execute(self, event: RequestEvent) -> Outcome:
        ...


class HandlerRegistry:
    """Injectable event name → handler registry.

    Example:
        >>> registry = HandlerRegistry()
        >>>
        >>> @register_handler("send_report", registry=registry)
        ... def send_report(request, event):
        ...     return StatusEnum.OK
        >>>
        >>> registry.has("send_report")
        True
    """

    def __init__(self):
        self._handlers: dict[str, Handler] = {}
        self._descriptions: dict[str, str | None] = {}

    def register(self, name: str, handler: Handler, description: str | None = None) -> None:
        """Register ``handler`` for event ``name`` (replaces any previous one)."""
        self._handlers[name] = handler
        self._descriptions[name] = description

    def get(self, name: str) -> Handler:
        """Get a handler.

        Raises:
            KeyError: If no handler is registered for ``name``
        """
        if name not in self._handlers:
            raise KeyError(f"No handler registered for {name!r}. Available: {self.list_handlers() or 'none'}")
        return self._handlers[name]

    def has(self, name: str) -> bool:
        return name in self._handlers

    def list_handlers(self) -> list[str]:
        return sorted(self._handlers)

    def list_with_descriptions(self) -> list[dict[str, Any]]:
        return [{"name": n, "description": self._descriptions.get(n)} for n in self.list_handlers()]

    def unregister(self, name: str) -> bool:
        if name in self._handlers:
            del self._handlers[name]
            self._descriptions.pop(name, None)
            return True
        return False

    def clear(self) -> None:
        """Clear all handlers (for testing)."""
        self._handlers.clear()
        self._descriptions.clear()


class EventDispatcher:
    """Executor that dispatches events to registered handlers.

    Unknown events yield ``Outcome(NOT_FOUND)``. Handler exceptions
    propagate; the runner converts them into error outcomes.
    """

    def __init__(self, registry: HandlerRegistry | None = None):
        self._registry = registry

    @property
    def registry(self) -> HandlerRegistry:
        """Explicit registry, else the current default registry."""
        return self._registry if self._registry is not None else get_default_registry()

    def execute(self, event: RequestEvent) -> Outcome:
        if not self.registry.has(event.type):
            logger.warning("handler_not_found", event_name=event.type, uuid=event.uuid)
            return Outcome(StatusEnum.NOT_FOUND, f"No handler registered for event {event.type!r}")

        handler = self.registry.get(event.type)
        result = handler(event.request, event)
        return Outcome.from_value(result)


# === GLOBAL DEFAULT REGISTRY ===

_default_registry: HandlerRegistry | None = None


def get_default_registry() -> HandlerRegistry:
    """Get the global default registry.

    Creates it lazily on first access.
    """
    global _default_registry
    if _default_registry is None:
        _default_registry = HandlerRegistry()
    return _default_registry


def reset_default_registry() -> None:
    """Reset the global registry (for testing)."""
    global _default_registry
    _default_registry = None


def register_handler(
    name: str,
    registry: HandlerRegistry | None = None,
    description: str | None = None,
):
    """Decorator to register an event handler.

    Example:
        >>> @register_handler("nightly_report")
        ... def nightly_report(request, event):
        ...     return StatusEnum.OK, "report sent"
    """

    def decorator(func: Handler) -> Handler:
        target = registry or get_default_registry()
        target.register(name, func, description=description or func.__doc__)
        return func

    return decorator


__all__ = [
    "Executor",
    "Handler",
    "HandlerRegistry",
    "EventDispatcher",
    "get_default_registry",
    "reset_default_registry",
    "register_handler",
]
