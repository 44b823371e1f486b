"""Hook registry for tablehooks.

Holds handler registrations per routing key, ordered by priority and then
by registration order.
"""

import bisect
import itertools
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from tablehooks.hooks.types import CancellableEvent, EventKind, EventPriority

# Handler signature: (event) -> None, sync or async
HookFn = Callable[[CancellableEvent], Awaitable[None] | None]

# (table identity, event kind)
RoutingKey = tuple[str, EventKind]


@dataclass(eq=False)
class HookRegistration:
    """Handle returned by HookRegistry.register().

    Attributes:
        routing_key: Table identity and event kind the handler listens on
        handler: The registered callable
        priority: Ordering priority
        sequence: Registration counter, breaks ties within a priority
    """

    routing_key: RoutingKey
    handler: HookFn
    priority: EventPriority
    sequence: int
    _registry: "HookRegistry | None" = field(default=None, repr=False)

    @property
    def sort_key(self) -> tuple[int, int]:
        return (int(self.priority), self.sequence)

    @property
    def name(self) -> str:
        return getattr(self.handler, "__qualname__", repr(self.handler))

    def unregister(self) -> None:
        """Remove this handler. No-op if already removed."""
        if self._registry is not None:
            self._registry.unregister(self)


class HookRegistry:
    """Per-manager registry of lifecycle handlers.

    Many handlers may listen on the same routing key. Registration is
    thread-safe; lookups return a snapshot, so a handler registered while
    an emission is running does not join that emission.

    Example:
        registry = HookRegistry()
        registry.register(("public.users", EventKind.PRE_INSERT), handler)
    """

    def __init__(self) -> None:
        self._hooks: dict[RoutingKey, list[HookRegistration]] = {}
        self._sequence = itertools.count()
        self._lock = threading.Lock()

    def register(
        self,
        routing_key: RoutingKey,
        handler: HookFn,
        priority: EventPriority = EventPriority.NORMAL,
    ) -> HookRegistration:
        """Register a handler for a routing key.

        Args:
            routing_key: (table identity, event kind)
            handler: Callable receiving the event; may be a coroutine function
            priority: Lower values run first; equal priorities run in
                registration order

        Returns:
            A registration handle that can unregister the handler
        """
        if not callable(handler):
            raise TypeError(f"Hook handler must be callable, got {type(handler).__name__}")

        with self._lock:
            registration = HookRegistration(
                routing_key=routing_key,
                handler=handler,
                priority=EventPriority(priority),
                sequence=next(self._sequence),
                _registry=self,
            )
            chain = self._hooks.setdefault(routing_key, [])
            bisect.insort(chain, registration, key=lambda r: r.sort_key)
        return registration

    def unregister(self, registration: HookRegistration) -> None:
        with self._lock:
            chain = self._hooks.get(registration.routing_key)
            if not chain:
                return
            for index, existing in enumerate(chain):
                if existing is registration:
                    del chain[index]
                    break
            if not chain:
                del self._hooks[registration.routing_key]

    def handlers_for(self, routing_key: RoutingKey) -> list[HookRegistration]:
        """Snapshot of the handlers for a routing key, in execution order."""
        with self._lock:
            return list(self._hooks.get(routing_key, ()))

    def is_registered(self, routing_key: RoutingKey) -> bool:
        with self._lock:
            return bool(self._hooks.get(routing_key))

    def list_routing_keys(self) -> list[RoutingKey]:
        with self._lock:
            return sorted(self._hooks.keys(), key=lambda k: (k[0], k[1].value))

    def clear(self) -> None:
        """Drop all registrations. Primarily for testing."""
        with self._lock:
            self._hooks.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(chain) for chain in self._hooks.values())


def hook(
    registry: HookRegistry,
    routing_key: RoutingKey,
    priority: EventPriority = EventPriority.NORMAL,
) -> Callable[[HookFn], HookFn]:
    """Decorator form of HookRegistry.register().

    Usage:
        @hook(registry, ("public.users", EventKind.PRE_INSERT))
        async def stamp_created(event):
            event.data["created_by"] = "system"
    """

    def decorator(fn: HookFn) -> HookFn:
        registry.register(routing_key, fn, priority)
        return fn

    return decorator
