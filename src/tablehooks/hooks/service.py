"""Hook execution service for tablehooks.

Runs the handlers registered for a routing key against a single event,
one after the other, awaiting coroutine handlers before starting the next.
"""

import inspect
import logging

from tablehooks.hooks.registry import HookRegistry, RoutingKey
from tablehooks.hooks.types import CancellableEvent

logger = logging.getLogger(__name__)


class HookService:
    """Emits lifecycle events through a HookRegistry.

    Handlers run sequentially in priority order. Cancelling the event does
    not stop the chain: every registered handler sees the event, and the
    caller reads the final cancellation state from the returned instance.
    """

    def __init__(self, registry: HookRegistry) -> None:
        self.registry = registry

    async def emit(self, routing_key: RoutingKey, event: CancellableEvent) -> CancellableEvent:
        """Run every handler for ``routing_key`` against ``event``.

        Args:
            routing_key: (table identity, event kind)
            event: The event instance for this emission

        Returns:
            The same event instance, after all handlers ran. With no
            handlers registered the event is returned untouched.
        """
        registrations = self.registry.handlers_for(routing_key)
        if not registrations:
            return event

        logger.debug(
            "Emitting %s for %s to %d handler(s)",
            routing_key[1].value,
            routing_key[0],
            len(registrations),
        )

        for registration in registrations:
            try:
                result = registration.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                # A failing handler vetoes the mutation; the chain continues
                logger.error(
                    "%s hook '%s' failed: %s",
                    routing_key[1].value,
                    registration.name,
                    e,
                )
                event.cancel(f"Hook '{registration.name}' failed: {e}")

        return event
