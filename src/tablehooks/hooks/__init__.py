"""tablehooks mutation lifecycle hook system.

Provides extension points that run around every mutation issued through
an EventManager:
- pre-insert / pre-update: may modify the payload, may cancel (no write happens)
- post-insert / post-update: see the persisted row, may cancel (write is rolled back
  when rollback_on_cancel is enabled)
- pre-delete / post-delete: see the row being removed, same cancel semantics

Usage:
    from tablehooks.hooks import EventPriority

    async def require_email(event):
        if not event.data.get("email"):
            event.cancel("email is required")

    manager.put(users, "pre-insert", require_email, EventPriority.HIGH)
"""

from tablehooks.hooks.registry import HookFn, HookRegistration, HookRegistry, RoutingKey, hook
from tablehooks.hooks.service import HookService
from tablehooks.hooks.types import (
    EVENT_CLASSES,
    CancellableEvent,
    EventKind,
    EventPriority,
    PostDeleteEvent,
    PostInsertEvent,
    PostUpdateEvent,
    PreDeleteEvent,
    PreInsertEvent,
    PreUpdateEvent,
)

__all__ = [
    "EVENT_CLASSES",
    "CancellableEvent",
    "EventKind",
    "EventPriority",
    "HookFn",
    "HookRegistration",
    "HookRegistry",
    "HookService",
    "PostDeleteEvent",
    "PostInsertEvent",
    "PostUpdateEvent",
    "PreDeleteEvent",
    "PreInsertEvent",
    "PreUpdateEvent",
    "RoutingKey",
    "hook",
]
