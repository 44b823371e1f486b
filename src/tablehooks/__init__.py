"""tablehooks - lifecycle hooks around table mutations.

Register handlers per table and event kind, then issue inserts, updates
and deletes through an EventManager:

    from tablehooks import EventManager, SQLiteStore

    manager = EventManager(SQLiteStore(engine))
    manager.put(users, "post-insert", audit)
    response = await manager.insert(users, {"id": 1, "name": "Ada"})
"""

from tablehooks.core import ArrayStrategy, Response, ResponseType, deep_merge
from tablehooks.errors import EventRollback, TableHooksError
from tablehooks.hooks import (
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
from tablehooks.manager import EventManager, EventManagerConfig
from tablehooks.persistence import (
    PostgreSQLStore,
    RecordStore,
    SQLiteStore,
    TransactionalRecordStore,
    create_store,
)

__version__ = "0.1.0"

__all__ = [
    "ArrayStrategy",
    "CancellableEvent",
    "EventKind",
    "EventManager",
    "EventManagerConfig",
    "EventPriority",
    "EventRollback",
    "PostDeleteEvent",
    "PostInsertEvent",
    "PostUpdateEvent",
    "PostgreSQLStore",
    "PreDeleteEvent",
    "PreInsertEvent",
    "PreUpdateEvent",
    "RecordStore",
    "Response",
    "ResponseType",
    "SQLiteStore",
    "TableHooksError",
    "TransactionalRecordStore",
    "create_store",
    "deep_merge",
]
