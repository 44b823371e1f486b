"""SQLite record store.

Non-transactional flavor: each statement commits on its own, and
batch_execute() groups a multi-row mutation into a single batch. When a
post-hook cancels, EventManager undoes the write with a compensating
statement (delete after insert, snapshot restore after update, re-insert
after delete). That undo is not atomic with the original write.
"""

import sqlite3

from sqlalchemy.engine import Connection, Engine

from tablehooks.persistence.base import SQLAlchemyStore

# INSERT/UPDATE/DELETE ... RETURNING
MIN_SQLITE_VERSION = (3, 35, 0)


class SQLiteStore(SQLAlchemyStore):
    """Record store without native transactions (compensating rollback)."""

    supports_transactions = False

    def __init__(self, engine: Engine, connection: Connection | None = None) -> None:
        if sqlite3.sqlite_version_info < MIN_SQLITE_VERSION:
            raise RuntimeError(
                f"SQLite {sqlite3.sqlite_version} does not support RETURNING; "
                f"{'.'.join(map(str, MIN_SQLITE_VERSION))} or newer is required"
            )
        super().__init__(engine, connection)
