"""PostgreSQL record store.

Transactional flavor: EventManager runs the whole
pre-hook -> write -> post-hook sequence inside run_in_transaction(), so a
post-hook cancel aborts the write atomically instead of issuing a
compensating statement.

URL-built engines use the psycopg (v3) driver, see engine_url(). The
statements are plain SQLAlchemy Core, so any engine whose dialect
supports RETURNING and transactional DML works as well.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tablehooks.persistence.base import SQLAlchemyStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PostgreSQLStore(SQLAlchemyStore):
    """Record store with native transactions.

    The engine is synchronous: run_in_transaction() keeps one connection
    checked out while the hooks of the operation are awaited, and its
    statements block the event loop. Two concurrent mutations on one loop
    that contend for the same row lock stall the loop until the lock wait
    times out, so run contending writers on separate threads or loops.
    """

    supports_transactions = True

    async def run_in_transaction(self, fn: Callable[[PostgreSQLStore], Awaitable[T]]) -> T:
        """Run ``fn`` against a store bound to one transaction.

        Commits when ``fn`` returns; rolls back and re-raises when it raises.
        A store that is already bound joins the enclosing transaction.
        """
        if self.is_bound:
            return await fn(self)

        with self.engine.connect() as conn:
            with conn.begin():
                logger.debug("Transaction started")
                result = await fn(self.bind(conn))
            logger.debug("Transaction committed")
        return result
