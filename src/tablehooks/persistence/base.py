"""Shared SQLAlchemy Core store.

Both shipped adapters issue the same Core statements
(INSERT/UPDATE/DELETE ... RETURNING, SELECT); they differ only in how
statements are grouped into transactions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Column, Table, delete, insert, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.sql.elements import ColumnElement

from tablehooks.persistence.adapter import OperationType, Row, StoreOperation

logger = logging.getLogger(__name__)


class SQLAlchemyStore:
    """RecordStore over a SQLAlchemy Engine.

    Unbound, every call runs in its own short ``engine.begin()`` block and
    commits immediately. A store bound to a Connection (see bind()) issues
    its statements on that connection and leaves commit/rollback to
    whoever owns it.
    """

    supports_transactions = False

    def __init__(self, engine: Engine, connection: Connection | None = None) -> None:
        self.engine = engine
        self._conn = connection

    def bind(self, connection: Connection) -> SQLAlchemyStore:
        """Return a store of the same type issuing statements on ``connection``."""
        return type(self)(self.engine, connection=connection)

    @property
    def is_bound(self) -> bool:
        return self._conn is not None

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        if self._conn is not None:
            yield self._conn
            return
        with self.engine.begin() as conn:
            yield conn

    # ------------------------------------------------------------------
    # Schema introspection
    # ------------------------------------------------------------------

    def table_identity(self, table: Table) -> str:
        return f"{table.schema or 'public'}.{table.name}"

    def primary_key_columns(self, table: Table) -> list[Column]:
        return list(table.primary_key.columns)

    def columns_of(self, table: Table) -> dict[str, Column]:
        return dict(table.c.items())

    def _to_row(self, table: Table, row) -> Row:
        """Convert a result Row to a dict keyed by column key."""
        mapping = row._mapping
        return {key: mapping[column] for key, column in table.c.items()}

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def insert_row(self, table: Table, payload: Row) -> list[Row]:
        with self._connection() as conn:
            return self._insert(conn, table, payload)

    def update_rows(self, table: Table, where: ColumnElement[bool], payload: Row) -> list[Row]:
        with self._connection() as conn:
            return self._update(conn, table, where, payload)

    def delete_rows(self, table: Table, where: ColumnElement[bool]) -> None:
        with self._connection() as conn:
            self._delete(conn, table, where)

    def select_one(self, table: Table, where: ColumnElement[bool]) -> Row | None:
        with self._connection() as conn:
            row = conn.execute(select(table).where(where)).first()
        return self._to_row(table, row) if row is not None else None

    def batch_execute(self, operations: list[StoreOperation]) -> list[list[Row]]:
        """Execute several statements in one connection block.

        Returns one result list per operation (empty for DELETE).
        """
        results: list[list[Row]] = []
        with self._connection() as conn:
            for op in operations:
                if op.op_type == OperationType.INSERT:
                    results.append(self._insert(conn, op.table, op.payload))
                elif op.op_type == OperationType.UPDATE:
                    results.append(self._update(conn, op.table, op.where, op.payload))
                elif op.op_type == OperationType.DELETE:
                    self._delete(conn, op.table, op.where)
                    results.append([])
                else:
                    raise ValueError(f"Unsupported operation type: {op.op_type}")
        return results

    def _insert(self, conn: Connection, table: Table, payload: Row) -> list[Row]:
        logger.debug("INSERT into %s", table.name)
        stmt = insert(table).values(dict(payload)).returning(*table.c)
        return [self._to_row(table, row) for row in conn.execute(stmt).all()]

    def _update(
        self,
        conn: Connection,
        table: Table,
        where: ColumnElement[bool] | None,
        payload: Row,
    ) -> list[Row]:
        if where is None:
            raise ValueError(f"UPDATE on {table.name} requires a row selector")
        if not payload:
            # Nothing to SET; report the selected rows unchanged
            rows = conn.execute(select(table).where(where)).all()
            return [self._to_row(table, row) for row in rows]

        logger.debug("UPDATE %s set %s", table.name, sorted(payload))
        stmt = update(table).where(where).values(dict(payload)).returning(*table.c)
        return [self._to_row(table, row) for row in conn.execute(stmt).all()]

    def _delete(self, conn: Connection, table: Table, where: ColumnElement[bool] | None) -> None:
        if where is None:
            raise ValueError(f"DELETE on {table.name} requires a row selector")
        logger.debug("DELETE from %s", table.name)
        conn.execute(delete(table).where(where))
