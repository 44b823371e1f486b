"""RecordStore Protocol: the narrow store interface EventManager consumes."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, TypeVar, runtime_checkable

from sqlalchemy import Column, Table
from sqlalchemy.sql.elements import ColumnElement

T = TypeVar("T")

Row = dict[str, Any]


class OperationType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class StoreOperation:
    """A single statement inside a batch_execute() call.

    Attributes:
        op_type: INSERT, UPDATE or DELETE
        table: Target table
        payload: Column key -> value (INSERT/UPDATE)
        where: Row selector (UPDATE/DELETE)
    """

    op_type: OperationType
    table: Table
    payload: Row = field(default_factory=dict)
    where: ColumnElement[bool] | None = None


@runtime_checkable
class RecordStore(Protocol):
    """Interface every store adapter must implement.

    Rows are plain dicts keyed by column key. Selectors are SQLAlchemy
    boolean clauses built by PrimaryKeyResolver.
    """

    supports_transactions: bool

    def table_identity(self, table: Table) -> str: ...

    def primary_key_columns(self, table: Table) -> list[Column]: ...

    def columns_of(self, table: Table) -> dict[str, Column]: ...

    def insert_row(self, table: Table, payload: Row) -> list[Row]: ...

    def update_rows(
        self, table: Table, where: ColumnElement[bool], payload: Row
    ) -> list[Row]: ...

    def delete_rows(self, table: Table, where: ColumnElement[bool]) -> None: ...

    def select_one(self, table: Table, where: ColumnElement[bool]) -> Row | None: ...

    def batch_execute(self, operations: list[StoreOperation]) -> list[list[Row]]: ...


@runtime_checkable
class TransactionalRecordStore(RecordStore, Protocol):
    """A store with native transactions.

    run_in_transaction() calls ``fn`` with a store bound to a fresh
    transaction, commits when ``fn`` returns and rolls back when it raises
    (the exception propagates).
    """

    async def run_in_transaction(
        self, fn: Callable[["TransactionalRecordStore"], Awaitable[T]]
    ) -> T: ...
