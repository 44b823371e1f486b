"""Persistence layer - record store adapters and key resolution."""

from tablehooks.persistence.adapter import (
    OperationType,
    RecordStore,
    Row,
    StoreOperation,
    TransactionalRecordStore,
)
from tablehooks.persistence.base import SQLAlchemyStore
from tablehooks.persistence.config import create_store, engine_url
from tablehooks.persistence.keys import KeyResolution, PrimaryKeyResolver, Selection
from tablehooks.persistence.postgresql import PostgreSQLStore
from tablehooks.persistence.sqlite import SQLiteStore

__all__ = [
    "KeyResolution",
    "OperationType",
    "PostgreSQLStore",
    "PrimaryKeyResolver",
    "RecordStore",
    "Row",
    "SQLAlchemyStore",
    "SQLiteStore",
    "Selection",
    "StoreOperation",
    "TransactionalRecordStore",
    "create_store",
    "engine_url",
]
