"""Shared fixtures: file-backed SQLite engines and table descriptors."""

import pytest
from sqlalchemy import JSON, Column, Integer, MetaData, String, Table, create_engine, func, select

from tablehooks.persistence.postgresql import PostgreSQLStore
from tablehooks.persistence.sqlite import SQLiteStore


@pytest.fixture
def metadata():
    return MetaData()


@pytest.fixture
def users(metadata):
    """Single-column primary key with a JSON attribute column."""
    return Table(
        "users",
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=False),
        Column("name", String(100)),
        Column("email", String(200)),
        Column("meta", JSON),
    )


@pytest.fixture
def memberships(metadata):
    """Composite primary key."""
    return Table(
        "memberships",
        metadata,
        Column("org_id", Integer, primary_key=True, autoincrement=False),
        Column("user_id", Integer, primary_key=True, autoincrement=False),
        Column("role", String(50)),
    )


@pytest.fixture
def audit_log(metadata):
    """No primary key declared."""
    return Table(
        "audit_log",
        metadata,
        Column("message", String(200)),
        Column("level", String(20)),
    )


@pytest.fixture
def engine(tmp_path, metadata, users, memberships, audit_log):
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}")
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sqlite_store(engine):
    return SQLiteStore(engine)


@pytest.fixture
def pg_store(engine):
    """Transactional store over the SQLite engine (dialect-neutral Core)."""
    return PostgreSQLStore(engine)


@pytest.fixture
def count_rows(engine):
    def count(table):
        with engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(table)).scalar_one()

    return count


@pytest.fixture
def fetch_rows(engine):
    def fetch(table):
        with engine.connect() as conn:
            rows = conn.execute(select(table).order_by(*table.primary_key.columns)).all()
        return [dict(row._mapping) for row in rows]

    return fetch
