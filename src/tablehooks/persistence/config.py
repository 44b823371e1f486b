"""Store factory: pick the adapter matching an engine's dialect."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url

if TYPE_CHECKING:
    from tablehooks.persistence.adapter import RecordStore

SUPPORTED_DIALECTS = ("sqlite", "postgresql")


def engine_url(url: str | URL) -> URL:
    """Parse ``url``, defaulting bare postgresql:// URLs to psycopg (v3).

    The postgresql extra installs psycopg, not psycopg2, which is what
    SQLAlchemy would otherwise pick for a driverless URL.
    """
    parsed = make_url(url)
    if parsed.drivername == "postgresql":
        parsed = parsed.set(drivername="postgresql+psycopg")
    return parsed


def create_store(url_or_engine: str | URL | Engine, **engine_kwargs: Any) -> RecordStore:
    """Create the record store for a database URL or an existing engine.

    Args:
        url_or_engine: Database URL, or an Engine built by the caller
        **engine_kwargs: Passed to sqlalchemy.create_engine() for URLs

    Returns:
        SQLiteStore for sqlite engines, PostgreSQLStore for postgresql
        engines. A URL-built engine connects lazily.

    Raises:
        ValueError: For other dialects, or engine_kwargs given with an Engine
    """
    if isinstance(url_or_engine, Engine):
        if engine_kwargs:
            raise ValueError("engine_kwargs only apply when a URL is given")
        engine = url_or_engine
        dialect = engine.dialect.name
    else:
        url = engine_url(url_or_engine)
        dialect = url.get_backend_name()
        if dialect not in SUPPORTED_DIALECTS:
            raise ValueError(f"Unsupported database dialect: {dialect}")
        engine = create_engine(url, **engine_kwargs)

    if dialect == "sqlite":
        from tablehooks.persistence.sqlite import SQLiteStore

        return SQLiteStore(engine)

    if dialect == "postgresql":
        from tablehooks.persistence.postgresql import PostgreSQLStore

        return PostgreSQLStore(engine)

    raise ValueError(f"Unsupported database dialect: {dialect}")
