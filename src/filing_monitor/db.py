"""Database integration utilities."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool

from .errors import ConfigurationError


metadata = MetaData()

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


filings = Table(
    "filings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("category", String(16), nullable=False),
    Column("published_date", String(32), nullable=False),
    Column("document_link", String(1024), nullable=False),
    Column("recorded_at", DateTime(timezone=True), nullable=False, default=_utcnow),
    UniqueConstraint("category", "published_date", "document_link", name="uq_filing_identity"),
)

holding_snapshots = Table(
    "holding_snapshots",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("category", String(16), nullable=False, index=True),
    Column("position", Integer, nullable=False),
    Column("issuer_name", String(512), nullable=False),
    Column("share_count", BigInteger, nullable=False),
    Column("reported_value", Numeric(24, 4), nullable=False),
    Column("recorded_at", DateTime(timezone=True), nullable=False, default=_utcnow),
)

change_log = Table(
    "change_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("published_date", String(32), nullable=False),
    Column("category", String(16), nullable=False),
    Column("issuer_name", String(512), nullable=False),
    Column("previous_share_count", BigInteger, nullable=True),
    Column("share_count", BigInteger, nullable=False),
    Column("reported_value", Numeric(24, 4), nullable=False),
    Column("classification", String(16), nullable=False),
    Column("document_link", String(1024), nullable=False),
    Column("recorded_at", DateTime(timezone=True), nullable=False, default=_utcnow),
)


def create_db_engine(database_url: str) -> Engine:
    """Create a SQLAlchemy engine."""

    LOGGER.debug("Creating database engine")
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # A single shared connection keeps the in-memory database alive across threads.
        return create_engine(
            database_url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, future=True, pool_pre_ping=True)


@contextmanager
def session(engine: Engine) -> Iterator[Connection]:
    """Provide a transactional scope around a series of operations."""

    with engine.begin() as conn:
        yield conn


def ensure_schema(engine: Engine) -> None:
    """Create tables if they do not exist."""

    LOGGER.debug("Ensuring database schema is present")
    metadata.create_all(engine)


def insert_if_absent(conn: Connection, table: Table, values: dict[str, Any]) -> bool:
    """Insert ``values`` unless a unique constraint already holds them.

    Returns ``True`` when this call created the row.
    """

    dialect = conn.dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(table).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite_insert(table).values(**values).on_conflict_do_nothing()
    else:
        raise ConfigurationError(f"Unsupported database dialect: {dialect}")
    result = conn.execute(stmt)
    return result.rowcount == 1


__all__ = [
    "change_log",
    "create_db_engine",
    "ensure_schema",
    "filings",
    "holding_snapshots",
    "insert_if_absent",
    "metadata",
    "session",
]
