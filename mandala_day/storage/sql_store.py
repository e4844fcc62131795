"""SQLAlchemy-backed key-value store.

A single ``kv_records`` table holds every persisted record. SQLAlchemy's
synchronous engine is driven from worker threads via ``asyncio.to_thread`` so
the event loop never blocks on disk I/O.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import DateTime, String, Text, create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from mandala_day.core.errors import PersistenceError


class Base(DeclarativeBase):
    """Base class for key-value store models."""


class KeyValueRecord(Base):
    """One persisted record.

    Stores:
    - key: Record key (e.g. "daily_instances")
    - value: JSON-encoded payload
    - updated_at: Timestamp of the last write
    """

    __tablename__ = "kv_records"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


def create_store_engine(database_url: str) -> Engine:
    """Create an engine and make sure the table exists."""
    connect_args = {}
    if "sqlite" in database_url.lower():
        connect_args = {"check_same_thread": False}
    else:
        logger.info(f"Using non-SQLite database for key-value store: {database_url}")

    engine = create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)
    Base.metadata.create_all(engine)
    return engine


class SqlKeyValueStore:
    """Key-value store persisted in a relational database."""

    def __init__(self, database_url: str | None = None, engine: Engine | None = None):
        if engine is None:
            if database_url is None:
                raise ValueError("SqlKeyValueStore needs a database_url or an engine")
            engine = create_store_engine(database_url)
        else:
            Base.metadata.create_all(engine)
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    def _get(self, key: str) -> str | None:
        with self._session_factory() as session:
            record = session.execute(select(KeyValueRecord).where(KeyValueRecord.key == key)).scalar_one_or_none()
            return record.value if record else None

    def _set(self, key: str, value: str) -> None:
        with self._session_factory() as session, session.begin():
            record = session.get(KeyValueRecord, key)
            if record is None:
                session.add(KeyValueRecord(key=key, value=value))
            else:
                record.value = value
                record.updated_at = datetime.now(timezone.utc)

    def _remove_many(self, keys: list[str]) -> None:
        with self._session_factory() as session, session.begin():
            session.execute(delete(KeyValueRecord).where(KeyValueRecord.key.in_(keys)))

    async def get(self, key: str) -> str | None:
        try:
            return await asyncio.to_thread(self._get, key)
        except SQLAlchemyError as e:
            raise PersistenceError(key, "get", e) from e

    async def set(self, key: str, value: str) -> None:
        try:
            await asyncio.to_thread(self._set, key, value)
        except SQLAlchemyError as e:
            raise PersistenceError(key, "set", e) from e

    async def remove(self, key: str) -> None:
        await self.remove_many([key])

    async def remove_many(self, keys: list[str]) -> None:
        if not keys:
            return
        try:
            await asyncio.to_thread(self._remove_many, keys)
        except SQLAlchemyError as e:
            raise PersistenceError(",".join(keys), "remove", e) from e

    async def close(self) -> None:
        await asyncio.to_thread(self._engine.dispose)
