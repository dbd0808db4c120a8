"""Database utilities for the local history cache."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import MetaData, inspect, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base with consistent naming conventions."""

    metadata = MetaData()


class Database:
    """Thin wrapper managing the SQLAlchemy async engine and sessions."""

    def __init__(self, database_url: str):
        self._engine: AsyncEngine = create_async_engine(database_url, future=True)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    async def create_all(self) -> None:
        """Create database tables if they do not yet exist."""

        # Importing the models registers their tables on ``Base.metadata``.
        from . import db_models  # noqa: F401

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
            await connection.run_sync(self._apply_schema_migrations)

    @staticmethod
    def _apply_schema_migrations(sync_connection) -> None:
        """Bring history tables written by older releases up to date."""

        inspector = inspect(sync_connection)
        if "history" not in inspector.get_table_names():
            return

        legacy_columns = inspector.get_columns("history")
        existing_columns = {column["name"] for column in legacy_columns}

        def _ensure_column(name: str, ddl: str, init_sql: str | None = None) -> None:
            if name in existing_columns:
                return
            sync_connection.execute(text(ddl))
            if init_sql:
                sync_connection.execute(text(init_sql))
            existing_columns.add(name)

        _ensure_column(
            "history_id",
            "ALTER TABLE history ADD COLUMN history_id INTEGER",
            (
                "UPDATE history SET history_id = json_extract(raw_json, '$.id') "
                "WHERE history_id IS NULL AND raw_json IS NOT NULL"
            ),
        )
        _ensure_column(
            "synced_at",
            "ALTER TABLE history ADD COLUMN synced_at DATETIME",
        )

        # Older caches declare trakt_id NOT NULL, which rejects plays without a
        # content id. SQLite cannot drop a constraint, so rebuild the table.
        if any(
            column["name"] == "trakt_id" and not column["nullable"]
            for column in legacy_columns
        ):
            history = Base.metadata.tables["history"]
            copied = ", ".join(
                name for name in history.columns.keys() if name in existing_columns
            )
            sync_connection.execute(text("ALTER TABLE history RENAME TO history_legacy"))
            history.create(sync_connection)
            sync_connection.execute(
                text(
                    f"INSERT INTO history ({copied}) "
                    f"SELECT {copied} FROM history_legacy"
                )
            )
            sync_connection.execute(text("DROP TABLE history_legacy"))

    async def dispose(self) -> None:
        """Dispose of the underlying database engine."""

        await self._engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Provide a transactional scope around a series of operations."""

        async with self.session_factory() as session:
            yield session
