from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from libs.common.config import get_settings

settings = get_settings()


def _enable_sqlite_transactions(engine: AsyncEngine, foreign_keys: bool) -> None:
    """Give SQLite real BEGIN/SAVEPOINT semantics and FK enforcement.

    The sqlite3 driver otherwise defers BEGIN until the first DML statement,
    which leaves DDL outside the transaction and breaks SAVEPOINTs.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA foreign_keys={'ON' if foreign_keys else 'OFF'}")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(
    url: str, *, echo: bool = False, sqlite_foreign_keys: bool = True
) -> AsyncEngine:
    """Create an async engine for ``url``.

    Pool sizing only applies to server databases. ``sqlite_foreign_keys`` is
    turned off for schema reconciliation, where SQLite table rebuilds would
    otherwise cascade into referencing rows.
    """
    kwargs: dict[str, Any] = {"echo": echo, "future": True}
    if url.startswith("sqlite"):
        engine = create_async_engine(url, **kwargs)
        _enable_sqlite_transactions(engine, foreign_keys=sqlite_foreign_keys)
        return engine

    kwargs.update(
        pool_pre_ping=True,  # Test connections before using
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
    )
    return create_async_engine(url, **kwargs)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


# echo=True for local dev to see SQL queries
engine = build_engine(settings.DATABASE_URL, echo=(settings.ENVIRONMENT == "local"))

AsyncSessionLocal = build_sessionmaker(engine)
