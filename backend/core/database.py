"""Database access

Async engine and session setup, the portable GUID column type, and small
Result-returning helpers the routers use for lookups and commits.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, TypeVar
from uuid import UUID as PyUUID

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator, CHAR
from sqlalchemy.dialects.postgresql import UUID as PG_UUID, insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from core.config import settings
from core.errors import (
    AppError,
    Ok,
    Err,
    Result,
    not_found,
    DatabaseErrorMapper,
)
from core.logging import db_logger

T = TypeVar("T")

log = db_logger()


class GUID(TypeDecorator):
    """Platform-agnostic GUID type.

    Uses PostgreSQL's UUID type when available, otherwise stores as CHAR(32).
    """
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(32))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value
        if isinstance(value, PyUUID):
            return value.hex
        return PyUUID(value).hex

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, PyUUID):
            return value
        return PyUUID(value)


def _install_sqlite_listeners(engine: AsyncEngine) -> None:
    """Enforce foreign keys and take the write lock when a transaction begins.

    pysqlite's own BEGIN handling is disabled so that every transaction opens
    with BEGIN IMMEDIATE; concurrent writers then queue on the busy timeout
    instead of failing when a read lock is upgraded.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    engine_kwargs: dict = {"echo": echo}

    if url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"timeout": settings.SQLITE_BUSY_TIMEOUT}
    else:
        engine_kwargs.update({
            "pool_pre_ping": True,
            "pool_size": 5,
            "max_overflow": 10,
        })

    engine = create_async_engine(url, **engine_kwargs)
    if url.startswith("sqlite"):
        _install_sqlite_listeners(engine)
    return engine


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.LOG_SQL)

AsyncSessionLocal = build_sessionmaker(engine)

Base = declarative_base()

_db_mapper = DatabaseErrorMapper("database")


async def get_db() -> AsyncIterator[AsyncSession]:
    """Request-scoped session; uncommitted work is rolled back on close."""
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Session for scripts running outside a request."""
    async with AsyncSessionLocal() as session:
        yield session


async def init_models(bind: AsyncEngine | None = None) -> None:
    """Create any missing tables registered on ``Base``."""
    import models  # noqa: F401  registers every mapped table

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log.info("database_initialized", tables=len(Base.metadata.tables))


def dialect_insert(session: AsyncSession, model):
    """INSERT construct with ON CONFLICT support for the session's backend."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise NotImplementedError(f"Upserts are not supported on {dialect}")


async def fetch_one(
    session: AsyncSession,
    model: type[T],
    id: PyUUID,
    entity_name: str | None = None,
) -> Result[T, AppError]:
    """Primary-key lookup; Err(E4010) when the row does not exist."""
    try:
        entity = await session.get(model, id)
    except SQLAlchemyError as e:
        return Err(_db_mapper.map_exception(e))
    if entity is None:
        return not_found(entity_name or model.__name__, id, origin="database.fetch_one")
    return Ok(entity)


async def commit(session: AsyncSession) -> Result[None, AppError]:
    """Commit the request's unit of work, rolling back on failure."""
    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        log.warning("commit_failed", error_type=type(e).__name__)
        return Err(_db_mapper.map_exception(e))
    return Ok(None)
