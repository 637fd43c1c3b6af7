from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from crafter.config import get_database_settings


class Base(DeclarativeBase):
  pass


# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
JSONDocument = JSON(none_as_null=True).with_variant(postgresql.JSONB(none_as_null=True), "postgresql")

engine = None
SessionLocal = None


def utc_now() -> datetime:
  """Return the current time as a timezone-aware UTC datetime."""
  return datetime.now(UTC)


def database_url() -> str | None:
  """Build the SQLAlchemy database URL while keeping settings evaluation minimal."""
  settings = get_database_settings()
  url = settings.pg_dsn
  if url and url.startswith("postgresql://"):
    url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

  return url


def get_db_engine():  # type: ignore
  global engine
  settings = get_database_settings()
  url = database_url()
  if engine is None and url:
    connect_args: dict[str, Any] = {}
    if url.startswith("postgresql+asyncpg://"):
      connect_args["timeout"] = settings.pg_connect_timeout
    engine = create_async_engine(url, echo=settings.debug, pool_pre_ping=True, connect_args=connect_args)
  return engine


def get_session_factory():  # type: ignore
  global SessionLocal
  if SessionLocal is None:
    db_engine = get_db_engine()
    if db_engine:
      SessionLocal = async_sessionmaker(bind=db_engine, expire_on_commit=False, class_=AsyncSession)
  return SessionLocal


def dialect_insert(session: AsyncSession, model: type[Base]) -> Any:
  """Return an INSERT construct that supports ON CONFLICT for the session's dialect."""
  dialect_name = session.get_bind().dialect.name
  if dialect_name == "sqlite":
    return sqlite.insert(model)
  return postgresql.insert(model)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency to get a database session."""
  session_factory = get_session_factory()
  if session_factory is None:
    raise RuntimeError("Database connection is not configured (CRAFTER_PG_DSN is missing).")

  async with session_factory() as session:
    try:
      yield session
    finally:
      await session.close()
