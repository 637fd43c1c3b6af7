"""Shared fixtures: a file-backed SQLite database and an ASGI client wired to it."""

from __future__ import annotations

import os

# Ensure required settings are available before importing the app.
os.environ.setdefault("CRAFTER_ALLOWED_ORIGINS", "http://localhost")
os.environ["CRAFTER_TASK_SECRET"] = "test-task-secret"

from datetime import datetime  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

import crafter.schema  # noqa: E402, F401
from crafter.api.deps import get_jobs_repo  # noqa: E402
from crafter.config import WorkerSettings  # noqa: E402
from crafter.core.database import Base, get_db  # noqa: E402
from crafter.main import app  # noqa: E402
from crafter.schema.quotas import IterationPack, Subscription, UsageRecord  # noqa: E402
from crafter.storage.postgres_jobs_repo import PostgresJobsRepository  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
async def sqlite_engine(anyio_backend, tmp_path):
  engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'crafter.db'}")
  async with engine.begin() as connection:
    await connection.run_sync(Base.metadata.create_all)
  yield engine
  await engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine) -> async_sessionmaker[AsyncSession]:
  return async_sessionmaker(bind=sqlite_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def jobs_repo(session_factory) -> PostgresJobsRepository:
  return PostgresJobsRepository(session_factory=session_factory)


@pytest.fixture
async def api_client(anyio_backend, session_factory, jobs_repo):
  async def _get_db():
    async with session_factory() as session:
      yield session

  app.dependency_overrides[get_db] = _get_db
  app.dependency_overrides[get_jobs_repo] = lambda: jobs_repo
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()


@pytest.fixture
def worker_settings() -> WorkerSettings:
  return WorkerSettings(
    environment="test",
    debug=False,
    log_max_bytes=1024,
    log_backup_count=0,
    idle_seconds=3.0,
    error_backoff_seconds=5.0,
    stale_job_seconds=900,
    stale_sweep_interval_seconds=60.0,
    generation_max_attempts=2,
    generation_base_delay_seconds=1.0,
    generation_timeout_seconds=30.0,
    generation_max_tokens=1024,
    default_model="claude",
    claude_model="claude-test",
    gemini_model="gemini-test",
    anthropic_api_key=None,
    gemini_api_key=None,
  )


class LedgerSeeder:
  """Insert subscriptions, usage rows and packs directly for ledger scenarios."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._session_factory = session_factory

  async def subscription(self, user_id: str, plan_type: str = "free", *, at: datetime) -> None:
    async with self._session_factory() as session:
      session.add(Subscription(user_id=user_id, plan_type=plan_type, created_at=at, updated_at=at))
      await session.commit()

  async def usage(self, user_id: str, month: str, iterations_used: int, *, at: datetime) -> None:
    async with self._session_factory() as session:
      session.add(UsageRecord(user_id=user_id, month=month, iterations_used=iterations_used, extra_iterations_purchased=0, created_at=at, updated_at=at))
      await session.commit()

  async def pack(self, pack_id: str, user_id: str, month: str, remaining: int, *, pack_size: int = 10, purchased_at: datetime) -> None:
    async with self._session_factory() as session:
      session.add(IterationPack(id=pack_id, user_id=user_id, pack_size=pack_size, valid_for_month=month, iterations_remaining=remaining, status="active", purchased_at=purchased_at))
      await session.commit()

  async def get_pack(self, pack_id: str) -> IterationPack:
    async with self._session_factory() as session:
      return await session.get(IterationPack, pack_id)

  async def get_usage(self, user_id: str, month: str) -> UsageRecord | None:
    from sqlalchemy import select

    async with self._session_factory() as session:
      return (await session.execute(select(UsageRecord).where(UsageRecord.user_id == user_id, UsageRecord.month == month))).scalar_one_or_none()


@pytest.fixture
def ledger_seed(session_factory) -> LedgerSeeder:
  return LedgerSeeder(session_factory)
