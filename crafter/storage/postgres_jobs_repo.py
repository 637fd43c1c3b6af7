"""Postgres-backed repository for generation jobs using SQLAlchemy."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crafter.core.database import get_session_factory, utc_now
from crafter.core.errors import InvalidStateError, NotFoundError
from crafter.jobs.models import JobRecord, transition_source
from crafter.schema.jobs import Job
from crafter.storage.jobs_repo import JobsRepository
from crafter.utils.db_retry import execute_with_retry

logger = logging.getLogger(__name__)

# A claim can lose the compare-and-swap to another worker; re-select a few times before reporting an empty queue.
_CLAIM_ATTEMPTS = 3


class PostgresJobsRepository(JobsRepository):
  """Persist jobs to Postgres using SQLAlchemy."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: JobRecord) -> None:
    async def _create() -> None:
      async with self._session_factory() as session:
        session.add(
          Job(
            job_id=record.job_id,
            mode=record.mode,
            input=record.input,
            model=record.model,
            status=record.status,
            output=record.output,
            error=record.error,
            created_at=record.created_at,
            updated_at=record.updated_at,
            started_at=record.started_at,
            completed_at=record.completed_at,
          )
        )
        await session.commit()

    await execute_with_retry(operation_name="jobs.create", func=_create)

  async def get_job(self, job_id: str) -> JobRecord:
    async def _get() -> JobRecord:
      async with self._session_factory() as session:
        row = await session.get(Job, job_id)
        if row is None:
          raise NotFoundError(f"Job {job_id} not found")
        return self._model_to_record(row)

    return await execute_with_retry(operation_name="jobs.get", func=_get)

  async def claim_next(self) -> JobRecord | None:
    claimable = transition_source("processing")

    async def _claim() -> JobRecord | None:
      async with self._session_factory() as session:
        for _ in range(_CLAIM_ATTEMPTS):
          async with session.begin():
            # SKIP LOCKED lets concurrent claimers pass over a candidate another transaction holds.
            candidate_stmt = select(Job.job_id).where(Job.status == claimable).order_by(Job.created_at.asc(), Job.job_id.asc()).limit(1).with_for_update(skip_locked=True)
            candidate = (await session.execute(candidate_stmt)).scalar_one_or_none()
            if candidate is None:
              return None

            now = utc_now()
            claim_stmt = update(Job).where(Job.job_id == candidate, Job.status == claimable).values(status="processing", started_at=now, updated_at=now).execution_options(synchronize_session=False)
            result = await session.execute(claim_stmt)
            if result.rowcount == 1:
              row = await session.get(Job, candidate)
              return self._model_to_record(row)

          logger.debug("Lost claim race for job %s; re-selecting.", candidate)
        return None

    return await execute_with_retry(operation_name="jobs.claim_next", func=_claim)

  async def complete_job(self, job_id: str, output: dict[str, Any]) -> JobRecord:
    return await self._transition(job_id, target="done", values={"output": output, "error": None}, operation_name="jobs.complete")

  async def fail_job(self, job_id: str, error_message: str) -> JobRecord:
    return await self._transition(job_id, target="error", values={"error": error_message, "output": None}, operation_name="jobs.fail")

  async def cancel_job(self, job_id: str) -> JobRecord:
    return await self._transition(job_id, target="cancelled", values={}, operation_name="jobs.cancel")

  async def fail_stale_jobs(self, *, started_before: datetime, error_message: str) -> list[str]:
    async def _sweep() -> list[str]:
      async with self._session_factory() as session:
        async with session.begin():
          stale_stmt = select(Job.job_id).where(Job.status == "processing", Job.started_at < started_before).order_by(Job.started_at.asc()).with_for_update(skip_locked=True)
          stale_ids = list((await session.execute(stale_stmt)).scalars().all())
          swept: list[str] = []
          now = utc_now()
          for job_id in stale_ids:
            # Re-check the status per row so a job completed meanwhile is left alone.
            stmt = update(Job).where(Job.job_id == job_id, Job.status == "processing").values(status="error", error=error_message, completed_at=now, updated_at=now).execution_options(synchronize_session=False)
            result = await session.execute(stmt)
            if result.rowcount == 1:
              swept.append(job_id)
          return swept

    return await execute_with_retry(operation_name="jobs.fail_stale", func=_sweep)

  async def _transition(self, job_id: str, *, target: str, values: dict[str, Any], operation_name: str) -> JobRecord:
    expected = transition_source(target)

    async def _apply() -> JobRecord:
      async with self._session_factory() as session:
        async with session.begin():
          now = utc_now()
          changes = {**values, "status": target, "updated_at": now}
          if target in {"done", "error"}:
            changes["completed_at"] = now
          stmt = update(Job).where(Job.job_id == job_id, Job.status == expected).values(**changes).execution_options(synchronize_session=False)
          result = await session.execute(stmt)
          row = await session.get(Job, job_id)
          if row is None:
            raise NotFoundError(f"Job {job_id} not found")
          if result.rowcount != 1:
            raise InvalidStateError(f"Job {job_id} is {row.status}; expected {expected}", current_status=row.status)
          return self._model_to_record(row)

    return await execute_with_retry(operation_name=operation_name, func=_apply)

  def _model_to_record(self, row: Job) -> JobRecord:
    return JobRecord(
      job_id=row.job_id,
      mode=row.mode,  # type: ignore[arg-type]
      input=row.input,
      status=row.status,  # type: ignore[arg-type]
      created_at=row.created_at,
      updated_at=row.updated_at,
      model=row.model,
      output=row.output,
      error=row.error,
      started_at=row.started_at,
      completed_at=row.completed_at,
    )
