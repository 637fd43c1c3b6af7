"""Storage interfaces for generation jobs."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from crafter.jobs.models import JobRecord


class JobsRepository(Protocol):
  """Repository contract for job persistence.

  Every mutation is a conditional update on the current status, so concurrent
  workers and request handlers never apply a transition twice. Implementations
  raise NotFoundError for unknown ids, InvalidStateError when the job is not in
  the required status, and PersistenceError when the store itself fails.
  """

  async def create_job(self, record: JobRecord) -> None:
    """Persist a new queued job record."""

  async def get_job(self, job_id: str) -> JobRecord:
    """Fetch a job by identifier."""

  async def claim_next(self) -> JobRecord | None:
    """Move the oldest queued job to processing and return it, or None if the queue is empty."""

  async def complete_job(self, job_id: str, output: dict[str, Any]) -> JobRecord:
    """Move a processing job to done with its output."""

  async def fail_job(self, job_id: str, error_message: str) -> JobRecord:
    """Move a processing job to error with a message."""

  async def cancel_job(self, job_id: str) -> JobRecord:
    """Move a queued job to cancelled."""

  async def fail_stale_jobs(self, *, started_before: datetime, error_message: str) -> list[str]:
    """Move processing jobs claimed before the cutoff to error and return their ids."""
