"""Job admission, lookup and cancellation."""

from __future__ import annotations

import logging
from typing import Any

from crafter.core.database import utc_now
from crafter.jobs.inputs import validate_job_request
from crafter.jobs.models import JobRecord
from crafter.storage.jobs_repo import JobsRepository
from crafter.utils.ids import generate_job_id

logger = logging.getLogger(__name__)


async def create_job(jobs_repo: JobsRepository, *, mode: Any, job_input: Any, model: Any = None) -> JobRecord:
  """Validate a generation request and enqueue it; every call creates a new job."""
  valid_mode, valid_input, valid_model = validate_job_request(mode, job_input, model)
  timestamp = utc_now()
  record = JobRecord(job_id=generate_job_id(), mode=valid_mode, input=valid_input, status="queued", created_at=timestamp, updated_at=timestamp, model=valid_model)  # type: ignore[arg-type]
  await jobs_repo.create_job(record)
  logger.info("Queued job_id=%s mode=%s model=%s", record.job_id, record.mode, record.model)
  return record


async def get_job(jobs_repo: JobsRepository, job_id: str) -> JobRecord:
  return await jobs_repo.get_job(job_id)


async def cancel_job(jobs_repo: JobsRepository, job_id: str) -> JobRecord:
  """Cancel a job that has not been claimed yet."""
  record = await jobs_repo.cancel_job(job_id)
  logger.info("Cancelled job_id=%s", job_id)
  return record
