"""Single sequential consumer of the job queue."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta

from crafter.ai.backoff import Sleep
from crafter.ai.errors import ParseError, ProviderError
from crafter.config import WorkerSettings
from crafter.core.database import utc_now
from crafter.jobs.dispatch import JobHandlerRegistry
from crafter.jobs.models import JobRecord
from crafter.storage.jobs_repo import JobsRepository

STALE_JOB_MESSAGE = "processing timed out"


def failure_message(exc: BaseException) -> str:
  """Render the error text stored on a failed job."""
  if isinstance(exc, (ParseError, ProviderError)):
    return str(exc)
  detail = str(exc)
  if detail:
    return f"{type(exc).__name__}: {detail}"
  return type(exc).__name__


class JobWorker:
  """Claim queued jobs one at a time, run them and record the outcome.

  The loop never exits on job or persistence failures: a failed job is marked
  as error (best effort) and the loop backs off before polling again.
  """

  def __init__(
    self,
    *,
    jobs_repo: JobsRepository,
    registry: JobHandlerRegistry,
    settings: WorkerSettings,
    sleep: Sleep = asyncio.sleep,
    monotonic: Callable[[], float] = time.monotonic,
    now: Callable[[], datetime] = utc_now,
  ) -> None:
    self._jobs_repo = jobs_repo
    self._registry = registry
    self._settings = settings
    self._sleep = sleep
    self._monotonic = monotonic
    self._now = now
    self._logger = logging.getLogger(__name__)
    self._stopping = asyncio.Event()
    self._last_sweep: float | None = None

  def stop(self) -> None:
    """Ask the loop to exit after the current cycle."""
    self._stopping.set()

  @property
  def stopping(self) -> bool:
    return self._stopping.is_set()

  async def run_forever(self) -> None:
    self._logger.info("Worker started idle=%.1fs backoff=%.1fs stale_after=%ss", self._settings.idle_seconds, self._settings.error_backoff_seconds, self._settings.stale_job_seconds)
    while not self._stopping.is_set():
      await self.run_once()
    self._logger.info("Worker stopped.")

  async def run_once(self) -> JobRecord | None:
    """Run one poll cycle and return the finished job, if any."""
    try:
      job = await self._jobs_repo.claim_next()
    except Exception:  # noqa: BLE001
      self._logger.error("Failed to claim next job; backing off.", exc_info=True)
      await self._sleep(self._settings.error_backoff_seconds)
      return None

    if job is None:
      await self._sweep_stale_jobs()
      await self._sleep(self._settings.idle_seconds)
      return None

    self._logger.info("Claimed job_id=%s mode=%s model=%s", job.job_id, job.mode, job.model)
    try:
      output = await self._registry.resolve(job.mode).process(job)
      finished = await self._jobs_repo.complete_job(job.job_id, output)
    except Exception as exc:  # noqa: BLE001
      self._logger.error("Job processing failed job_id=%s error_type=%s", job.job_id, type(exc).__name__, exc_info=True)
      finished = await self._record_failure(job, exc)
      await self._sweep_stale_jobs()
      await self._sleep(self._settings.error_backoff_seconds)
      return finished

    self._logger.info("Completed job_id=%s", job.job_id)
    # Busy cycles sweep too; the sweep itself is throttled.
    await self._sweep_stale_jobs()
    return finished

  async def _record_failure(self, job: JobRecord, exc: BaseException) -> JobRecord | None:
    try:
      return await self._jobs_repo.fail_job(job.job_id, failure_message(exc))
    except Exception:  # noqa: BLE001
      # Left in processing; the stale sweep moves it to error later.
      self._logger.error("Failed to record failure for job_id=%s", job.job_id, exc_info=True)
      return None

  async def _sweep_stale_jobs(self) -> None:
    if self._settings.stale_job_seconds <= 0:
      return
    current = self._monotonic()
    if self._last_sweep is not None and current - self._last_sweep < self._settings.stale_sweep_interval_seconds:
      return
    self._last_sweep = current
    cutoff = self._now() - timedelta(seconds=self._settings.stale_job_seconds)
    try:
      swept = await self._jobs_repo.fail_stale_jobs(started_before=cutoff, error_message=STALE_JOB_MESSAGE)
    except Exception:  # noqa: BLE001
      self._logger.warning("Stale job sweep failed.", exc_info=True)
      return
    if swept:
      self._logger.warning("Marked %d stale jobs as error: %s", len(swept), ", ".join(swept))
