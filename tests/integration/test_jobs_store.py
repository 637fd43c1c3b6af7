from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from crafter.core.errors import InvalidStateError, NotFoundError, PersistenceError
from crafter.jobs.models import JobRecord

BASE_TIME = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)
GENERATE_INPUT = {"prompt": "Pricing card", "designSystem": {"colors": {"primary": "#112233"}}}


def _record(job_id: str, *, offset_seconds: int = 0, status: str = "queued", started_at: datetime | None = None) -> JobRecord:
  created = BASE_TIME + timedelta(seconds=offset_seconds)
  return JobRecord(job_id=job_id, mode="generate", input=GENERATE_INPUT, status=status, created_at=created, updated_at=created, started_at=started_at)  # type: ignore[arg-type]


@pytest.mark.anyio
async def test_claim_returns_oldest_queued_job_first(jobs_repo) -> None:
  await jobs_repo.create_job(_record("job-b", offset_seconds=10))
  await jobs_repo.create_job(_record("job-a", offset_seconds=0))
  await jobs_repo.create_job(_record("job-c", offset_seconds=20))

  claimed = [await jobs_repo.claim_next() for _ in range(3)]

  assert [job.job_id for job in claimed] == ["job-a", "job-b", "job-c"]
  assert all(job.status == "processing" and job.started_at is not None for job in claimed)
  assert await jobs_repo.claim_next() is None


@pytest.mark.anyio
async def test_claim_skips_jobs_that_are_not_queued(jobs_repo) -> None:
  await jobs_repo.create_job(_record("job-cancelled", offset_seconds=0))
  await jobs_repo.create_job(_record("job-next", offset_seconds=5))
  await jobs_repo.cancel_job("job-cancelled")

  claimed = await jobs_repo.claim_next()

  assert claimed is not None
  assert claimed.job_id == "job-next"


@pytest.mark.anyio
async def test_complete_stores_output_and_completion_time(jobs_repo) -> None:
  await jobs_repo.create_job(_record("job-1"))
  await jobs_repo.claim_next()

  finished = await jobs_repo.complete_job("job-1", {"svg": "<svg></svg>", "reasoning": "ok"})

  assert finished.status == "done"
  assert finished.output == {"svg": "<svg></svg>", "reasoning": "ok"}
  assert finished.completed_at is not None
  stored = await jobs_repo.get_job("job-1")
  assert stored.status == "done"
  assert stored.output["svg"] == "<svg></svg>"


@pytest.mark.anyio
async def test_terminal_jobs_do_not_move_again(jobs_repo) -> None:
  await jobs_repo.create_job(_record("job-1"))
  await jobs_repo.claim_next()
  await jobs_repo.fail_job("job-1", "Claude returned HTTP 400: bad request")

  with pytest.raises(InvalidStateError) as excinfo:
    await jobs_repo.complete_job("job-1", {"svg": "<svg></svg>"})
  assert excinfo.value.current_status == "error"

  stored = await jobs_repo.get_job("job-1")
  assert stored.status == "error"
  assert stored.error == "Claude returned HTTP 400: bad request"
  assert stored.output is None


@pytest.mark.anyio
async def test_cancel_only_applies_to_queued_jobs(jobs_repo) -> None:
  await jobs_repo.create_job(_record("job-1"))
  await jobs_repo.claim_next()

  with pytest.raises(InvalidStateError):
    await jobs_repo.cancel_job("job-1")


@pytest.mark.anyio
async def test_unknown_job_raises_not_found(jobs_repo) -> None:
  with pytest.raises(NotFoundError):
    await jobs_repo.get_job("missing")
  with pytest.raises(NotFoundError):
    await jobs_repo.cancel_job("missing")
  with pytest.raises(NotFoundError):
    await jobs_repo.fail_job("missing", "boom")


@pytest.mark.anyio
async def test_stale_sweep_fails_only_old_processing_jobs(jobs_repo) -> None:
  await jobs_repo.create_job(_record("job-stale", status="processing", started_at=BASE_TIME - timedelta(hours=1)))
  await jobs_repo.create_job(_record("job-fresh", offset_seconds=1, status="processing", started_at=BASE_TIME))
  await jobs_repo.create_job(_record("job-queued", offset_seconds=2))

  swept = await jobs_repo.fail_stale_jobs(started_before=BASE_TIME - timedelta(minutes=15), error_message="processing timed out")

  assert swept == ["job-stale"]
  stale = await jobs_repo.get_job("job-stale")
  assert (stale.status, stale.error) == ("error", "processing timed out")
  assert (await jobs_repo.get_job("job-fresh")).status == "processing"
  assert (await jobs_repo.get_job("job-queued")).status == "queued"


@pytest.mark.anyio
async def test_queued_job_cannot_be_completed_or_failed(jobs_repo) -> None:
  await jobs_repo.create_job(_record("job-1"))

  with pytest.raises(InvalidStateError) as excinfo:
    await jobs_repo.complete_job("job-1", {"svg": "<svg></svg>"})
  assert excinfo.value.current_status == "queued"
  with pytest.raises(InvalidStateError):
    await jobs_repo.fail_job("job-1", "boom")
  assert (await jobs_repo.get_job("job-1")).status == "queued"


@pytest.mark.anyio
async def test_concurrent_claimers_get_the_job_once(jobs_repo) -> None:
  await jobs_repo.create_job(_record("job-1"))

  results = await asyncio.gather(*(jobs_repo.claim_next() for _ in range(5)), return_exceptions=True)

  winners = [result for result in results if isinstance(result, JobRecord)]
  assert [job.job_id for job in winners] == ["job-1"]
  assert all(result is None or isinstance(result, PersistenceError) for result in results if not isinstance(result, JobRecord))
  assert (await jobs_repo.get_job("job-1")).status == "processing"
