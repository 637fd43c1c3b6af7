from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import pytest

from crafter.ai.errors import PermanentProviderError, TransientProviderError
from crafter.ai.providers.base import GenerationRequest, GenerationResponse
from crafter.core.errors import PersistenceError
from crafter.jobs.dispatch import build_default_registry
from crafter.jobs.models import JobRecord
from crafter.jobs.worker import STALE_JOB_MESSAGE, JobWorker

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)
SVG = '<svg xmlns="http://www.w3.org/2000/svg" width="320" height="200"><rect width="320" height="200" fill="#fff"/></svg>'
VALID_OUTPUT = json.dumps({"svg": SVG, "reasoning": "White card."})
GENERATE_INPUT = {"prompt": "A plain card", "designSystem": {"colors": {"surface": "#ffffff"}}}


class ScriptedProvider:
  name = "claude"

  def __init__(self, script: list[object]) -> None:
    self._script = list(script)
    self.requests: list[GenerationRequest] = []

  async def generate(self, request: GenerationRequest) -> GenerationResponse:
    self.requests.append(request)
    item = self._script.pop(0)
    if isinstance(item, Exception):
      raise item
    return GenerationResponse(text=str(item))


class RecordingSleep:
  def __init__(self) -> None:
    self.delays: list[float] = []

  async def __call__(self, delay: float) -> None:
    self.delays.append(delay)


class FakeClock:
  def __init__(self) -> None:
    self.value = 1000.0

  def __call__(self) -> float:
    return self.value


def _worker(jobs_repo, settings, provider: ScriptedProvider, *, generation_sleep: RecordingSleep, worker_sleep: RecordingSleep, clock: FakeClock | None = None) -> JobWorker:
  registry = build_default_registry(settings, provider_factory=lambda model: provider, sleep=generation_sleep)
  return JobWorker(jobs_repo=jobs_repo, registry=registry, settings=settings, sleep=worker_sleep, monotonic=clock or FakeClock(), now=lambda: NOW)


async def _queue(jobs_repo, job_id: str = "job-1", job_input: dict | None = None, mode: str = "generate") -> None:
  await jobs_repo.create_job(JobRecord(job_id=job_id, mode=mode, input=job_input or GENERATE_INPUT, status="queued", created_at=NOW, updated_at=NOW))  # type: ignore[arg-type]


@pytest.mark.anyio
async def test_rate_limited_job_succeeds_after_one_retry(jobs_repo, worker_settings) -> None:
  await _queue(jobs_repo)
  provider = ScriptedProvider([TransientProviderError("Claude returned HTTP 429: rate limited", status_code=429, provider="claude"), VALID_OUTPUT])
  generation_sleep, worker_sleep = RecordingSleep(), RecordingSleep()
  worker = _worker(jobs_repo, worker_settings, provider, generation_sleep=generation_sleep, worker_sleep=worker_sleep)

  finished = await worker.run_once()

  assert finished is not None
  assert finished.status == "done"
  assert finished.output == {"svg": SVG, "reasoning": "White card."}
  assert generation_sleep.delays == [1.0]
  assert worker_sleep.delays == []
  assert (await jobs_repo.get_job("job-1")).status == "done"


@pytest.mark.anyio
async def test_unparseable_output_fails_job_with_parse_error(jobs_repo, worker_settings) -> None:
  await _queue(jobs_repo)
  provider = ScriptedProvider(["Sorry, I can only describe the design.", "Here it is: a white card."])
  generation_sleep, worker_sleep = RecordingSleep(), RecordingSleep()
  worker = _worker(jobs_repo, worker_settings, provider, generation_sleep=generation_sleep, worker_sleep=worker_sleep)

  finished = await worker.run_once()

  assert finished is not None
  assert finished.status == "error"
  assert "parse" in finished.error.lower()
  assert len(provider.requests) == 2
  assert generation_sleep.delays == []
  assert worker_sleep.delays == [worker_settings.error_backoff_seconds]


@pytest.mark.anyio
async def test_permanent_provider_error_is_not_retried(jobs_repo, worker_settings) -> None:
  await _queue(jobs_repo)
  provider = ScriptedProvider([PermanentProviderError("Claude returned HTTP 400: prompt too long", status_code=400, provider="claude")])
  generation_sleep, worker_sleep = RecordingSleep(), RecordingSleep()
  worker = _worker(jobs_repo, worker_settings, provider, generation_sleep=generation_sleep, worker_sleep=worker_sleep)

  finished = await worker.run_once()

  assert finished.status == "error"
  assert finished.error == "Claude returned HTTP 400: prompt too long"
  assert len(provider.requests) == 1
  assert generation_sleep.delays == []


@pytest.mark.anyio
async def test_iterate_job_sends_frame_image(jobs_repo, worker_settings) -> None:
  iterate_input = {**GENERATE_INPUT, "imageData": "data:image/jpeg;base64,aGVsbG8=", "frameData": {"name": "Card", "children": []}}
  await _queue(jobs_repo, mode="iterate", job_input=iterate_input)
  provider = ScriptedProvider([VALID_OUTPUT])
  worker = _worker(jobs_repo, worker_settings, provider, generation_sleep=RecordingSleep(), worker_sleep=RecordingSleep())

  finished = await worker.run_once()

  assert finished.status == "done"
  request = provider.requests[0]
  assert (request.image_base64, request.image_mime_type) == ("aGVsbG8=", "image/jpeg")
  assert '"name": "Card"' in request.user_prompt


@pytest.mark.anyio
async def test_idle_worker_sleeps_for_idle_interval(jobs_repo, worker_settings) -> None:
  worker_sleep = RecordingSleep()
  worker = _worker(jobs_repo, worker_settings, ScriptedProvider([]), generation_sleep=RecordingSleep(), worker_sleep=worker_sleep)

  assert await worker.run_once() is None
  assert worker_sleep.delays == [worker_settings.idle_seconds]


class FailingClaimRepo:
  def __init__(self) -> None:
    self.sweeps = 0

  async def claim_next(self):
    raise PersistenceError("jobs.claim_next failed: Transient connection/lock error", retryable=True)

  async def fail_stale_jobs(self, *, started_before, error_message):
    self.sweeps += 1
    return []


@pytest.mark.anyio
async def test_claim_failure_backs_off_and_keeps_running(worker_settings) -> None:
  worker_sleep = RecordingSleep()
  worker = _worker(FailingClaimRepo(), worker_settings, ScriptedProvider([]), generation_sleep=RecordingSleep(), worker_sleep=worker_sleep)

  assert await worker.run_once() is None
  assert await worker.run_once() is None
  assert worker_sleep.delays == [worker_settings.error_backoff_seconds, worker_settings.error_backoff_seconds]


class EmptyQueueRepo(FailingClaimRepo):
  async def claim_next(self):
    return None


@pytest.mark.anyio
async def test_stale_sweep_runs_at_most_once_per_interval(worker_settings) -> None:
  repo = EmptyQueueRepo()
  clock = FakeClock()
  worker = _worker(repo, worker_settings, ScriptedProvider([]), generation_sleep=RecordingSleep(), worker_sleep=RecordingSleep(), clock=clock)

  await worker.run_once()
  clock.value += 10
  await worker.run_once()
  assert repo.sweeps == 1

  clock.value += worker_settings.stale_sweep_interval_seconds
  await worker.run_once()
  assert repo.sweeps == 2


@pytest.mark.anyio
async def test_idle_worker_fails_stuck_processing_jobs(jobs_repo, worker_settings) -> None:
  stuck_since = NOW - timedelta(seconds=worker_settings.stale_job_seconds + 60)
  await jobs_repo.create_job(JobRecord(job_id="job-stuck", mode="generate", input=GENERATE_INPUT, status="processing", created_at=stuck_since, updated_at=stuck_since, started_at=stuck_since))
  worker = _worker(jobs_repo, worker_settings, ScriptedProvider([]), generation_sleep=RecordingSleep(), worker_sleep=RecordingSleep())

  await worker.run_once()

  stuck = await jobs_repo.get_job("job-stuck")
  assert (stuck.status, stuck.error) == ("error", STALE_JOB_MESSAGE)


@pytest.mark.anyio
async def test_run_forever_exits_when_stopped(jobs_repo, worker_settings) -> None:
  worker_sleep = RecordingSleep()
  worker = _worker(jobs_repo, worker_settings, ScriptedProvider([]), generation_sleep=RecordingSleep(), worker_sleep=worker_sleep)

  async def _stop_after_first_poll(delay: float) -> None:
    worker_sleep.delays.append(delay)
    worker.stop()

  worker._sleep = _stop_after_first_poll
  await worker.run_forever()

  assert worker.stopping
  assert worker_sleep.delays == [worker_settings.idle_seconds]


@pytest.mark.anyio
async def test_busy_worker_still_fails_stuck_processing_jobs(jobs_repo, worker_settings) -> None:
  stuck_since = NOW - timedelta(seconds=worker_settings.stale_job_seconds + 60)
  await jobs_repo.create_job(JobRecord(job_id="job-stuck", mode="generate", input=GENERATE_INPUT, status="processing", created_at=stuck_since, updated_at=stuck_since, started_at=stuck_since))
  await _queue(jobs_repo, "job-next")
  worker = _worker(jobs_repo, worker_settings, ScriptedProvider([VALID_OUTPUT]), generation_sleep=RecordingSleep(), worker_sleep=RecordingSleep())

  finished = await worker.run_once()

  assert finished.job_id == "job-next"
  assert finished.status == "done"
  stuck = await jobs_repo.get_job("job-stuck")
  assert (stuck.status, stuck.error) == ("error", STALE_JOB_MESSAGE)
