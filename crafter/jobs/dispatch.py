"""Dependency-injected job handler dispatch helpers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from functools import partial
from typing import Any, Protocol

from crafter.ai.backoff import Sleep, generate_with_retry
from crafter.ai.output import parse_generation_output
from crafter.ai.prompts import REQUEST_BUILDERS
from crafter.ai.providers import get_provider
from crafter.ai.providers.base import GenerationProvider, GenerationRequest
from crafter.config import WorkerSettings
from crafter.jobs.models import JobRecord

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str | None], GenerationProvider]


class JobHandler(Protocol):
  """Handler contract for one job mode."""

  async def process(self, job: JobRecord) -> dict[str, Any]:
    """Produce the validated output for a claimed job, or raise."""


class JobHandlerRegistry:
  """Registry mapping job modes to handlers."""

  def __init__(self, handlers: dict[str, JobHandler]) -> None:
    self._handlers = handlers

  def resolve(self, mode: str) -> JobHandler:
    """Resolve the handler for a job mode."""
    handler = self._handlers.get(mode)
    if handler is None:
      raise ValueError(f"Unsupported job mode: {mode}")
    return handler


class GenerationJobHandler:
  """Build the provider request, call the provider and validate the output for one mode."""

  def __init__(self, *, mode: str, build_request: Callable[[dict[str, Any]], GenerationRequest], provider_factory: ProviderFactory, max_attempts: int, base_delay_seconds: float, sleep: Sleep = asyncio.sleep) -> None:
    self._mode = mode
    self._build_request = build_request
    self._provider_factory = provider_factory
    self._max_attempts = max_attempts
    self._base_delay_seconds = base_delay_seconds
    self._sleep = sleep

  async def process(self, job: JobRecord) -> dict[str, Any]:
    provider = self._provider_factory(job.model)
    request = self._build_request(job.input)
    logger.info("Generating job_id=%s mode=%s provider=%s", job.job_id, self._mode, provider.name)
    return await generate_with_retry(
      provider=provider,
      request=request,
      parse=partial(parse_generation_output, self._mode),
      max_attempts=self._max_attempts,
      base_delay_seconds=self._base_delay_seconds,
      sleep=self._sleep,
    )


def build_default_registry(settings: WorkerSettings, *, provider_factory: ProviderFactory | None = None, sleep: Sleep = asyncio.sleep) -> JobHandlerRegistry:
  """Build the mode -> handler registry used by the worker."""
  factory = provider_factory or (lambda model: get_provider(model, settings))
  handlers: dict[str, JobHandler] = {
    mode: GenerationJobHandler(mode=mode, build_request=builder, provider_factory=factory, max_attempts=settings.generation_max_attempts, base_delay_seconds=settings.generation_base_delay_seconds, sleep=sleep)
    for mode, builder in REQUEST_BUILDERS.items()
  }
  return JobHandlerRegistry(handlers)
