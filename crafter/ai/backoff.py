"""Bounded retry policy for a single generation call."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from crafter.ai.errors import ParseError, TransientProviderError
from crafter.ai.providers.base import GenerationProvider, GenerationRequest

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def generate_with_retry(
  *,
  provider: GenerationProvider,
  request: GenerationRequest,
  parse: Callable[[str], dict[str, Any]],
  max_attempts: int = 2,
  base_delay_seconds: float = 1.0,
  sleep: Sleep = asyncio.sleep,
) -> dict[str, Any]:
  """
  Call the provider and parse its output, retrying within a fixed attempt budget.

  Transient provider failures are retried after an exponential delay (base, 2x base, ...).
  Permanent provider failures propagate immediately. Parse failures are re-issued at once
  with the validation error appended to the instructions. The last error is raised when
  the budget runs out.
  """
  current_request = request

  for attempt in range(1, max_attempts + 1):
    try:
      response = await provider.generate(current_request)
    except TransientProviderError as exc:
      if attempt >= max_attempts:
        logger.error("Generation failed after %d attempts provider=%s status=%s", attempt, exc.provider, exc.status_code)
        raise
      delay = base_delay_seconds * (2 ** (attempt - 1))
      logger.warning("Transient provider error provider=%s status=%s attempt=%d/%d; retrying in %.1fs", exc.provider, exc.status_code, attempt, max_attempts, delay)
      await sleep(delay)
      continue

    try:
      return parse(response.text)
    except ParseError as exc:
      if attempt >= max_attempts:
        logger.error("Generation output still invalid after %d attempts provider=%s: %s", attempt, provider.name, exc)
        raise
      logger.warning("Generation output invalid provider=%s attempt=%d/%d: %s", provider.name, attempt, max_attempts, exc)
      current_request = request.with_feedback(str(exc))

  raise RuntimeError("generate_with_retry exhausted without an attempt")
