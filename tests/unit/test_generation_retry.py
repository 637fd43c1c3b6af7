from __future__ import annotations

import json

import pytest

from crafter.ai.backoff import generate_with_retry
from crafter.ai.errors import ParseError, PermanentProviderError, TransientProviderError
from crafter.ai.output import parse_generation_output
from crafter.ai.providers.base import GenerationRequest, GenerationResponse

VALID = json.dumps({"svg": "<svg></svg>", "reasoning": "ok"})


class ScriptedProvider:
  """Provider double returning scripted responses or raising scripted errors."""

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


def _parse(raw: str) -> dict:
  return parse_generation_output("generate", raw)


REQUEST = GenerationRequest(system_prompt="system", user_prompt="Design a pricing card")


@pytest.mark.anyio
async def test_transient_error_is_retried_after_base_delay() -> None:
  provider = ScriptedProvider([TransientProviderError("slow down", status_code=429, provider="claude"), VALID])
  sleep = RecordingSleep()

  output = await generate_with_retry(provider=provider, request=REQUEST, parse=_parse, max_attempts=2, base_delay_seconds=1.0, sleep=sleep)

  assert output["svg"] == "<svg></svg>"
  assert sleep.delays == [1.0]
  assert len(provider.requests) == 2


@pytest.mark.anyio
async def test_delays_double_between_attempts() -> None:
  errors = [TransientProviderError("unavailable", status_code=503, provider="claude") for _ in range(3)]
  provider = ScriptedProvider([*errors, VALID])
  sleep = RecordingSleep()

  await generate_with_retry(provider=provider, request=REQUEST, parse=_parse, max_attempts=4, base_delay_seconds=1.0, sleep=sleep)

  assert sleep.delays == [1.0, 2.0, 4.0]


@pytest.mark.anyio
async def test_transient_error_propagates_when_budget_is_spent() -> None:
  provider = ScriptedProvider([TransientProviderError("timeout", provider="claude"), TransientProviderError("timeout", provider="claude")])
  sleep = RecordingSleep()

  with pytest.raises(TransientProviderError):
    await generate_with_retry(provider=provider, request=REQUEST, parse=_parse, max_attempts=2, sleep=sleep)
  assert sleep.delays == [1.0]


@pytest.mark.anyio
async def test_permanent_error_is_not_retried() -> None:
  provider = ScriptedProvider([PermanentProviderError("bad request", status_code=400, provider="claude"), VALID])
  sleep = RecordingSleep()

  with pytest.raises(PermanentProviderError):
    await generate_with_retry(provider=provider, request=REQUEST, parse=_parse, max_attempts=2, sleep=sleep)
  assert sleep.delays == []
  assert len(provider.requests) == 1


@pytest.mark.anyio
async def test_parse_failure_is_reissued_with_feedback() -> None:
  provider = ScriptedProvider(["not json at all", VALID])
  sleep = RecordingSleep()

  output = await generate_with_retry(provider=provider, request=REQUEST, parse=_parse, max_attempts=2, sleep=sleep)

  assert output["reasoning"] == "ok"
  assert sleep.delays == []
  retry_prompt = provider.requests[1].user_prompt
  assert retry_prompt.startswith(REQUEST.user_prompt)
  assert "Failed to parse generation output" in retry_prompt


@pytest.mark.anyio
async def test_parse_failure_propagates_after_last_attempt() -> None:
  provider = ScriptedProvider(["nope", "still nope"])

  with pytest.raises(ParseError):
    await generate_with_retry(provider=provider, request=REQUEST, parse=_parse, max_attempts=2, sleep=RecordingSleep())
