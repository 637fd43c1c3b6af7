"""Claude provider built on the anthropic SDK's async client."""

from __future__ import annotations

import logging
from typing import Any

import anthropic

from crafter.ai.errors import TransientProviderError, provider_error_for_status
from crafter.ai.providers.base import GenerationRequest, GenerationResponse

logger = logging.getLogger(__name__)


class ClaudeProvider:
  """Send generation requests to Claude and normalize its failures."""

  name = "claude"

  def __init__(self, *, model: str, api_key: str | None, max_tokens: int, timeout_seconds: float, client: Any | None = None) -> None:
    self._model = model
    self._max_tokens = max_tokens
    # SDK retries are disabled; crafter.ai.backoff owns the retry policy.
    self._client = client or anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout_seconds, max_retries=0)

  def _content_blocks(self, request: GenerationRequest) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    if request.image_base64:
      blocks.append({"type": "image", "source": {"type": "base64", "media_type": request.image_mime_type, "data": request.image_base64}})
    blocks.append({"type": "text", "text": request.user_prompt})
    return blocks

  async def generate(self, request: GenerationRequest) -> GenerationResponse:
    try:
      message = await self._client.messages.create(
        model=self._model,
        max_tokens=self._max_tokens,
        system=request.system_prompt,
        messages=[{"role": "user", "content": self._content_blocks(request)}],
      )
    except anthropic.APIConnectionError as exc:
      # Includes APITimeoutError.
      raise TransientProviderError(f"Claude request failed: {exc}", provider=self.name) from exc
    except anthropic.APIStatusError as exc:
      raise provider_error_for_status(f"Claude returned HTTP {exc.status_code}: {exc.message}", status_code=exc.status_code, provider=self.name) from exc

    text = "".join(block.text for block in message.content if getattr(block, "type", None) == "text")
    usage = None
    if message.usage is not None:
      usage = {"prompt_tokens": message.usage.input_tokens, "completion_tokens": message.usage.output_tokens}
    logger.info("Claude response model=%s stop_reason=%s chars=%d", self._model, message.stop_reason, len(text))
    return GenerationResponse(text=text, stop_reason=message.stop_reason, usage=usage)
