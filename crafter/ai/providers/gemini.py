"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import base64
import binascii
import logging
import warnings
from typing import Any

import httpx
from pydantic.warnings import ArbitraryTypeWarning

with warnings.catch_warnings():
  warnings.filterwarnings("ignore", message=r"<built-in function any> is not a Python type.*", category=ArbitraryTypeWarning)
  from google import genai
  from google.genai import errors as genai_errors
  from google.genai import types

from crafter.ai.errors import PermanentProviderError, TransientProviderError, provider_error_for_status
from crafter.ai.providers.base import GenerationRequest, GenerationResponse

logger = logging.getLogger(__name__)


class GeminiProvider:
  """Send generation requests to Gemini and normalize its failures."""

  name = "gemini"

  def __init__(self, *, model: str, api_key: str | None, max_tokens: int, timeout_seconds: float, client: Any | None = None) -> None:
    self._model = model
    self._max_tokens = max_tokens
    if client is None:
      if not api_key:
        raise ValueError("GEMINI_API_KEY environment variable is required")
      client = genai.Client(api_key=api_key, http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)))
    self._client = client

  def _contents(self, request: GenerationRequest) -> list[Any]:
    contents: list[Any] = []
    if request.image_base64:
      try:
        image_bytes = base64.b64decode(request.image_base64, validate=True)
      except (binascii.Error, ValueError) as exc:
        raise PermanentProviderError(f"imageData is not valid base64: {exc}", provider=self.name) from exc
      contents.append(types.Part.from_bytes(data=image_bytes, mime_type=request.image_mime_type))
    contents.append(request.user_prompt)
    return contents

  async def generate(self, request: GenerationRequest) -> GenerationResponse:
    config = types.GenerateContentConfig(system_instruction=request.system_prompt, max_output_tokens=self._max_tokens, response_mime_type="application/json")
    try:
      # Use the async client to avoid blocking the asyncio event loop.
      response = await self._client.aio.models.generate_content(model=self._model, contents=self._contents(request), config=config)
    except genai_errors.APIError as exc:
      raise provider_error_for_status(f"Gemini returned HTTP {exc.code}: {exc.message}", status_code=exc.code, provider=self.name) from exc
    except httpx.TransportError as exc:
      raise TransientProviderError(f"Gemini request failed: {exc}", provider=self.name) from exc

    usage = None
    if response.usage_metadata:
      usage = {"prompt_tokens": response.usage_metadata.prompt_token_count, "completion_tokens": response.usage_metadata.candidates_token_count}
    stop_reason = None
    if response.candidates:
      finish_reason = response.candidates[0].finish_reason
      stop_reason = str(finish_reason) if finish_reason is not None else None
    text = response.text or ""
    logger.info("Gemini response model=%s stop_reason=%s chars=%d", self._model, stop_reason, len(text))
    return GenerationResponse(text=text, stop_reason=stop_reason, usage=usage)
