"""Provider-neutral request/response types for design generation."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Protocol

_FEEDBACK_HEADER = "Your previous response was rejected. Fix the following problems and answer again with valid JSON only:"


@dataclass(frozen=True)
class GenerationRequest:
  """One call to a generation provider."""

  system_prompt: str
  user_prompt: str
  image_base64: str | None = None
  image_mime_type: str = "image/png"

  def with_feedback(self, feedback: str) -> GenerationRequest:
    """Return a copy with a validation failure appended to the instructions."""
    return replace(self, user_prompt=f"{self.user_prompt}\n\n{_FEEDBACK_HEADER}\n{feedback}")


@dataclass(frozen=True)
class GenerationResponse:
  text: str
  stop_reason: str | None = None
  usage: dict[str, int] | None = None


class GenerationProvider(Protocol):
  """Contract shared by the Claude and Gemini clients.

  Implementations raise TransientProviderError or PermanentProviderError and never
  retry on their own; the retry policy lives in crafter.ai.backoff.
  """

  name: str

  async def generate(self, request: GenerationRequest) -> GenerationResponse:
    """Send one request and return the raw text response."""
