"""Generation providers selected per job by the `model` field."""

from crafter.ai.providers.anthropic import ClaudeProvider
from crafter.ai.providers.base import GenerationProvider, GenerationRequest, GenerationResponse
from crafter.ai.providers.gemini import GeminiProvider
from crafter.config import SUPPORTED_MODELS, WorkerSettings


def get_provider(model: str | None, settings: WorkerSettings) -> GenerationProvider:
  """Return the provider for a job's model selector, falling back to the configured default."""
  provider_name = (model or settings.default_model).lower()
  if provider_name not in SUPPORTED_MODELS:
    raise ValueError(f"Unsupported model: {provider_name}")
  if provider_name == "gemini":
    return GeminiProvider(model=settings.gemini_model, api_key=settings.gemini_api_key, max_tokens=settings.generation_max_tokens, timeout_seconds=settings.generation_timeout_seconds)
  return ClaudeProvider(model=settings.claude_model, api_key=settings.anthropic_api_key, max_tokens=settings.generation_max_tokens, timeout_seconds=settings.generation_timeout_seconds)


__all__ = ["ClaudeProvider", "GeminiProvider", "GenerationProvider", "GenerationRequest", "GenerationResponse", "get_provider"]
