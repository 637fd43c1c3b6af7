"""Provider and output error types used by the generation retry policy."""

from __future__ import annotations

# Statuses the provider may succeed on when the same request is re-sent.
TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({408, 409, 429})


class ProviderError(Exception):
  """Base class for failures reported by a generation provider."""

  def __init__(self, message: str, *, status_code: int | None = None, provider: str | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code
    self.provider = provider


class TransientProviderError(ProviderError):
  """Rate limits, timeouts, connection drops and 5xx responses."""


class PermanentProviderError(ProviderError):
  """Client errors that will fail again if retried (bad request, auth, unknown model)."""


class ParseError(Exception):
  """Raised when provider output cannot be parsed or fails output schema validation."""


def is_transient_status(status_code: int | None) -> bool:
  """Return True when an HTTP status should be retried."""
  if status_code is None:
    return True
  return status_code in TRANSIENT_STATUS_CODES or status_code >= 500


def provider_error_for_status(message: str, *, status_code: int | None, provider: str) -> ProviderError:
  """Build the transient or permanent error matching an HTTP status."""
  if is_transient_status(status_code):
    return TransientProviderError(message, status_code=status_code, provider=provider)
  return PermanentProviderError(message, status_code=status_code, provider=provider)
