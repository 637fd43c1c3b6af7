"""Domain exceptions shared by the store, the ledger and the HTTP layer."""

from __future__ import annotations


class CrafterError(Exception):
  """Base class for domain errors raised by the service."""


class ValidationError(CrafterError):
  """Raised when a request or job payload is malformed."""


class JobValidationError(ValidationError):
  """Raised when a job input is missing required fields for its mode."""

  def __init__(self, message: str, *, missing_fields: list[str] | None = None) -> None:
    super().__init__(message)
    self.missing_fields = list(missing_fields or [])


class NotFoundError(CrafterError):
  """Raised when a job, subscription or other record does not exist."""


class InvalidStateError(CrafterError):
  """Raised when a state transition is not allowed from the current status."""

  def __init__(self, message: str, *, current_status: str | None = None) -> None:
    super().__init__(message)
    self.current_status = current_status


class PersistenceError(CrafterError):
  """Raised when the underlying store fails; wraps the driver error."""

  def __init__(self, message: str, *, retryable: bool = False) -> None:
    super().__init__(message)
    self.retryable = retryable
