"""Validation of job admission payloads per mode."""

from __future__ import annotations

from typing import Any

from crafter.config import SUPPORTED_MODELS
from crafter.core.errors import JobValidationError, ValidationError
from crafter.jobs.models import JOB_MODES

REQUIRED_INPUT_FIELDS: dict[str, tuple[str, ...]] = {
  "generate": ("prompt", "designSystem"),
  "iterate": ("prompt", "designSystem", "imageData", "frameData"),
}


def _is_blank(value: Any) -> bool:
  if value is None:
    return True
  if isinstance(value, str) and value.strip() == "":
    return True
  return isinstance(value, (dict, list)) and len(value) == 0


def missing_input_fields(mode: str, job_input: dict[str, Any]) -> list[str]:
  """Return the required fields absent (or blank) in a job input, in declaration order."""
  return [name for name in REQUIRED_INPUT_FIELDS[mode] if _is_blank(job_input.get(name))]


def validate_job_request(mode: Any, job_input: Any, model: Any = None) -> tuple[str, dict[str, Any], str | None]:
  """Validate a raw admission payload and return (mode, input, model).

  Raises ValidationError for an unknown mode, model or non-object input, and
  JobValidationError listing every missing required field.
  """
  if not isinstance(mode, str) or mode not in JOB_MODES:
    raise ValidationError(f"mode must be one of: {', '.join(JOB_MODES)}")
  if not isinstance(job_input, dict):
    raise ValidationError("input must be a JSON object")
  if model is not None and (not isinstance(model, str) or model.lower() not in SUPPORTED_MODELS):
    raise ValidationError(f"model must be one of: {', '.join(SUPPORTED_MODELS)}")

  missing = missing_input_fields(mode, job_input)
  if missing:
    raise JobValidationError(f"Missing required fields for {mode}: {', '.join(missing)}", missing_fields=missing)

  return mode, job_input, model.lower() if isinstance(model, str) else None
