"""Request and response bodies for the HTTP API."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from crafter.jobs.models import JobRecord


def format_timestamp(value: datetime | None) -> str | None:
  """Render a stored timestamp as ISO-8601 UTC with a Z suffix."""
  if value is None:
    return None
  # SQLite drops tzinfo; stored values are always UTC.
  if value.tzinfo is None:
    value = value.replace(tzinfo=UTC)
  return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


class JobCreateRequest(BaseModel):
  """Admission payload; fields stay loose so validation errors come back as 400 with missingFields."""

  model_config = ConfigDict(extra="ignore", protected_namespaces=())

  mode: Any = None
  input: Any = None
  model: Any = None


class JobCreateResponse(BaseModel):
  job_id: str
  status: str


class JobStatusResponse(BaseModel):
  job_id: str
  status: str
  created_at: str
  updated_at: str
  output: dict[str, Any] | None = None
  error: str | None = None

  @classmethod
  def from_record(cls, record: JobRecord) -> JobStatusResponse:
    return cls(
      job_id=record.job_id,
      status=record.status,
      created_at=format_timestamp(record.created_at) or "",
      updated_at=format_timestamp(record.updated_at) or "",
      output=record.output if record.status == "done" else None,
      error=record.error if record.status == "error" else None,
    )


class JobCancelResponse(BaseModel):
  success: bool
  job_id: str
  status: str


class RecordIterationRequest(BaseModel):
  model_config = ConfigDict(extra="ignore")

  user_id: str | None = None


class RecordIterationResponse(BaseModel):
  success: bool
  iterations_used: int
  iterations_remaining: int
  plan_type: str
  limit_exceeded: bool


class UsageStatusResponse(BaseModel):
  plan_type: str
  month: str
  iterations_used: int
  iterations_limit: int
  extra_iterations: int
  total_available: int
  can_iterate: bool


class PackCreateRequest(BaseModel):
  user_id: str = Field(min_length=1)
  pack_size: int
  checkout_session_id: str | None = None


class PackResponse(BaseModel):
  id: str
  user_id: str
  pack_size: int
  valid_for_month: str
  iterations_remaining: int
  status: str
  checkout_session_id: str | None = None
  purchased_at: str | None = None


class AuthHandoffRequest(BaseModel):
  state: str = Field(min_length=1)
  payload: dict[str, Any]


class AuthHandoffStoredResponse(BaseModel):
  state: str
  expires_at: str
