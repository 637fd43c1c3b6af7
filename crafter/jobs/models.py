"""Domain models for asynchronous design generation jobs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

JobStatus = Literal["queued", "processing", "done", "error", "cancelled"]
JobMode = Literal["generate", "iterate"]

JOB_MODES: tuple[str, ...] = ("generate", "iterate")

# Forward-only lifecycle: queued -> processing -> {done, error}; queued -> cancelled.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
  "queued": frozenset({"processing", "cancelled"}),
  "processing": frozenset({"done", "error"}),
}


def can_transition(current: str, target: str) -> bool:
  """Return True when the lifecycle permits moving from current to target."""
  return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def transition_source(target: str) -> str:
  """Return the one status a job must be in to move to target."""
  sources = [current for current in ALLOWED_TRANSITIONS if can_transition(current, target)]
  if len(sources) != 1:
    raise ValueError(f"No single source status for {target}")
  return sources[0]


@dataclass
class JobRecord:
  """Represents a queued or processed generation job."""

  job_id: str
  mode: JobMode
  input: dict[str, Any]
  status: JobStatus
  created_at: datetime
  updated_at: datetime
  model: str | None = None
  output: dict[str, Any] | None = None
  error: str | None = None
  started_at: datetime | None = None
  completed_at: datetime | None = None
