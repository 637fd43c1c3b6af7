"""Database failure classification and retry for transient persistence errors."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError

from crafter.core.errors import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DBFailureClassification:
  """Classification result for a database failure."""

  def __init__(self, *, retryable: bool, reason: str, sqlstate: str | None, category: str) -> None:
    self.retryable = retryable
    self.reason = reason
    self.sqlstate = sqlstate
    self.category = category


def _extract_sqlstate(exc: Exception) -> str | None:
  """Extract Postgres SQLSTATE from SQLAlchemy exception."""
  if isinstance(exc, DBAPIError) and exc.orig is not None:
    # asyncpg exposes sqlstate; pgcode is kept for other drivers.
    for attribute in ("sqlstate", "pgcode"):
      value = getattr(exc.orig, attribute, None)
      if value:
        return str(value)
  return None


def classify_db_failure(exc: Exception) -> DBFailureClassification:
  """
  Classify database failure as retryable or non-retryable.

  Primary signal: Postgres SQLSTATE
  Fallback: Exception type and message patterns

  Retryable errors (transient):
    - 40001: serialization failure
    - 40P01: deadlock detected
    - Connection drops/resets

  Non-retryable errors (permanent):
    - 23xxx: integrity violations (unique, FK, not null, check)
    - 42xxx: schema/SQL errors
    - 28xxx: permission/auth errors
  """
  sqlstate = _extract_sqlstate(exc)

  if sqlstate == "40001":
    return DBFailureClassification(retryable=True, reason="Serialization failure - transaction conflict", sqlstate=sqlstate, category="serialization_conflict")

  if sqlstate == "40P01":
    return DBFailureClassification(retryable=True, reason="Deadlock detected", sqlstate=sqlstate, category="deadlock")

  if sqlstate == "57014":
    return DBFailureClassification(retryable=False, reason="Query canceled (timeout)", sqlstate=sqlstate, category="query_timeout")

  if sqlstate and sqlstate.startswith("23"):
    violation_types = {
      "23502": "not null violation",
      "23503": "foreign key violation",
      "23505": "unique violation",
      "23514": "check constraint violation",
    }
    specific = violation_types.get(sqlstate, "integrity constraint violation")
    return DBFailureClassification(retryable=False, reason=f"Integrity violation: {specific}", sqlstate=sqlstate, category="integrity_error")

  if sqlstate and sqlstate.startswith("42"):
    return DBFailureClassification(retryable=False, reason="Schema/SQL error (undefined table/column, syntax error)", sqlstate=sqlstate, category="schema_error")

  if sqlstate and sqlstate.startswith("28"):
    return DBFailureClassification(retryable=False, reason="Authentication/permission error", sqlstate=sqlstate, category="permission_error")

  # Fallback to exception type analysis
  if isinstance(exc, IntegrityError):
    return DBFailureClassification(retryable=False, reason="Integrity constraint violation (detected by exception type)", sqlstate=sqlstate, category="integrity_error")

  if isinstance(exc, OperationalError):
    error_msg = str(exc).lower()
    if any(pattern in error_msg for pattern in ["connection", "timeout", "reset", "network", "broken pipe", "database is locked"]):
      return DBFailureClassification(retryable=True, reason="Transient connection/lock error", sqlstate=sqlstate, category="connectivity_error")
    return DBFailureClassification(retryable=False, reason="Operational error (unknown cause)", sqlstate=sqlstate, category="operational_error_unknown")

  if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
    return DBFailureClassification(retryable=True, reason=f"Transient connection error: {type(exc).__name__}", sqlstate=sqlstate, category="connectivity_error")

  return DBFailureClassification(retryable=False, reason=f"Unknown error type: {type(exc).__name__}", sqlstate=sqlstate, category="unknown_error")


def to_persistence_error(operation_name: str, exc: Exception) -> PersistenceError:
  """Wrap a driver failure in a PersistenceError tagged with its classification."""
  classification = classify_db_failure(exc)
  return PersistenceError(f"{operation_name} failed: {classification.reason}", retryable=classification.retryable)


async def execute_with_retry(*, operation_name: str, func: Callable[[], Awaitable[T]], max_attempts: int = 2, initial_backoff_ms: int = 100, max_backoff_ms: int = 2000, jitter: bool = True) -> T:
  """
  Execute a database operation, retrying transient driver failures.

  Only SQLAlchemy and connection errors are inspected; domain errors raised by
  `func` (NotFoundError, InvalidStateError, ...) propagate untouched. Driver
  failures that survive the retries are re-raised as PersistenceError.
  """
  attempt = 0

  while True:
    attempt += 1

    try:
      result = await func()
      if attempt > 1:
        logger.info("DB operation succeeded after retry: operation=%s, attempt=%d/%d", operation_name, attempt, max_attempts)
      return result

    except (SQLAlchemyError, ConnectionError, OSError) as exc:
      classification = classify_db_failure(exc)

      logger.warning(
        "DB operation failed: operation=%s, attempt=%d/%d, category=%s, sqlstate=%s, retryable=%s, reason=%s",
        operation_name,
        attempt,
        max_attempts,
        classification.category,
        classification.sqlstate or "none",
        classification.retryable,
        classification.reason,
        exc_info=(not classification.retryable),
      )

      if not classification.retryable or attempt >= max_attempts:
        raise to_persistence_error(operation_name, exc) from exc

      backoff_ms = min(initial_backoff_ms * (2 ** (attempt - 1)), max_backoff_ms)
      if jitter:
        jitter_range = backoff_ms * 0.25
        backoff_ms += random.uniform(-jitter_range, jitter_range)

      logger.info("Retrying DB operation after backoff: operation=%s, attempt=%d/%d, backoff_ms=%.1f, category=%s", operation_name, attempt, max_attempts, backoff_ms, classification.category)
      await asyncio.sleep(backoff_ms / 1000.0)
