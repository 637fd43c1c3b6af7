"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from crafter.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Crafter HTTP service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  task_secret: str | None
  auth_handoff_ttl_seconds: int


@dataclass(frozen=True)
class WorkerSettings:
  """Typed settings for the job worker and its generation providers."""

  environment: str
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  idle_seconds: float
  error_backoff_seconds: float
  stale_job_seconds: int
  stale_sweep_interval_seconds: float
  generation_max_attempts: int
  generation_base_delay_seconds: float
  generation_timeout_seconds: float
  generation_max_tokens: int
  default_model: str
  claude_model: str
  gemini_model: str
  anthropic_api_key: str | None
  gemini_api_key: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


SUPPORTED_MODELS = ("claude", "gemini")
# Provider calls are retried locally at most once.
MAX_GENERATION_ATTEMPTS = 2


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("CRAFTER_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("CRAFTER_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("CRAFTER_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _non_negative_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value < 0:
    raise ValueError(f"{name} must be zero or a positive number.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _log_limits() -> tuple[int, int]:
  log_max_bytes = _positive_int("CRAFTER_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("CRAFTER_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("CRAFTER_LOG_BACKUP_COUNT must be zero or a positive integer.")
  return log_max_bytes, log_backup_count


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("CRAFTER_ENV", "development").lower()
  debug = _parse_bool(os.getenv("CRAFTER_DEBUG"))
  log_max_bytes, log_backup_count = _log_limits()
  database = get_database_settings()

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("CRAFTER_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
    log_http_4xx=_parse_bool(os.getenv("CRAFTER_LOG_HTTP_4XX")),
    pg_dsn=database.pg_dsn,
    pg_connect_timeout=database.pg_connect_timeout,
    task_secret=_optional_str(os.getenv("CRAFTER_TASK_SECRET")),
    auth_handoff_ttl_seconds=_positive_int("CRAFTER_AUTH_HANDOFF_TTL_SECONDS", "300"),
  )


@lru_cache(maxsize=1)
def get_worker_settings() -> WorkerSettings:
  """Load worker settings without requiring web-runtime configuration like CORS."""

  log_max_bytes, log_backup_count = _log_limits()

  stale_job_seconds = int(os.getenv("CRAFTER_STALE_JOB_SECONDS", "900"))
  if stale_job_seconds < 0:
    raise ValueError("CRAFTER_STALE_JOB_SECONDS must be zero (disabled) or a positive integer.")

  generation_max_attempts = _positive_int("CRAFTER_GENERATION_MAX_ATTEMPTS", "2")
  if generation_max_attempts > MAX_GENERATION_ATTEMPTS:
    raise ValueError(f"CRAFTER_GENERATION_MAX_ATTEMPTS must be at most {MAX_GENERATION_ATTEMPTS}.")

  default_model = (os.getenv("CRAFTER_DEFAULT_MODEL") or "claude").strip().lower()
  if default_model not in SUPPORTED_MODELS:
    raise ValueError(f"CRAFTER_DEFAULT_MODEL must be one of: {', '.join(SUPPORTED_MODELS)}.")

  return WorkerSettings(
    environment=os.getenv("CRAFTER_ENV", "development").lower(),
    debug=_parse_bool(os.getenv("CRAFTER_DEBUG")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    idle_seconds=_non_negative_float("CRAFTER_WORKER_IDLE_SECONDS", "3"),
    error_backoff_seconds=_non_negative_float("CRAFTER_WORKER_ERROR_BACKOFF_SECONDS", "5"),
    stale_job_seconds=stale_job_seconds,
    stale_sweep_interval_seconds=_non_negative_float("CRAFTER_STALE_SWEEP_INTERVAL_SECONDS", "60"),
    generation_max_attempts=generation_max_attempts,
    generation_base_delay_seconds=_non_negative_float("CRAFTER_GENERATION_BASE_DELAY_SECONDS", "1"),
    generation_timeout_seconds=_positive_float("CRAFTER_GENERATION_TIMEOUT_SECONDS", "120"),
    generation_max_tokens=_positive_int("CRAFTER_GENERATION_MAX_TOKENS", "16384"),
    default_model=default_model,
    claude_model=(os.getenv("CRAFTER_CLAUDE_MODEL") or "claude-sonnet-4-5").strip(),
    gemini_model=(os.getenv("CRAFTER_GEMINI_MODEL") or "gemini-2.5-pro").strip(),
    anthropic_api_key=_optional_str(os.getenv("ANTHROPIC_API_KEY")),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations and the worker don't require unrelated env vars.
  debug = _parse_bool(os.getenv("CRAFTER_DEBUG"))
  pg_connect_timeout = _positive_int("CRAFTER_PG_CONNECT_TIMEOUT", "5")

  # Support fallback to DATABASE_URL for hosted Postgres providers.
  pg_dsn = os.getenv("CRAFTER_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
