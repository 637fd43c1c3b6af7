from crafter.config import DatabaseSettings
from crafter.storage.jobs_repo import JobsRepository
from crafter.storage.postgres_jobs_repo import PostgresJobsRepository


def _get_jobs_repo(settings: DatabaseSettings) -> JobsRepository:
  """Return the active jobs repository."""

  # Enforce Postgres-backed storage for jobs.

  if not settings.pg_dsn:
    raise ValueError("CRAFTER_PG_DSN must be set to enable Postgres persistence.")

  return PostgresJobsRepository()
