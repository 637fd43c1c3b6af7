from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from crafter.config import Settings, get_database_settings, get_settings
from crafter.storage.factory import _get_jobs_repo
from crafter.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


def get_jobs_repo() -> JobsRepository:
  """Dependency returning the configured jobs repository."""
  return _get_jobs_repo(get_database_settings())


async def require_task_secret(
  settings: Annotated[Settings, Depends(get_settings)],
  authorization: str | None = Header(default=None),
  x_crafter_task_secret: str | None = Header(default=None),
) -> None:
  """Guard internal endpoints with the shared task secret (header or bearer token)."""
  # Secure-by-default: internal endpoints stay closed until a secret is configured.
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  shared_secret_valid = secrets.compare_digest((x_crafter_task_secret or ""), settings.task_secret)
  bearer_valid = secrets.compare_digest((authorization or ""), f"Bearer {settings.task_secret}")
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Rejected internal request with an invalid task secret.")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")
