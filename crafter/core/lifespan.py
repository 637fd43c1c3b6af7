import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI
from sqlalchemy import text

from crafter.core.database import get_db_engine
from crafter.core.logging import _initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging after uvicorn starts and verify database connectivity."""
  from crafter.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("crafter.core.lifespan")

  _initialize_logging(settings)
  logger.info("Startup complete environment=%s CRAFTER_PG_DSN=%s", settings.environment, _redact_dsn(settings.pg_dsn))

  engine = get_db_engine()
  if engine is None:
    logger.warning("Database engine unavailable; job and usage endpoints will fail until CRAFTER_PG_DSN is set.")
  else:
    try:
      async with engine.connect() as connection:
        await connection.execute(text("SELECT 1"))
      logger.info("Database connectivity verified.")
    except Exception:  # noqa: BLE001
      # Keep serving; requests surface PersistenceError until the database recovers.
      logger.warning("Database connectivity check failed at startup.", exc_info=True)

  yield

  if engine is not None:
    await engine.dispose()


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
