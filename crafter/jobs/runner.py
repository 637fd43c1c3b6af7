"""Entry point for the job worker process: python -m crafter.jobs.runner."""

from __future__ import annotations

import asyncio
import logging
import signal

from crafter.config import get_database_settings, get_worker_settings
from crafter.core.database import get_db_engine
from crafter.core.logging import _initialize_logging
from crafter.jobs.dispatch import build_default_registry
from crafter.jobs.worker import JobWorker
from crafter.storage.factory import _get_jobs_repo

logger = logging.getLogger("crafter.jobs.runner")


async def run_worker() -> None:
  settings = get_worker_settings()
  _initialize_logging(settings, log_name="crafter_worker")
  worker = JobWorker(jobs_repo=_get_jobs_repo(get_database_settings()), registry=build_default_registry(settings), settings=settings)

  loop = asyncio.get_running_loop()
  for sig in (signal.SIGINT, signal.SIGTERM):
    try:
      loop.add_signal_handler(sig, worker.stop)
    except NotImplementedError:
      # Windows event loops do not support signal handlers; Ctrl+C still raises KeyboardInterrupt.
      logger.debug("Signal handler for %s not supported on this platform.", sig)

  try:
    await worker.run_forever()
  finally:
    engine = get_db_engine()
    if engine is not None:
      await engine.dispose()


def main() -> None:
  asyncio.run(run_worker())


if __name__ == "__main__":
  main()
