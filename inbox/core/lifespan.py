import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from inbox.core.database import dispose_engine
from inbox.core.logging import initialize_logging
from inbox.notifications.factory import build_notification_runtime


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Initialize logging, wire the notification components and run the summary scheduler."""
  from inbox.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("inbox.core.lifespan")

  try:
    initialize_logging(settings)
  except RuntimeError:
    # Keep serving with the default handlers when the log directory is not writable.
    logger.warning("Logging setup failed; continuing with default handlers.", exc_info=True)

  logger.info("Starting inbox environment=%s database=%s", settings.environment, _redact_dsn(settings.pg_dsn))
  runtime = build_notification_runtime(settings)
  app.state.notifications = runtime

  if settings.summary_scheduler_enabled:
    runtime.scheduler.start()
  else:
    logger.info("Summary scheduler disabled; digests are only generated on request.")

  try:
    yield
  finally:
    runtime.scheduler.shutdown()
    await runtime.hub.close_all()
    await dispose_engine()
    logger.info("Shutdown complete.")


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
