import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core.container import ServiceContainer
from app.core.logging import _initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, build the service graph and tear it down on shutdown."""
  from app.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")

  try:
    _initialize_logging(settings)
  except Exception:  # noqa: BLE001
    # Keep serving with default logging rather than refusing to start.
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  # Tests install their own container before startup.
  container: ServiceContainer | None = getattr(app.state, "container", None)
  if container is None:
    container = ServiceContainer.build(settings)
    app.state.container = container

  container.start()
  logger.info(
    "Startup complete env=%s inference=%s enabled=%s max_parallel=%s search=%s moderation=%s recommendations=%s",
    settings.environment,
    settings.ollama_base_url,
    settings.ollama_enabled,
    settings.max_concurrent_jobs,
    settings.search_enabled,
    settings.moderation_enabled,
    settings.recommendations_enabled,
  )

  try:
    yield
  finally:
    await container.aclose()
    logger.info("Shutdown complete; AI job state discarded.")
