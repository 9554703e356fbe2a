"""Retry logic with linear backoff for inference calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from app.ai.errors import InferenceDisabledError

T = TypeVar("T")
logger = logging.getLogger(__name__)

MAX_RETRIES = 2
RETRY_DELAY_SECONDS = 1.0


async def retry_with_backoff(func: Callable[[], Awaitable[T]], *, max_retries: int = MAX_RETRIES, delay: float = RETRY_DELAY_SECONDS, label: str = "inference call") -> T:
  """
  Execute an async callable, retrying failures with a linear backoff.

  Attempt ``n`` (zero-based) that fails waits ``delay * (n + 1)`` seconds before the
  next one. After ``max_retries`` retries the last error is raised. Configuration
  errors (disabled backend) are raised immediately.
  """
  last_error: Exception | None = None

  for attempt in range(max_retries + 1):
    try:
      return await func()
    except InferenceDisabledError:
      raise
    except Exception as e:
      last_error = e
      if attempt >= max_retries:
        break
      wait = delay * (attempt + 1)
      logger.warning("Retry attempt %s/%s for %s after error: %s. Retrying in %.1fs...", attempt + 1, max_retries, label, e, wait)
      await asyncio.sleep(wait)

  # The loop always runs at least once, so an error is recorded here.
  assert last_error is not None
  raise last_error
