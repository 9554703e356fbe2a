"""Shared FastAPI dependencies: service lookup, caller identity and AI rate limiting."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from fastapi import Depends, Header, HTTPException, Request, Response, status

from app.core.container import ServiceContainer

logger = logging.getLogger("app.api.deps")

RateTier = Literal["authenticated", "admin"]
WINDOW_SECONDS = 60.0


@dataclass(frozen=True)
class Caller:
  """Identity asserted by the CMS through request headers."""

  user_id: str
  is_admin: bool

  @property
  def tier(self) -> RateTier:
    return "admin" if self.is_admin else "authenticated"


@dataclass(frozen=True)
class RateDecision:
  allowed: bool
  limit: int
  remaining: int
  reset_seconds: int


class AIRateLimiter:
  """Fixed one-minute request windows per user.

  The first request of a user opens a window; requests past the tier limit are
  refused until the window closes.
  """

  def __init__(self, limits: dict[RateTier, int], *, window: float = WINDOW_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
    self._limits = limits
    self._window = window
    self._clock = clock
    self._windows: dict[str, tuple[int, float]] = {}

  def hit(self, caller: Caller) -> RateDecision:
    """Count one request and decide whether it may proceed."""
    now = self._clock()
    limit = self._limits[caller.tier]
    key = f"ai:user:{caller.user_id}"

    count, reset_at = self._windows.get(key, (0, 0.0))
    if now >= reset_at:
      count, reset_at = 0, now + self._window
    count += 1
    self._windows[key] = (count, reset_at)
    self._prune(now)

    reset_seconds = max(math.ceil(reset_at - now), 0)
    return RateDecision(allowed=count <= limit, limit=limit, remaining=max(limit - count, 0), reset_seconds=reset_seconds)

  def _prune(self, now: float) -> None:
    # Closed windows carry no state worth keeping.
    expired = [key for key, (_, reset_at) in self._windows.items() if now >= reset_at]
    for key in expired:
      del self._windows[key]


def get_container(request: Request) -> ServiceContainer:
  """Return the service graph built during startup."""
  container: ServiceContainer | None = getattr(request.app.state, "container", None)
  if container is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="AI service is starting up")
  return container


def get_rate_limiter(request: Request, container: ServiceContainer = Depends(get_container)) -> AIRateLimiter:  # noqa: B008
  """One limiter per application, created lazily from settings."""
  limiter: AIRateLimiter | None = getattr(request.app.state, "ai_rate_limiter", None)
  if limiter is None:
    settings = container.settings
    limiter = AIRateLimiter({"authenticated": settings.rate_limit_authenticated, "admin": settings.rate_limit_admin})
    request.app.state.ai_rate_limiter = limiter
  return limiter


async def get_caller(
  x_user_id: str | None = Header(default=None),  # noqa: B008
  x_user_role: str | None = Header(default=None),  # noqa: B008
) -> Caller:
  """Require an authenticated caller; anonymous requests never reach AI features."""
  user_id = (x_user_id or "").strip()
  if not user_id:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required to access AI features.")
  return Caller(user_id=user_id, is_admin=(x_user_role or "").strip().lower() == "admin")


async def enforce_ai_rate_limit(
  response: Response,
  caller: Caller = Depends(get_caller),  # noqa: B008
  limiter: AIRateLimiter = Depends(get_rate_limiter),  # noqa: B008
) -> Caller:
  """Apply the per-user AI rate limit and advertise it in response headers."""
  decision = limiter.hit(caller)
  headers = {
    "X-AI-RateLimit-Limit": str(decision.limit),
    "X-AI-RateLimit-Remaining": str(decision.remaining),
    "X-AI-RateLimit-Reset": str(decision.reset_seconds),
  }

  if not decision.allowed:
    logger.warning("AI rate limit exceeded for user:%s (tier: %s)", caller.user_id, caller.tier)
    raise HTTPException(
      status_code=status.HTTP_429_TOO_MANY_REQUESTS,
      detail="AI rate limit exceeded. Please try again later.",
      headers={**headers, "Retry-After": str(decision.reset_seconds)},
    )

  response.headers.update(headers)
  return caller


async def require_admin(caller: Caller = Depends(enforce_ai_rate_limit)) -> Caller:  # noqa: B008
  if not caller.is_admin:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator role required.")
  return caller
