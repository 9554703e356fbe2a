from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.ai.errors import AIServiceError
from app.api.routes import ai
from app.config import get_settings
from app.core.exceptions import ai_service_exception_handler, global_exception_handler, http_exception_handler, request_validation_exception_handler
from app.core.lifespan import lifespan
from app.core.middleware import RequestLoggingMiddleware

settings = get_settings()

app = FastAPI(title="Taqwa AI Engine", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(
  CORSMiddleware,
  allow_origins=list(settings.allowed_origins),
  allow_credentials=True,
  allow_methods=["GET", "POST", "OPTIONS"],
  allow_headers=["content-type", "authorization", "x-user-id", "x-user-role", "x-request-id"],
  expose_headers=["content-length", "retry-after", "x-request-id", "x-ai-ratelimit-limit", "x-ai-ratelimit-remaining", "x-ai-ratelimit-reset"],
)

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(AIServiceError, ai_service_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple liveness status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(ai.router, prefix="/api/v1/ai", tags=["ai"])
