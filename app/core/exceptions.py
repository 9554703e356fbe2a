import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.ai.errors import (
  AIResponseParseError,
  AIServiceError,
  IndexUnavailableError,
  InferenceDisabledError,
  InferenceUnavailableError,
  JobNotFoundError,
  TransientInferenceError,
)

# Most specific classes first; the first isinstance match wins.
_AI_ERROR_STATUS: tuple[tuple[type[AIServiceError], int], ...] = (
  (JobNotFoundError, status.HTTP_404_NOT_FOUND),
  (InferenceDisabledError, status.HTTP_503_SERVICE_UNAVAILABLE),
  (InferenceUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
  (IndexUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
  (TransientInferenceError, status.HTTP_502_BAD_GATEWAY),
  (AIResponseParseError, status.HTTP_502_BAD_GATEWAY),
)


_GENERIC_DETAIL: dict[type[AIServiceError], str] = {
  TransientInferenceError: "AI backend request failed",
  AIResponseParseError: "AI response could not be parsed",
  IndexUnavailableError: "Search index unavailable",
}


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  # Serialize exception instances explicitly to avoid leaking non-serializable objects.
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  """Build the error body shared by every handler."""
  payload: dict[str, Any] = {"detail": detail}
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  # Strip payload values so logs do not carry lesson text.
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(_coerce_json_safe(scrubbed))

  return sanitized


def ai_error_status(exc: AIServiceError) -> int:
  """HTTP status for an AI-layer error; unknown subclasses are server errors."""
  for error_type, status_code in _AI_ERROR_STATUS:
    if isinstance(exc, error_type):
      return status_code
  return status.HTTP_500_INTERNAL_SERVER_ERROR


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Global exception handler to catch unhandled errors."""
  logger = logging.getLogger("uvicorn.error")
  request_id = getattr(request.state, "request_id", None)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Log request validation errors for debugging without leaking payloads."""
  request_id = getattr(request.state, "request_id", None)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger = logging.getLogger("uvicorn.error")
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Handle FastAPI HTTPExceptions while avoiding leaking internal diagnostics."""
  from app.config import get_settings

  settings = get_settings()
  request_id = getattr(request.state, "request_id", None)
  if exc.status_code >= 500:
    logger = logging.getLogger("uvicorn.error")
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id), headers=exc.headers)

  # Log 4xx HTTPExceptions when explicitly enabled for debugging.
  if settings.log_http_4xx:
    logger = logging.getLogger("uvicorn.error")
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)

  # Headers carry Retry-After and rate-limit hints.
  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=exc.headers)


async def ai_service_exception_handler(request: Request, exc: AIServiceError) -> JSONResponse:
  """Map AI-layer failures onto gateway-style status codes."""
  logger = logging.getLogger("uvicorn.error")
  request_id = getattr(request.state, "request_id", None)
  status_code = ai_error_status(exc)

  if status_code >= 500:
    logger.warning("AI failure request_id=%s path=%s error_type=%s status_code=%s error=%s", request_id, request.url.path, type(exc).__name__, status_code, exc)
  if status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
    return JSONResponse(status_code=status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  # Model output and prompts stay out of the response.
  detail = str(exc) if isinstance(exc, JobNotFoundError | InferenceDisabledError | InferenceUnavailableError) else _GENERIC_DETAIL.get(type(exc), "AI request failed")
  return JSONResponse(status_code=status_code, content=_error_payload(detail, request_id=request_id))
