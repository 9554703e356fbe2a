"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

import pytest

from app.ai.errors import (
  AIResponseParseError,
  AIServiceError,
  IndexUnavailableError,
  InferenceDisabledError,
  InferenceUnavailableError,
  JobNotFoundError,
  TransientInferenceError,
)
from app.core.exceptions import _error_payload, _sanitize_validation_errors, ai_error_status


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "value_error", "loc": ("body", "content"), "msg": "Value error, bad lesson.", "input": {"content": "<p>lesson</p>"}, "ctx": {"error": ValueError("bad lesson."), "input": "<p>lesson</p>"}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["loc"] == ["body", "content"]
  assert sanitized[0]["ctx"]["error"] == "ValueError: bad lesson."
  assert "input" not in sanitized[0]["ctx"]


@pytest.mark.parametrize(
  ("error", "expected"),
  [
    (JobNotFoundError("abc"), 404),
    (InferenceDisabledError("off"), 503),
    (InferenceUnavailableError("down"), 503),
    (IndexUnavailableError("no vectors"), 503),
    (TransientInferenceError("timeout", status_code=504), 502),
    (AIResponseParseError("bad json"), 502),
    (AIServiceError("unexpected"), 500),
  ],
)
def test_ai_errors_map_to_http_status(error: AIServiceError, expected: int) -> None:
  assert ai_error_status(error) == expected


def test_error_payload_carries_request_id_only_when_known() -> None:
  assert _error_payload("nope") == {"detail": "nope"}
  assert _error_payload("nope", request_id="r-1") == {"detail": "nope", "requestId": "r-1"}
