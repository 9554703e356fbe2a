"""Error taxonomy for the AI orchestration and retrieval layer."""

from __future__ import annotations


class AIServiceError(Exception):
  """Base class for every error raised by the AI layer."""


class InferenceError(AIServiceError):
  """Base class for failures talking to the inference backend."""


class TransientInferenceError(InferenceError):
  """Timeout, transport failure, non-2xx status or malformed body from the backend."""

  def __init__(self, message: str, *, status_code: int | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code


class InferenceDisabledError(InferenceError):
  """Raised immediately when the inference backend is switched off by configuration."""


class InferenceUnavailableError(InferenceError):
  """Raised when a health probe shows the backend is not reachable before a generation call."""


class AIResponseParseError(AIServiceError):
  """Raised when model output does not contain the expected JSON payload."""


class JobNotFoundError(AIServiceError):
  """Raised when a job id is unknown or has already expired."""

  def __init__(self, job_id: str) -> None:
    super().__init__(f"Job not found: {job_id}")
    self.job_id = job_id


class IndexUnavailableError(AIServiceError):
  """Raised when vector search cannot run; callers fall back to keyword search."""


class ScoringDegradationError(AIServiceError):
  """Raised inside the recommendation boost step; always swallowed by the engine."""
