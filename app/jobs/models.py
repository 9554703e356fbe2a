"""Domain models for in-process asynchronous AI jobs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

JobStatus = Literal["pending", "processing", "completed", "failed"]
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


@dataclass
class Job:
  """Represents one asynchronous AI job tracked by the queue.

  Timestamps are epoch seconds taken from the queue's clock.
  """

  id: str
  type: str
  status: JobStatus
  created_at: float
  result: Any = None
  error: str | None = None
  started_at: float | None = None
  completed_at: float | None = None

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class QueueStats:
  """Counts of jobs per status at the time of the call."""

  total_jobs: int
  active: int
  pending: int
  completed: int
  failed: int
  max_concurrent: int
