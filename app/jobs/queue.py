"""In-process registry of asynchronous AI jobs with bounded concurrency and time-based expiry."""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from app.ai.errors import JobNotFoundError
from app.jobs.models import Job, QueueStats

logger = logging.getLogger("app.jobs.queue")

TaskFn = Callable[[], Awaitable[Any]]

DEFAULT_MAX_CONCURRENT = 2
DEFAULT_JOB_TTL_SECONDS = 60 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 10 * 60


class AsyncTaskQueue:
  """Runs submitted coroutines in the background, at most ``max_concurrent`` at a time.

  One instance is created per process (see ``app.core.container``). Job state
  lives only in memory: a restart loses every job, and any job older than
  ``job_ttl`` seconds is evicted by the periodic sweep whatever its status, so
  callers must poll or join promptly.

  All mutations of the job table run on the event loop without an intervening
  ``await``, which makes them atomic with respect to each other.
  """

  def __init__(
    self,
    max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    *,
    job_ttl: float = DEFAULT_JOB_TTL_SECONDS,
    sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    clock: Callable[[], float] = time.time,
  ) -> None:
    if max_concurrent < 1:
      raise ValueError("max_concurrent must be at least 1.")
    self.max_concurrent = max_concurrent
    self.job_ttl = job_ttl
    self.sweep_interval = sweep_interval
    self._clock = clock
    self._jobs: dict[str, Job] = {}
    self._tasks: dict[str, asyncio.Task[None]] = {}
    self._slots = asyncio.Semaphore(max_concurrent)
    self._counter = itertools.count(1)
    self._sweeper: asyncio.Task[None] | None = None

  def _next_id(self) -> str:
    return f"ai-job-{int(self._clock() * 1000)}-{next(self._counter)}"

  def submit_job(self, job_type: str, task_fn: TaskFn) -> Job:
    """Register a job and start it in the background; returns immediately with a pending record."""
    job = Job(id=self._next_id(), type=job_type, status="pending", created_at=self._clock())
    self._jobs[job.id] = job

    task = asyncio.create_task(self._run(job, task_fn), name=f"ai-job:{job.id}")
    self._tasks[job.id] = task
    task.add_done_callback(lambda _task, job_id=job.id: self._tasks.pop(job_id, None))
    logger.debug("Submitted job id=%s type=%s", job.id, job_type)
    return job

  async def _run(self, job: Job, task_fn: TaskFn) -> None:
    async with self._slots:
      # A job evicted while it waited for a slot must not run: nobody can observe it any more.
      if self._jobs.get(job.id) is not job:
        logger.info("Job id=%s expired before a slot was free; skipping execution", job.id)
        return

      job.status = "processing"
      job.started_at = self._clock()

      try:
        result = await task_fn()
      except asyncio.CancelledError:
        job.status = "failed"
        job.error = "Job cancelled during shutdown"
        job.completed_at = self._clock()
        raise
      except Exception as exc:
        job.status = "failed"
        job.error = str(exc) or type(exc).__name__
        job.completed_at = self._clock()
        logger.warning("Job id=%s type=%s failed: %s", job.id, job.type, job.error)
      else:
        job.result = result
        job.status = "completed"
        job.completed_at = self._clock()
        logger.info("Job id=%s type=%s completed in %.2fs", job.id, job.type, job.completed_at - job.started_at)

  def get_job(self, job_id: str) -> Job | None:
    """Return the job record, or None when unknown or expired."""
    return self._jobs.get(job_id)

  def require_job(self, job_id: str) -> Job:
    """Return the job record or raise ``JobNotFoundError``."""
    job = self._jobs.get(job_id)
    if job is None:
      raise JobNotFoundError(job_id)
    return job

  async def wait_for_job(self, job_id: str, timeout: float | None = None) -> Job:
    """Wait until the job reaches a terminal state (or is skipped) and return its record.

    Raises ``TimeoutError`` when ``timeout`` elapses first; the job itself keeps running.
    """
    job = self.require_job(job_id)
    task = self._tasks.get(job_id)
    if task is not None:
      await asyncio.wait_for(asyncio.shield(task), timeout)
    return job

  def get_queue_stats(self) -> QueueStats:
    counts = {"pending": 0, "processing": 0, "completed": 0, "failed": 0}
    for job in self._jobs.values():
      counts[job.status] += 1

    return QueueStats(
      total_jobs=len(self._jobs),
      active=counts["processing"],
      pending=counts["pending"],
      completed=counts["completed"],
      failed=counts["failed"],
      max_concurrent=self.max_concurrent,
    )

  def sweep_expired(self) -> int:
    """Evict every job created more than ``job_ttl`` seconds ago; returns the number evicted."""
    now = self._clock()
    expired = [job_id for job_id, job in self._jobs.items() if now - job.created_at > self.job_ttl]
    for job_id in expired:
      del self._jobs[job_id]

    if expired:
      logger.info("Evicted %s expired jobs (%s remaining)", len(expired), len(self._jobs))
    return len(expired)

  async def _sweep_forever(self) -> None:
    while True:
      await asyncio.sleep(self.sweep_interval)
      self.sweep_expired()

  def start(self) -> None:
    """Start the periodic expiry sweep on the running loop."""
    if self._sweeper is None or self._sweeper.done():
      self._sweeper = asyncio.create_task(self._sweep_forever(), name="ai-job-sweeper")

  async def stop(self) -> None:
    """Stop the sweep and cancel jobs still in flight."""
    pending: list[asyncio.Task[None]] = list(self._tasks.values())
    if self._sweeper is not None:
      pending.append(self._sweeper)
      self._sweeper = None

    for task in pending:
      task.cancel()
    # Cancelled tasks re-raise CancelledError; only completion matters here.
    with contextlib.suppress(asyncio.CancelledError):
      await asyncio.gather(*pending, return_exceptions=True)
