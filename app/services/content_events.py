"""React to CMS content mutations by queueing moderation and keeping the search index current."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Final, Literal

from app.ai.results import ModerationResult
from app.ai.service import AIService
from app.config import Settings
from app.jobs.queue import AsyncTaskQueue
from app.retrieval.index import EmbeddingIndex

logger = logging.getLogger("app.services.content_events")

ContentEvent = Literal["created", "updated", "deleted"]
ReviewStatus = Literal["approved", "rejected", "needs_review"]

CONTENT_FIELDS: Final[frozenset[str]] = frozenset({"title", "description", "content"})
MIN_INDEXABLE_CHARS: Final[int] = 50
DEFAULT_MODERATION_WAIT_SECONDS: Final[float] = 180.0


@dataclass(frozen=True)
class ContentRecord:
  """The slice of a CMS course, lesson or quiz that AI processing reads."""

  id: str
  title: str = ""
  description: str = ""
  content: str = ""
  subject: str | None = None
  difficulty: str | None = None
  age_tier: str | None = None

  @property
  def body(self) -> str:
    return self.description or self.content or ""

  @property
  def reindex_text(self) -> str:
    """Title and body joined the way a full re-index embeds them."""
    return "\n\n".join(part for part in (self.title, self.body) if part)

  @property
  def display_title(self) -> str:
    return self.title or f"#{self.id}"

  @property
  def metadata(self) -> dict[str, Any]:
    values = {"subject": self.subject, "difficulty": self.difficulty, "age_tier": self.age_tier}
    return {key: value for key, value in values.items() if value is not None}


@dataclass(frozen=True)
class ContentEventOutcome:
  moderation_job_id: str | None = None
  index_job_id: str | None = None
  removed: int = 0


@dataclass
class ReindexReport:
  indexed: int = 0
  errors: int = 0
  failed_ids: list[str] = field(default_factory=list)


def review_status(result: ModerationResult) -> ReviewStatus:
  """Map a moderation verdict onto the CMS review queue status."""
  if result.recommendation == "approve":
    return "approved"
  if result.recommendation == "reject":
    return "rejected"
  return "needs_review"


class ContentEventHandler:
  """Turns create/update/delete notifications into moderation jobs and index updates."""

  def __init__(self, service: AIService, index: EmbeddingIndex, queue: AsyncTaskQueue, settings: Settings) -> None:
    self._service = service
    self._index = index
    self._queue = queue
    self._settings = settings

  def _should_moderate(self, record: ContentRecord) -> bool:
    settings = self._settings
    return settings.ollama_enabled and settings.moderation_enabled and settings.auto_moderate_on_create and bool(record.body)

  def _should_index(self, record: ContentRecord) -> bool:
    settings = self._settings
    return settings.ollama_enabled and settings.search_enabled and len(record.body) > MIN_INDEXABLE_CHARS

  def _submit_index(self, content_type: str, record: ContentRecord) -> str:
    # Taken now so a delete or later edit arriving before the job runs wins.
    generation = self._index.begin_update(content_type, record.id)
    job = self._queue.submit_job("index", lambda: self._index.index_content(content_type, record.id, record.title, record.body, record.metadata, generation=generation))
    return job.id

  def handle(self, event: ContentEvent, content_type: str, record: ContentRecord, changed_fields: Iterable[str] | None = None) -> ContentEventOutcome:
    """Dispatch one lifecycle event; background work is queued, removal happens immediately."""
    if event == "deleted":
      removed = self._index.remove_content(content_type, record.id)
      logger.info("Content %s:%s deleted; removed %s chunks", content_type, record.id, removed)
      return ContentEventOutcome(removed=removed)

    # Updates that leave the text untouched (publishing, reordering) need no AI work.
    if event == "updated" and changed_fields is not None and not CONTENT_FIELDS.intersection(changed_fields):
      logger.debug("Content %s:%s updated without content changes; skipping", content_type, record.id)
      return ContentEventOutcome()

    moderation_job_id = None
    if self._should_moderate(record):
      moderation_job_id = self._service.moderate_async(record.body, content_type, record.age_tier).id

    index_job_id = None
    if self._should_index(record):
      index_job_id = self._submit_index(content_type, record)

    logger.info("Content %s:%s %s; moderation_job=%s index_job=%s", content_type, record.id, event, moderation_job_id, index_job_id)
    return ContentEventOutcome(moderation_job_id=moderation_job_id, index_job_id=index_job_id)

  async def moderation_outcome(self, job_id: str, timeout: float = DEFAULT_MODERATION_WAIT_SECONDS) -> ReviewStatus | None:
    """Wait for a moderation job and return the review status, or None when it failed.

    Raises ``TimeoutError`` when the job does not finish within ``timeout``.
    """
    job = await self._queue.wait_for_job(job_id, timeout)
    if job.status != "completed" or not isinstance(job.result, ModerationResult):
      logger.warning("Moderation job id=%s ended with status=%s error=%s", job_id, job.status, job.error)
      return None
    return review_status(job.result)

  async def reindex_all(self, items: Iterable[tuple[str, ContentRecord]]) -> ReindexReport:
    """Index every item with enough text, one at a time; failures are counted, not raised."""
    report = ReindexReport()

    for content_type, record in items:
      text = record.reindex_text
      if len(text) <= MIN_INDEXABLE_CHARS:
        continue
      try:
        await self._index.index_content(content_type, record.id, record.title, text, record.metadata)
      except Exception as exc:  # noqa: BLE001
        report.errors += 1
        report.failed_ids.append(f"{content_type}:{record.id}")
        logger.warning("Re-index failed for %s:%s: %s", content_type, record.id, exc)
      else:
        report.indexed += 1

    logger.info("Re-index finished indexed=%s errors=%s", report.indexed, report.errors)
    return report


def record_from_payload(payload: Mapping[str, Any]) -> ContentRecord:
  """Build a record from a CMS entity payload, preferring the document id over the row id."""
  record_id = payload.get("documentId") or payload.get("id")
  if record_id is None:
    raise ValueError("Content record must carry an id or documentId.")

  return ContentRecord(
    id=str(record_id),
    title=str(payload.get("title") or payload.get("name") or ""),
    description=str(payload.get("description") or ""),
    content=str(payload.get("content") or ""),
    subject=payload.get("subject"),
    difficulty=payload.get("difficulty"),
    age_tier=payload.get("age_tier") or payload.get("ageTier"),
  )
