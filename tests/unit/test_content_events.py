"""Unit tests for CMS lifecycle event handling."""

from __future__ import annotations

import asyncio
import json

import pytest

from app.ai.results import ModerationResult
from app.core.container import ServiceContainer
from app.services.content_events import ContentRecord, record_from_payload, review_status

LESSON_TEXT = "Wudu is required before salah. It begins with the intention and washing the hands."


def _verdict(recommendation: str) -> str:
  return json.dumps({"score": 0.8, "flags": [], "reasoning": "ok", "recommendation": recommendation})


@pytest.mark.anyio
async def test_created_content_is_moderated_and_indexed(container, ollama) -> None:
  ollama.generate_replies = [_verdict("approve")]
  record = ContentRecord(id="doc-1", title="Wudu", content=LESSON_TEXT, subject="fiqh")

  outcome = container.events.handle("created", "lesson", record)

  assert outcome.moderation_job_id is not None
  assert outcome.index_job_id is not None
  assert await container.events.moderation_outcome(outcome.moderation_job_id, timeout=5) == "approved"
  await container.queue.wait_for_job(outcome.index_job_id, timeout=5)
  assert container.index.chunks_for("lesson", "doc-1")[0].metadata == {"subject": "fiqh"}


@pytest.mark.anyio
async def test_short_content_is_moderated_but_not_indexed(container) -> None:
  outcome = container.events.handle("created", "quiz", ContentRecord(id="q1", description="Short quiz."))

  assert outcome.moderation_job_id is not None
  assert outcome.index_job_id is None


@pytest.mark.anyio
async def test_update_without_content_changes_does_nothing(container) -> None:
  record = ContentRecord(id="doc-1", title="Wudu", content=LESSON_TEXT)

  outcome = container.events.handle("updated", "lesson", record, changed_fields=["publishedAt", "order"])

  assert outcome.moderation_job_id is None and outcome.index_job_id is None
  assert container.queue.get_queue_stats().total_jobs == 0


@pytest.mark.anyio
async def test_update_with_title_change_requeues_work(container) -> None:
  record = ContentRecord(id="doc-1", title="Wudu (revised)", content=LESSON_TEXT)

  outcome = container.events.handle("updated", "lesson", record, changed_fields=["title"])

  assert outcome.moderation_job_id is not None and outcome.index_job_id is not None


@pytest.mark.anyio
async def test_delete_removes_chunks_immediately(container) -> None:
  await container.index.index_content("course", "c1", "Seerah", "The Makkan period of the Seerah in detail. " * 10)

  outcome = container.events.handle("deleted", "course", ContentRecord(id="c1"))

  assert outcome.removed > 0
  assert container.index.chunks_for("course", "c1") == []


@pytest.mark.anyio
async def test_feature_flags_gate_background_work(make_settings, ollama) -> None:
  services = ServiceContainer.build(make_settings(search_enabled=False, auto_moderate_on_create=False), transport=ollama.transport)
  try:
    outcome = services.events.handle("created", "lesson", ContentRecord(id="doc-1", content=LESSON_TEXT))
  finally:
    await services.aclose()

  assert outcome.moderation_job_id is None and outcome.index_job_id is None


@pytest.mark.anyio
async def test_failed_moderation_has_no_review_status(container, ollama) -> None:
  ollama.generate_replies = ["not json at all"]

  outcome = container.events.handle("created", "lesson", ContentRecord(id="doc-1", content=LESSON_TEXT))

  assert await container.events.moderation_outcome(outcome.moderation_job_id, timeout=5) is None
  assert container.queue.get_job(outcome.moderation_job_id).error == "No valid JSON found in AI response"


@pytest.mark.anyio
async def test_reindex_all_counts_successes_and_failures(container, ollama) -> None:
  items = [
    ("course", ContentRecord(id="c1", description="Quran memorization with a daily plan and revision schedule.")),
    ("lesson", ContentRecord(id="l1", content="tiny")),
    ("lesson", ContentRecord(id="l2", content="Tajweed rules for the letter noon with examples from the quran.")),
  ]
  ollama.embed_failures = 3

  report = await container.events.reindex_all(items)

  # The first item exhausts its retries; the second is too short to index.
  assert report.indexed == 1
  assert report.errors == 1
  assert report.failed_ids == ["course:c1"]
  assert container.index.chunks_for("lesson", "l2")


@pytest.mark.anyio
async def test_delete_while_index_job_waits_keeps_item_out_of_index(make_settings, ollama) -> None:
  services = ServiceContainer.build(make_settings(max_concurrent_jobs=1, auto_moderate_on_create=False), transport=ollama.transport)
  release = asyncio.Event()
  try:
    # Hold the only slot so the index job is still queued when the delete arrives.
    services.queue.submit_job("blocker", release.wait)
    record = ContentRecord(id="c1", title="Wudu", description=LESSON_TEXT)

    outcome = services.events.handle("updated", "lesson", record, changed_fields=["description"])
    deleted = services.events.handle("deleted", "lesson", record)
    release.set()
    job = await services.queue.wait_for_job(outcome.index_job_id, timeout=5)

    assert deleted.removed == 0
    assert job.status == "completed"
    assert services.index.chunks_for("lesson", "c1") == []
  finally:
    await services.aclose()


@pytest.mark.anyio
async def test_reindex_counts_the_title_towards_indexable_text(container) -> None:
  record = ContentRecord(id="c7", title="Foundations of Islamic Jurisprudence for Adults", description="Usul al-fiqh.")

  report = await container.events.reindex_all([("course", record)])

  assert report.indexed == 1
  chunk = container.index.chunks_for("course", "c7")[0]
  assert chunk.text == "Foundations of Islamic Jurisprudence for Adults Usul al-fiqh."
  assert chunk.title == "Foundations of Islamic Jurisprudence for Adults"

def test_review_status_mapping() -> None:
  assert review_status(ModerationResult(score=0.1, recommendation="reject")) == "rejected"
  assert review_status(ModerationResult(score=0.9, recommendation="approve")) == "approved"
  assert review_status(ModerationResult(score=0.5, recommendation="needs_review")) == "needs_review"


def test_record_from_payload_prefers_document_id() -> None:
  record = record_from_payload({"id": 7, "documentId": "abc", "name": "Arabic 1", "description": "Letters", "age_tier": "youth"})

  assert record.id == "abc"
  assert record.title == "Arabic 1"
  assert record.body == "Letters"
  assert record.metadata == {"age_tier": "youth"}

  with pytest.raises(ValueError):
    record_from_payload({"title": "No id"})
