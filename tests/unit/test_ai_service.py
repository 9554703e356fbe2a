"""Unit tests for prompt-based AI operations over a stubbed backend."""

from __future__ import annotations

import json

import pytest

from app.ai.errors import AIResponseParseError, InferenceUnavailableError
from app.ai.prompts import SYSTEM_CONTEXT
from app.ai.service import AIService, FeatureFlags
from app.jobs.queue import AsyncTaskQueue

MODERATION_REPLY = json.dumps(
  {
    "score": 0.92,
    "flags": [{"type": "QUALITY", "severity": "low", "description": "Could cite the surah number."}],
    "reasoning": "Accurate and age appropriate.",
    "recommendation": "approve",
  }
)


@pytest.fixture
async def service(inference_client):
  queue = AsyncTaskQueue(max_concurrent=1)
  yield AIService(inference_client, queue, FeatureFlags(moderation=True, search=True, recommendations=True))
  await queue.stop()


@pytest.mark.anyio
async def test_moderate_strips_html_and_parses_verdict(service, ollama) -> None:
  ollama.generate_replies = [f"Sure!\n```json\n{MODERATION_REPLY}\n```"]

  result = await service.moderate("<p>Surah <b>Al-Fatiha</b> opens every prayer.</p>", "lesson", "youth")

  assert result.score == pytest.approx(0.92)
  assert result.recommendation == "approve"
  assert result.flags[0].type == "QUALITY"
  body = ollama.bodies("/api/generate")[0]
  assert body["system"] == SYSTEM_CONTEXT
  assert body["options"]["temperature"] == 0.1
  assert "Surah Al-Fatiha opens every prayer." in body["prompt"]
  assert "<b>" not in body["prompt"]
  assert 'targeted at the "youth" age tier' in body["prompt"]


@pytest.mark.anyio
async def test_moderate_truncates_long_content(service, ollama) -> None:
  ollama.generate_replies = [MODERATION_REPLY]

  await service.moderate("z" * 9000, "course")

  prompt = ollama.bodies("/api/generate")[0]["prompt"]
  assert "z" * 4000 in prompt
  assert "z" * 4001 not in prompt


@pytest.mark.anyio
async def test_unknown_verdict_goes_to_review(service, ollama) -> None:
  ollama.generate_replies = ['{"score": 1.3, "flags": [], "reasoning": "", "recommendation": "maybe"}']

  result = await service.moderate("Content", "quiz")

  assert result.recommendation == "needs_review"
  assert result.score == 1.0


@pytest.mark.anyio
async def test_moderate_requires_available_backend(service, ollama) -> None:
  ollama.available = False

  with pytest.raises(InferenceUnavailableError):
    await service.moderate("Content", "lesson")
  assert ollama.bodies("/api/generate") == []


@pytest.mark.anyio
async def test_moderate_rejects_non_json_output(service, ollama) -> None:
  ollama.generate_replies = ["This content looks fine to me."]

  with pytest.raises(AIResponseParseError):
    await service.moderate("Content", "lesson")


@pytest.mark.anyio
async def test_moderate_async_runs_through_the_queue(service, ollama) -> None:
  ollama.generate_replies = [MODERATION_REPLY]

  job = service.moderate_async("Content", "lesson")
  assert job.type == "moderation"

  await service._queue.wait_for_job(job.id, timeout=5)
  assert service.get_job(job.id).status == "completed"
  assert job.result.recommendation == "approve"


@pytest.mark.anyio
async def test_short_content_is_summarized_in_one_call(service, ollama) -> None:
  ollama.generate_replies = ["  A lesson about wudu.  "]

  assert await service.summarize("<p>Wudu has four obligatory acts.</p>") == "A lesson about wudu."
  body = ollama.bodies("/api/generate")[0]
  assert body["options"]["temperature"] == 0.3


@pytest.mark.anyio
async def test_long_content_is_summarized_piecewise_then_combined(service, ollama) -> None:
  text = "The Seerah covers the Makkan period. " * 200
  ollama.generate_replies = ["part one", "part two", "part three", "final summary"]

  summary = await service.summarize(text)

  prompts = [body["prompt"] for body in ollama.bodies("/api/generate")]
  assert summary == "final summary"
  assert len(prompts) == 4
  assert "part one\n\npart two\n\npart three" in prompts[-1]


@pytest.mark.anyio
async def test_generate_tags_reads_camel_case_keys(service, ollama) -> None:
  ollama.generate_replies = ['{"subject": "tajweed", "difficulty": "beginner", "ageTier": "children", "keywords": ["noon sakinah", "ikhfa"]}']

  tags = await service.generate_tags("Rules of noon sakinah.", "Tajweed Basics")

  assert tags.subject == "tajweed"
  assert tags.age_tier == "children"
  assert tags.keywords == ["noon sakinah", "ikhfa"]
  body = ollama.bodies("/api/generate")[0]
  assert "Title: Tajweed Basics" in body["prompt"]
  assert body["options"]["temperature"] == 0.2


@pytest.mark.anyio
async def test_generate_quiz_uses_larger_token_budget(service, ollama) -> None:
  question = {
    "question": "How many rakahs are in Fajr?",
    "type": "multiple_choice",
    "options": ["1", "2", "3", "4"],
    "correctAnswer": "2",
    "explanation": "Fajr has two obligatory rakahs.",
    "points": 10,
  }
  ollama.generate_replies = [json.dumps({"questions": [question]})]

  quiz = await service.generate_quiz("Fajr prayer details.", 1, "beginner")

  assert quiz.questions[0].correct_answer == "2"
  body = ollama.bodies("/api/generate")[0]
  assert body["options"]["temperature"] == 0.5
  assert body["options"]["num_predict"] == 4096
  assert "Generate 1 multiple-choice quiz questions" in body["prompt"]
  assert "Difficulty level: beginner." in body["prompt"]


@pytest.mark.anyio
async def test_quiz_with_wrong_shape_is_a_parse_error(service, ollama) -> None:
  ollama.generate_replies = ['{"questions": [{"options": ["a"]}]}']

  with pytest.raises(AIResponseParseError):
    await service.generate_quiz("Content")


@pytest.mark.anyio
async def test_health_combines_backend_queue_and_flags(service) -> None:
  report = await service.health()

  assert report.inference.available is True
  assert report.queue.max_concurrent == 1
  assert report.features.search is True
