"""AI operations exposed to the CMS: moderation, summaries, tagging and quiz generation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Final

from app.ai import prompts
from app.ai.errors import InferenceUnavailableError
from app.ai.inference import InferenceClient, InferenceHealth
from app.ai.json_parser import parse_json_object
from app.ai.results import ModerationResult, QuizResult, TagSuggestion, coerce_output
from app.ai.text import split_at_sentences, strip_html
from app.jobs.models import Job, QueueStats
from app.jobs.queue import AsyncTaskQueue

logger = logging.getLogger("app.ai.service")

MAX_PROMPT_CONTENT_CHARS: Final[int] = 4000
SUMMARY_PIECE_CHARS: Final[int] = 3000

MODERATION_TEMPERATURE: Final[float] = 0.1
SUMMARY_TEMPERATURE: Final[float] = 0.3
TAGGING_TEMPERATURE: Final[float] = 0.2
QUIZ_TEMPERATURE: Final[float] = 0.5
QUIZ_MAX_TOKENS: Final[int] = 4096


@dataclass(frozen=True)
class FeatureFlags:
  moderation: bool
  search: bool
  recommendations: bool


@dataclass(frozen=True)
class AIHealth:
  inference: InferenceHealth
  queue: QueueStats
  features: FeatureFlags


class AIService:
  """Runs prompt-based AI operations against the inference backend."""

  def __init__(self, client: InferenceClient, queue: AsyncTaskQueue, features: FeatureFlags) -> None:
    self._client = client
    self._queue = queue
    self.features = features

  async def _require_available(self) -> None:
    if not await self._client.is_available():
      raise InferenceUnavailableError("AI service unavailable")

  async def _generate_json(self, prompt: str, *, temperature: float, max_tokens: int | None = None) -> dict[str, Any]:
    response = await self._client.generate(prompt, system=prompts.SYSTEM_CONTEXT, temperature=temperature, max_tokens=max_tokens)
    return parse_json_object(response)

  async def moderate(self, content: str, content_type: str, age_tier: str | None = None) -> ModerationResult:
    """Score content for accuracy, age fit and safety."""
    await self._require_available()

    text = strip_html(content)[:MAX_PROMPT_CONTENT_CHARS]
    payload = await self._generate_json(prompts.render_moderation_prompt(text, content_type, age_tier), temperature=MODERATION_TEMPERATURE)
    result = coerce_output(ModerationResult, payload)
    logger.info("Moderated %s content chars=%s score=%.2f recommendation=%s", content_type, len(text), result.score, result.recommendation)
    return result

  def moderate_async(self, content: str, content_type: str, age_tier: str | None = None) -> Job:
    """Queue a moderation job and return its pending record."""
    return self._queue.submit_job("moderation", lambda: self.moderate(content, content_type, age_tier))

  async def summarize(self, content: str) -> str:
    """Summarize content; long text is summarized piecewise, then the summaries are combined."""
    await self._require_available()

    pieces = split_at_sentences(strip_html(content), SUMMARY_PIECE_CHARS)
    if len(pieces) == 1:
      return await self._summarize_piece(pieces[0])

    summaries = [await self._summarize_piece(piece) for piece in pieces]
    logger.debug("Combining %s partial summaries", len(summaries))
    return await self._summarize_piece("\n\n".join(summaries))

  async def _summarize_piece(self, text: str) -> str:
    summary = await self._client.generate(prompts.render_summary_prompt(text), system=prompts.SYSTEM_CONTEXT, temperature=SUMMARY_TEMPERATURE)
    return summary.strip()

  async def generate_tags(self, content: str, title: str) -> TagSuggestion:
    """Suggest subject, difficulty, age tier and keywords for content."""
    await self._require_available()

    text = strip_html(content)[:MAX_PROMPT_CONTENT_CHARS]
    payload = await self._generate_json(prompts.render_tagging_prompt(text, title), temperature=TAGGING_TEMPERATURE)
    return coerce_output(TagSuggestion, payload)

  async def generate_quiz(self, content: str, question_count: int = 5, difficulty: str = "intermediate") -> QuizResult:
    await self._require_available()

    text = strip_html(content)[:MAX_PROMPT_CONTENT_CHARS]
    payload = await self._generate_json(prompts.render_quiz_prompt(text, question_count, difficulty), temperature=QUIZ_TEMPERATURE, max_tokens=QUIZ_MAX_TOKENS)
    result = coerce_output(QuizResult, payload)
    logger.info("Generated %s quiz questions (requested %s, difficulty=%s)", len(result.questions), question_count, difficulty)
    return result

  def get_job(self, job_id: str) -> Job:
    return self._queue.require_job(job_id)

  async def health(self) -> AIHealth:
    return AIHealth(inference=await self._client.health(), queue=self._queue.get_queue_stats(), features=self.features)
