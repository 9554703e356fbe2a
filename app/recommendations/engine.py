"""Personalized course recommendation scoring."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Final

from app.ai.errors import ScoringDegradationError
from app.ai.inference import InferenceClient
from app.ai.text import truncate
from app.recommendations.models import CourseCandidate, LearnerProfile, Recommendation, difficulty_rank
from app.retrieval.index import EmbeddingIndex

logger = logging.getLogger("app.recommendations.engine")

COLD_START_SCORE: Final[float] = 0.5
DESCRIPTION_CHARS: Final[int] = 200

# Weights of the blended score; curriculum fit also stands in for content similarity.
SIMILARITY_WEIGHT: Final[float] = 0.4
COLLABORATIVE_WEIGHT: Final[float] = 0.3
CURRICULUM_WEIGHT: Final[float] = 0.3

BOOST_KEEP: Final[float] = 0.6
BOOST_FLOOR: Final[float] = 0.4


def curriculum_fit(candidate: CourseCandidate, profile: LearnerProfile) -> float:
  """Subject affinity, difficulty progression and featured bonus, clamped to [0, 1]."""
  score = 0.0

  times_studied = profile.subject_histogram.get(candidate.subject or "", 0)
  if times_studied:
    score += 0.4 * min(times_studied / 3, 1.0)

  # Progression is measured against completed courses only; with none, beginner is the next step.
  # Unknown difficulties rank -1: level with a learner who completed nothing, below anyone else.
  candidate_rank = difficulty_rank(candidate.difficulty)
  highest = profile.highest_completed_rank
  if candidate_rank == highest + 1:
    score += 0.4
  elif candidate_rank == highest:
    score += 0.2
  elif candidate_rank < highest:
    score += 0.05

  if candidate.is_featured:
    score += 0.2

  return min(score, 1.0)


def collaborative_score(candidate: CourseCandidate, batch_max_enrollments: int) -> float:
  """Enrollment count relative to the most popular candidate in this batch."""
  return (candidate.current_enrollments or 0) / max(batch_max_enrollments, 1)


def _reason(candidate: CourseCandidate, profile: LearnerProfile, collaborative: float) -> str:
  if candidate.subject and candidate.subject in profile.subject_histogram:
    return f"Based on your interest in {candidate.subject}"
  if candidate.is_featured:
    return "Featured course recommended for you"
  if collaborative > 0.5:
    return "Popular among similar learners"
  return "Expands your learning path"


def _recommendation(candidate: CourseCandidate, score: float, reason: str) -> Recommendation:
  return Recommendation(
    course_id=candidate.id,
    score=score,
    reason=reason,
    difficulty=candidate.difficulty,
    subject=candidate.subject,
    title=candidate.title,
    description=truncate(candidate.description or "", DESCRIPTION_CHARS, suffix=""),
  )


def cold_start(candidates: Sequence[CourseCandidate], limit: int) -> list[Recommendation]:
  """Most-enrolled courses first, featured courses winning ties."""
  ranked = sorted(candidates, key=lambda course: (-(course.current_enrollments or 0), not course.is_featured))
  return [_recommendation(course, COLD_START_SCORE, "Featured course" if course.is_featured else "Popular in the community") for course in ranked[:limit]]


class RecommendationEngine:
  """Scores un-enrolled courses for a learner, optionally boosted by semantic similarity."""

  def __init__(self, index: EmbeddingIndex | None = None, client: InferenceClient | None = None, *, boost_enabled: bool = True) -> None:
    self._index = index
    self._client = client
    self.boost_enabled = boost_enabled

  async def get_recommendations(
    self,
    profile: LearnerProfile,
    candidates: Sequence[CourseCandidate],
    limit: int = 5,
    *,
    catalog: Mapping[str, CourseCandidate] | None = None,
  ) -> list[Recommendation]:
    """Return at most ``limit`` recommendations ordered by score, highest first.

    ``catalog`` maps course ids to courses and is used to describe the learner's
    most recently completed course for the similarity boost.
    """
    if not candidates or limit <= 0:
      return []

    if not profile.enrolled_course_ids:
      return cold_start(candidates, limit)

    batch_max = max((course.current_enrollments or 0 for course in candidates), default=0)
    scored: list[Recommendation] = []
    for candidate in candidates:
      fit = curriculum_fit(candidate, profile)
      collaborative = collaborative_score(candidate, batch_max)
      total = SIMILARITY_WEIGHT * fit + COLLABORATIVE_WEIGHT * collaborative + CURRICULUM_WEIGHT * fit
      scored.append(_recommendation(candidate, total, _reason(candidate, profile, collaborative)))

    try:
      await self._apply_similarity_boost(scored, profile, catalog or {}, limit)
    except Exception as exc:  # noqa: BLE001
      degradation = exc if isinstance(exc, ScoringDegradationError) else ScoringDegradationError(f"Similarity boost failed: {exc}")
      logger.warning("Recommendations for user=%s served without similarity boost: %s", profile.user_id, degradation)

    scored.sort(key=lambda rec: rec.score, reverse=True)
    return scored[:limit]

  async def _apply_similarity_boost(
    self,
    scored: list[Recommendation],
    profile: LearnerProfile,
    catalog: Mapping[str, CourseCandidate],
    limit: int,
  ) -> None:
    if not self.boost_enabled or self._index is None or self._client is None or not self._client.enabled:
      return
    if not profile.completed_course_ids:
      return
    if not await self._client.is_available():
      return

    anchor = catalog.get(profile.completed_course_ids[-1])
    if anchor is None:
      return

    query = " ".join(part for part in (anchor.title, anchor.subject, anchor.difficulty) if part)
    similar = await self._index.search_similar(query, content_type="course", limit=limit * 2)
    similar_ids = {result.content_id for result in similar}

    for rec in scored:
      if rec.course_id in similar_ids:
        rec.score = rec.score * BOOST_KEEP + BOOST_FLOOR
        rec.reason = "Similar to courses you've completed"
