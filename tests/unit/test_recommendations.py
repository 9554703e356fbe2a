"""Unit tests for learner profiles and recommendation scoring."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.ai.errors import IndexUnavailableError
from app.recommendations.engine import RecommendationEngine, curriculum_fit
from app.recommendations.models import CourseCandidate, Enrollment, LearnerProfile, ProgressEntry
from app.recommendations.profile import build_profile, select_candidates
from app.retrieval.models import SearchResult

CATALOG = [
  CourseCandidate(id="fiqh-101", subject="fiqh", difficulty="beginner", title="Fiqh of Purification"),
  CourseCandidate(id="fiqh-201", subject="fiqh", difficulty="intermediate", current_enrollments=40, title="Fiqh of Prayer"),
  CourseCandidate(id="fiqh-202", subject="fiqh", difficulty="intermediate", current_enrollments=10, title="Fiqh of Fasting"),
  CourseCandidate(id="fiqh-301", subject="fiqh", difficulty="advanced", current_enrollments=5, title="Usul al-Fiqh"),
  CourseCandidate(id="seerah-101", subject="seerah", difficulty="beginner", current_enrollments=80, is_featured=True, title="Life of the Prophet"),
  CourseCandidate(id="kids-arabic", subject="arabic", difficulty="beginner", age_tier="children", current_enrollments=200, title="Alif Ba Ta"),
]


def _profile(enrollments: list[Enrollment], *, age_tier: str | None = None) -> LearnerProfile:
  return build_profile("u1", enrollments, [ProgressEntry(time_spent=120), ProgressEntry(time_spent=30)], CATALOG, age_tier=age_tier)


def test_build_profile_summarizes_history() -> None:
  profile = _profile([Enrollment("fiqh-101", "completed", 100), Enrollment("fiqh-201", "active", 50), Enrollment("missing", "active", 0)])

  assert profile.enrolled_course_ids == ("fiqh-101", "fiqh-201", "missing")
  assert profile.completed_course_ids == ("fiqh-101",)
  assert profile.subject_histogram["fiqh"] == 2
  assert profile.difficulty_history == ("beginner", "intermediate")
  assert profile.completed_difficulties == ("beginner",)
  assert profile.average_progress == 50
  assert profile.total_time_spent == 150


def test_select_candidates_drops_enrolled_and_other_age_tiers() -> None:
  profile = _profile([Enrollment("fiqh-101", "completed")], age_tier="adults")

  ids = [course.id for course in select_candidates(profile, CATALOG)]

  assert "fiqh-101" not in ids
  assert "kids-arabic" not in ids
  assert "seerah-101" in ids


@pytest.mark.anyio
async def test_cold_start_returns_most_enrolled_courses() -> None:
  profile = _profile([])
  candidates = select_candidates(profile, CATALOG)

  recommendations = await RecommendationEngine().get_recommendations(profile, candidates, limit=3)

  assert [rec.course_id for rec in recommendations] == ["kids-arabic", "seerah-101", "fiqh-201"]
  assert {rec.score for rec in recommendations} == {0.5}
  assert recommendations[1].reason == "Featured course"
  assert recommendations[0].reason == "Popular in the community"


@pytest.mark.anyio
async def test_cold_start_ties_go_to_featured_courses() -> None:
  tied = [CourseCandidate(id="plain", current_enrollments=5), CourseCandidate(id="featured", current_enrollments=5, is_featured=True)]

  recommendations = await RecommendationEngine().get_recommendations(_profile([]), tied, limit=1)

  assert [rec.course_id for rec in recommendations] == ["featured"]


@pytest.mark.anyio
async def test_no_candidates_means_no_recommendations() -> None:
  assert await RecommendationEngine().get_recommendations(_profile([Enrollment("fiqh-101")]), [], limit=5) == []


def test_next_difficulty_level_scores_at_least_same_level() -> None:
  profile = _profile([Enrollment("fiqh-101", "completed")])
  next_level = CourseCandidate(id="a", subject="hadith", difficulty="intermediate")
  same_level = CourseCandidate(id="b", subject="hadith", difficulty="beginner")
  below = CourseCandidate(id="c", subject="hadith", difficulty="beginner")
  advanced_profile = _profile([Enrollment("fiqh-301", "completed")])

  assert curriculum_fit(next_level, profile) == pytest.approx(0.4)
  assert curriculum_fit(same_level, profile) == pytest.approx(0.2)
  assert curriculum_fit(next_level, profile) >= curriculum_fit(same_level, profile)
  assert curriculum_fit(below, advanced_profile) == pytest.approx(0.05)


def test_unknown_difficulty_ranks_lowest_in_progression() -> None:
  unknown = CourseCandidate(id="u", subject="hadith", difficulty=None)
  unlabelled = CourseCandidate(id="v", subject="hadith", difficulty="expert")

  # With nothing completed an unknown level sits level with the learner; afterwards it ranks below.
  assert curriculum_fit(unknown, _profile([Enrollment("fiqh-101", "active")])) == pytest.approx(0.2)
  assert curriculum_fit(unknown, _profile([Enrollment("fiqh-101", "completed")])) == pytest.approx(0.05)
  assert curriculum_fit(unlabelled, _profile([Enrollment("fiqh-201", "completed")])) == pytest.approx(0.05)


def test_curriculum_fit_is_clamped() -> None:
  profile = _profile([Enrollment("fiqh-101", "completed"), Enrollment("fiqh-201", "completed"), Enrollment("fiqh-202", "completed")])
  candidate = CourseCandidate(id="x", subject="fiqh", difficulty="advanced", is_featured=True)

  assert curriculum_fit(candidate, profile) == 1.0


@pytest.mark.anyio
async def test_scored_recommendations_follow_blended_formula() -> None:
  profile = _profile([Enrollment("fiqh-101", "completed")])
  candidates = select_candidates(profile, CATALOG)

  recommendations = await RecommendationEngine().get_recommendations(profile, candidates, limit=10)
  by_id = {rec.course_id: rec for rec in recommendations}

  # fiqh-201: subject 0.4/3, next level 0.4; collaborative 40/200.
  fit = 0.4 / 3 + 0.4
  assert by_id["fiqh-201"].score == pytest.approx(0.7 * fit + 0.3 * (40 / 200))
  assert by_id["fiqh-201"].reason == "Based on your interest in fiqh"
  assert by_id["seerah-101"].reason == "Featured course recommended for you"
  assert by_id["kids-arabic"].reason == "Popular among similar learners"
  assert by_id["fiqh-201"].score > by_id["fiqh-202"].score
  assert [rec.score for rec in recommendations] == sorted((rec.score for rec in recommendations), reverse=True)
  assert all(0.0 <= rec.score <= 1.0 for rec in recommendations)


@pytest.mark.anyio
async def test_similarity_boost_lifts_matching_candidates() -> None:
  profile = _profile([Enrollment("fiqh-101", "completed")])
  candidates = select_candidates(profile, CATALOG)
  index = MagicMock()
  index.search_similar = AsyncMock(return_value=[SearchResult("course", "fiqh-301", "Usul al-Fiqh", "", 0.9)])
  client = MagicMock(enabled=True)
  client.is_available = AsyncMock(return_value=True)

  engine = RecommendationEngine(index, client)
  recommendations = await engine.get_recommendations(profile, candidates, limit=3, catalog={course.id: course for course in CATALOG})

  index.search_similar.assert_awaited_once_with("Fiqh of Purification fiqh beginner", content_type="course", limit=6)
  boosted = next(rec for rec in recommendations if rec.course_id == "fiqh-301")
  assert boosted.reason == "Similar to courses you've completed"
  assert boosted.score >= 0.4


@pytest.mark.anyio
async def test_boost_failure_keeps_unboosted_ranking() -> None:
  profile = _profile([Enrollment("fiqh-101", "completed")])
  candidates = select_candidates(profile, CATALOG)
  index = MagicMock()
  index.search_similar = AsyncMock(side_effect=IndexUnavailableError("down"))
  client = MagicMock(enabled=True)
  client.is_available = AsyncMock(return_value=True)

  plain = await RecommendationEngine().get_recommendations(profile, candidates, limit=4)
  degraded = await RecommendationEngine(index, client).get_recommendations(profile, candidates, limit=4, catalog={course.id: course for course in CATALOG})

  assert [(rec.course_id, rec.score) for rec in degraded] == [(rec.course_id, rec.score) for rec in plain]


@pytest.mark.anyio
async def test_boost_skipped_without_completed_courses() -> None:
  profile = _profile([Enrollment("fiqh-101", "active")])
  index = MagicMock()
  index.search_similar = AsyncMock()
  client = MagicMock(enabled=True)
  client.is_available = AsyncMock(return_value=True)

  await RecommendationEngine(index, client).get_recommendations(profile, select_candidates(profile, CATALOG), limit=3)

  index.search_similar.assert_not_awaited()
