"""Derive learner profiles and candidate course lists from CMS records."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence

from app.recommendations.models import CourseCandidate, Enrollment, LearnerProfile, ProgressEntry


def build_profile(
  user_id: str,
  enrollments: Sequence[Enrollment],
  progress: Iterable[ProgressEntry],
  courses: Iterable[CourseCandidate],
  age_tier: str | None = None,
) -> LearnerProfile:
  """Summarize a learner's history; enrollments for unknown courses still count as enrolled."""
  catalog = {course.id: course for course in courses}
  enrolled: list[str] = []
  completed: list[str] = []
  subjects: list[str] = []
  difficulties: list[str] = []
  completed_difficulties: list[str] = []
  total_progress = 0.0

  for enrollment in enrollments:
    enrolled.append(enrollment.course_id)
    course = catalog.get(enrollment.course_id)
    if enrollment.is_completed:
      completed.append(enrollment.course_id)

    if course is not None and course.subject:
      subjects.append(course.subject)
    if course is not None and course.difficulty:
      difficulties.append(course.difficulty)
      if enrollment.is_completed:
        completed_difficulties.append(course.difficulty)

    total_progress += enrollment.progress or 0.0

  return LearnerProfile(
    user_id=user_id,
    enrolled_course_ids=tuple(enrolled),
    completed_course_ids=tuple(completed),
    subjects=tuple(subjects),
    subject_histogram=Counter(subjects),
    difficulty_history=tuple(difficulties),
    completed_difficulties=tuple(completed_difficulties),
    age_tier=age_tier,
    average_progress=total_progress / len(enrollments) if enrollments else 0.0,
    total_time_spent=sum(entry.time_spent or 0.0 for entry in progress),
  )


def select_candidates(profile: LearnerProfile, courses: Iterable[CourseCandidate]) -> list[CourseCandidate]:
  """Courses the learner is not enrolled in and that suit their age tier."""
  enrolled = set(profile.enrolled_course_ids)
  candidates: list[CourseCandidate] = []

  for course in courses:
    if course.id in enrolled:
      continue
    # Courses without an age tier are open to every learner.
    if profile.age_tier and course.age_tier and course.age_tier != profile.age_tier:
      continue
    candidates.append(course)

  return candidates
