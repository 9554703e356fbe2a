"""Inputs and outputs of course recommendation scoring."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

DIFFICULTY_ORDER: tuple[str, ...] = ("beginner", "intermediate", "advanced")


def difficulty_rank(difficulty: str | None) -> int:
  """Position of ``difficulty`` in the progression, or -1 when unknown."""
  try:
    return DIFFICULTY_ORDER.index((difficulty or "").lower())
  except ValueError:
    return -1


@dataclass(frozen=True)
class Enrollment:
  """A learner's enrollment in one course, as reported by the CMS."""

  course_id: str
  status: str = "active"
  progress: float = 0.0

  @property
  def is_completed(self) -> bool:
    return self.status == "completed"


@dataclass(frozen=True)
class ProgressEntry:
  """A lesson progress record; only time spent matters for scoring."""

  time_spent: float = 0.0


@dataclass(frozen=True)
class CourseCandidate:
  """Read-only view of a CMS course."""

  id: str
  subject: str | None = None
  difficulty: str | None = None
  age_tier: str | None = None
  current_enrollments: int = 0
  is_featured: bool = False
  title: str = ""
  description: str = ""


@dataclass(frozen=True)
class LearnerProfile:
  """Learning history derived from enrollment and progress records at request time."""

  user_id: str
  enrolled_course_ids: tuple[str, ...] = ()
  completed_course_ids: tuple[str, ...] = ()
  subjects: tuple[str, ...] = ()
  subject_histogram: Counter[str] = field(default_factory=Counter)
  difficulty_history: tuple[str, ...] = ()
  completed_difficulties: tuple[str, ...] = ()
  age_tier: str | None = None
  average_progress: float = 0.0
  total_time_spent: float = 0.0

  @property
  def highest_completed_rank(self) -> int:
    return max((difficulty_rank(difficulty) for difficulty in self.completed_difficulties), default=-1)


@dataclass
class Recommendation:
  course_id: str
  score: float
  reason: str
  difficulty: str | None
  subject: str | None
  title: str = ""
  description: str = ""
