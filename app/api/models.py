from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator
from pydantic.alias_generators import to_camel

from app.jobs.models import Job, JobStatus

MAX_CONTENT_CHARS = 50_000
MAX_SEARCH_LIMIT = 50
MAX_RECOMMENDATION_LIMIT = 20
MAX_QUIZ_QUESTIONS = 20

T = TypeVar("T")


class ApiModel(BaseModel):
  """Base for request/response bodies; JSON keys are camelCase like the CMS sends them."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DataResponse(ApiModel, Generic[T]):
  """Envelope used by every successful response."""

  data: T


class ModerateRequest(ApiModel):
  content: StrictStr = Field(min_length=1, description="Raw content, HTML allowed.")
  content_type: StrictStr = Field(min_length=1, description="CMS content type such as course, lesson or quiz.", examples=["lesson"])
  age_tier: StrictStr | None = Field(default=None, description="Target age tier used to judge age fit.", examples=["youth"])
  run_async: bool = Field(default=False, alias="async", description="Queue the moderation and return a job id.")


class ModerationFlagModel(ApiModel):
  type: str
  severity: str
  description: str


class ModerationResponse(ApiModel):
  score: float
  flags: list[ModerationFlagModel]
  reasoning: str
  recommendation: Literal["approve", "needs_review", "reject"]


class JobAcceptedResponse(ApiModel):
  job_id: str
  status: JobStatus


class SummarizeRequest(ApiModel):
  content: StrictStr = Field(min_length=1)


class SummaryResponse(ApiModel):
  summary: str


class GenerateTagsRequest(ApiModel):
  content: StrictStr = Field(min_length=1)
  title: StrictStr = Field(min_length=1)


class TagSuggestionResponse(ApiModel):
  subject: str
  difficulty: str
  age_tier: str
  keywords: list[str]


class GenerateQuizRequest(ApiModel):
  content: StrictStr = Field(min_length=1)
  question_count: int = Field(default=5, description="Clamped to 1-20.")
  difficulty: Literal["beginner", "intermediate", "advanced"] = "intermediate"

  @field_validator("question_count", mode="before")
  @classmethod
  def _clamp_question_count(cls, value: Any) -> int:
    """Out-of-range or unparseable counts fall back into 1-20 instead of failing."""
    try:
      count = int(value)
    except (TypeError, ValueError):
      return 5
    return min(max(count, 1), MAX_QUIZ_QUESTIONS)

  @field_validator("difficulty", mode="before")
  @classmethod
  def _default_difficulty(cls, value: Any) -> str:
    return value if value in ("beginner", "intermediate", "advanced") else "intermediate"


class QuizQuestionModel(ApiModel):
  question: str
  type: str
  options: list[str]
  correct_answer: str
  explanation: str
  points: int


class QuizResponse(ApiModel):
  questions: list[QuizQuestionModel]


class JobResponse(ApiModel):
  id: str
  type: str
  status: JobStatus
  result: Any = None
  error: str | None = None
  created_at: datetime
  started_at: datetime | None = None
  completed_at: datetime | None = None

  @classmethod
  def from_job(cls, job: Job) -> JobResponse:
    def _ts(value: float | None) -> datetime | None:
      return datetime.fromtimestamp(value, tz=UTC) if value is not None else None

    result = job.result.model_dump(by_alias=True) if isinstance(job.result, BaseModel) else job.result
    return cls(
      id=job.id,
      type=job.type,
      status=job.status,
      result=result,
      error=job.error,
      created_at=_ts(job.created_at),
      started_at=_ts(job.started_at),
      completed_at=_ts(job.completed_at),
    )


class SearchRequest(ApiModel):
  query: StrictStr = Field(min_length=3, description="Free-text query, at least 3 characters.")
  content_type: StrictStr | None = Field(default=None, examples=["course"])
  limit: int = Field(default=10, ge=1, description="Clamped to 50.")

  @field_validator("query")
  @classmethod
  def _strip_query(cls, value: str) -> str:
    stripped = value.strip()
    if len(stripped) < 3:
      raise ValueError("Query must contain at least 3 non-blank characters.")
    return stripped

  @field_validator("limit")
  @classmethod
  def _cap_limit(cls, value: int) -> int:
    return min(value, MAX_SEARCH_LIMIT)


class SearchResultModel(ApiModel):
  content_type: str
  content_id: str
  title: str
  snippet: str
  score: float
  metadata: dict[str, Any] = Field(default_factory=dict)


class EnrollmentModel(ApiModel):
  course_id: StrictStr
  status: str = "active"
  progress: float = 0.0


class ProgressModel(ApiModel):
  time_spent: float = 0.0


class CourseModel(ApiModel):
  id: StrictStr
  title: str = ""
  description: str = ""
  subject: str | None = None
  difficulty: str | None = None
  age_tier: str | None = None
  current_enrollments: int = Field(default=0, ge=0)
  is_featured: bool = False


class RecommendRequest(ApiModel):
  user_id: StrictStr = Field(min_length=1)
  enrollments: list[EnrollmentModel] = Field(default_factory=list)
  progress: list[ProgressModel] = Field(default_factory=list)
  courses: list[CourseModel] = Field(default_factory=list, description="Published courses to choose from.")
  age_tier: str | None = None
  limit: int = Field(default=5, ge=1, description="Clamped to 20.")

  @field_validator("limit")
  @classmethod
  def _cap_limit(cls, value: int) -> int:
    return min(value, MAX_RECOMMENDATION_LIMIT)


class RecommendationModel(ApiModel):
  course_id: str
  title: str
  description: str
  score: float
  reason: str
  difficulty: str | None
  subject: str | None


class ContentEventRequest(ApiModel):
  event: Literal["created", "updated", "deleted"]
  content_type: StrictStr = Field(min_length=1, examples=["lesson"])
  record: dict[str, Any] = Field(description="CMS entity after the mutation; must carry documentId or id.")
  changed_fields: list[str] | None = Field(default=None, description="Fields written by an update.")


class ContentEventResponse(ApiModel):
  moderation_job_id: str | None = None
  index_job_id: str | None = None
  removed: int = 0


class ReindexItem(ApiModel):
  content_type: StrictStr = Field(min_length=1)
  record: dict[str, Any]


class ReindexRequest(ApiModel):
  items: list[ReindexItem] = Field(default_factory=list)


class ReindexResponse(ApiModel):
  indexed: int
  errors: int
