"""Typed views of the JSON payloads the model is asked to return."""

from __future__ import annotations

from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.ai.errors import AIResponseParseError

ModerationVerdict = Literal["approve", "needs_review", "reject"]


class _ModelOutput(BaseModel):
  model_config = ConfigDict(populate_by_name=True, extra="ignore")


_ModelOutputT = TypeVar("_ModelOutputT", bound=_ModelOutput)


class ModerationFlag(_ModelOutput):
  type: str
  severity: str = "low"
  description: str = ""


class ModerationResult(_ModelOutput):
  """Moderation verdict; ``score`` is 1.0 for completely safe content."""

  score: float = Field(ge=0.0, le=1.0)
  flags: list[ModerationFlag] = Field(default_factory=list)
  reasoning: str = ""
  recommendation: ModerationVerdict = "needs_review"

  @field_validator("score", mode="before")
  @classmethod
  def _clamp_score(cls, value: Any) -> Any:
    """Clamp numeric scores the model placed slightly outside [0, 1]."""
    if isinstance(value, int | float) and not isinstance(value, bool):
      return min(max(float(value), 0.0), 1.0)
    return value

  @field_validator("recommendation", mode="before")
  @classmethod
  def _normalize_recommendation(cls, value: Any) -> Any:
    """Anything the model invents beyond the three verdicts goes to human review."""
    normalized = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    return normalized if normalized in ("approve", "needs_review", "reject") else "needs_review"


class TagSuggestion(_ModelOutput):
  subject: str
  difficulty: str
  age_tier: str = Field(alias="ageTier")
  keywords: list[str] = Field(default_factory=list)


class QuizQuestion(_ModelOutput):
  question: str
  type: str = "multiple_choice"
  options: list[str] = Field(default_factory=list)
  correct_answer: str = Field(alias="correctAnswer")
  explanation: str = ""
  points: int = 10


class QuizResult(_ModelOutput):
  questions: list[QuizQuestion] = Field(default_factory=list)


def coerce_output(model: type[_ModelOutputT], payload: dict[str, Any]) -> _ModelOutputT:
  """Validate parsed model output, reporting schema mismatches as parse errors."""
  try:
    return model.model_validate(payload)
  except ValidationError as exc:
    raise AIResponseParseError(f"AI response did not match the {model.__name__} shape: {exc.error_count()} errors") from exc
