import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from app.api.deps import Caller, enforce_ai_rate_limit, get_container, require_admin
from app.api.models import (
  MAX_CONTENT_CHARS,
  ContentEventRequest,
  ContentEventResponse,
  DataResponse,
  GenerateQuizRequest,
  GenerateTagsRequest,
  JobAcceptedResponse,
  JobResponse,
  ModerateRequest,
  ModerationResponse,
  QuizResponse,
  RecommendationModel,
  RecommendRequest,
  ReindexRequest,
  ReindexResponse,
  SearchRequest,
  SearchResultModel,
  SummarizeRequest,
  SummaryResponse,
  TagSuggestionResponse,
)
from app.core.container import ServiceContainer
from app.recommendations.models import CourseCandidate, Enrollment, ProgressEntry
from app.recommendations.profile import build_profile, select_candidates
from app.services.content_events import ContentRecord, record_from_payload

router = APIRouter()
logger = logging.getLogger("app.api.routes.ai")


def _check_content_size(content: str) -> None:
  """Reject oversized payloads before any inference work starts."""
  if len(content) > MAX_CONTENT_CHARS:
    raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=f"Content too large. Maximum {MAX_CONTENT_CHARS} characters allowed.")


def _record(payload: dict[str, Any]) -> ContentRecord:
  try:
    return record_from_payload(payload)
  except ValueError as exc:
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@router.get("/health")
async def health(container: ServiceContainer = Depends(get_container)) -> dict[str, Any]:  # noqa: B008
  """Report inference health, queue load and feature flags; no authentication."""
  report = await container.service.health()
  return {"data": {"ollama": asdict(report.inference), "queue": asdict(report.queue), "features": asdict(report.features)}}


@router.post("/moderate", response_model=DataResponse[ModerationResponse], responses={202: {"model": DataResponse[JobAcceptedResponse]}})
async def moderate(  # noqa: B008
  payload: ModerateRequest,
  caller: Caller = Depends(enforce_ai_rate_limit),  # noqa: B008
  container: ServiceContainer = Depends(get_container),  # noqa: B008
) -> Any:
  """Moderate content now, or queue it when ``async`` is set."""
  _check_content_size(payload.content)

  if payload.run_async:
    job = container.service.moderate_async(payload.content, payload.content_type, payload.age_tier)
    accepted = DataResponse[JobAcceptedResponse](data=JobAcceptedResponse(job_id=job.id, status=job.status))
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=accepted.model_dump(mode="json", by_alias=True))

  result = await container.service.moderate(payload.content, payload.content_type, payload.age_tier)
  return DataResponse[ModerationResponse](data=ModerationResponse.model_validate(result.model_dump()))


@router.post("/summarize", response_model=DataResponse[SummaryResponse])
async def summarize(  # noqa: B008
  payload: SummarizeRequest,
  caller: Caller = Depends(enforce_ai_rate_limit),  # noqa: B008
  container: ServiceContainer = Depends(get_container),  # noqa: B008
) -> DataResponse[SummaryResponse]:
  _check_content_size(payload.content)
  summary = await container.service.summarize(payload.content)
  return DataResponse[SummaryResponse](data=SummaryResponse(summary=summary))


@router.post("/generate-tags", response_model=DataResponse[TagSuggestionResponse])
async def generate_tags(  # noqa: B008
  payload: GenerateTagsRequest,
  caller: Caller = Depends(enforce_ai_rate_limit),  # noqa: B008
  container: ServiceContainer = Depends(get_container),  # noqa: B008
) -> DataResponse[TagSuggestionResponse]:
  _check_content_size(payload.content)
  tags = await container.service.generate_tags(payload.content, payload.title)
  return DataResponse[TagSuggestionResponse](data=TagSuggestionResponse.model_validate(tags.model_dump()))


@router.post("/generate-quiz", response_model=DataResponse[QuizResponse])
async def generate_quiz(  # noqa: B008
  payload: GenerateQuizRequest,
  caller: Caller = Depends(enforce_ai_rate_limit),  # noqa: B008
  container: ServiceContainer = Depends(get_container),  # noqa: B008
) -> DataResponse[QuizResponse]:
  """Generate multiple-choice questions from lesson content."""
  _check_content_size(payload.content)
  quiz = await container.service.generate_quiz(payload.content, payload.question_count, payload.difficulty)
  return DataResponse[QuizResponse](data=QuizResponse.model_validate(quiz.model_dump()))


@router.get("/jobs/{job_id}", response_model=DataResponse[JobResponse])
async def get_job(  # noqa: B008
  job_id: str,
  caller: Caller = Depends(enforce_ai_rate_limit),  # noqa: B008
  container: ServiceContainer = Depends(get_container),  # noqa: B008
) -> DataResponse[JobResponse]:
  """Fetch the status and result of an async AI job."""
  job = container.service.get_job(job_id)
  return DataResponse[JobResponse](data=JobResponse.from_job(job))


@router.post("/search", response_model=DataResponse[list[SearchResultModel]])
async def search(  # noqa: B008
  payload: SearchRequest,
  caller: Caller = Depends(enforce_ai_rate_limit),  # noqa: B008
  container: ServiceContainer = Depends(get_container),  # noqa: B008
) -> DataResponse[list[SearchResultModel]]:
  """Semantic search with keyword fallback."""
  results = await container.index.hybrid_search(payload.query, content_type=payload.content_type, limit=payload.limit)
  return DataResponse[list[SearchResultModel]](data=[SearchResultModel.model_validate(asdict(result)) for result in results])


@router.post("/recommend", response_model=DataResponse[list[RecommendationModel]])
async def recommend(  # noqa: B008
  payload: RecommendRequest,
  caller: Caller = Depends(enforce_ai_rate_limit),  # noqa: B008
  container: ServiceContainer = Depends(get_container),  # noqa: B008
) -> DataResponse[list[RecommendationModel]]:
  """Personalized course recommendations from CMS-supplied history."""
  courses = [CourseCandidate(**course.model_dump()) for course in payload.courses]
  enrollments = [Enrollment(**enrollment.model_dump()) for enrollment in payload.enrollments]
  progress = [ProgressEntry(**entry.model_dump()) for entry in payload.progress]

  profile = build_profile(payload.user_id, enrollments, progress, courses, age_tier=payload.age_tier)
  candidates = select_candidates(profile, courses)
  catalog = {course.id: course for course in courses}

  recommendations = await container.engine.get_recommendations(profile, candidates, payload.limit, catalog=catalog)
  return DataResponse[list[RecommendationModel]](data=[RecommendationModel.model_validate(asdict(rec)) for rec in recommendations])


@router.post("/content-events", response_model=DataResponse[ContentEventResponse])
async def content_event(  # noqa: B008
  payload: ContentEventRequest,
  caller: Caller = Depends(enforce_ai_rate_limit),  # noqa: B008
  container: ServiceContainer = Depends(get_container),  # noqa: B008
) -> DataResponse[ContentEventResponse]:
  """Apply a CMS create/update/delete notification."""
  record = _record(payload.record)
  outcome = container.events.handle(payload.event, payload.content_type, record, payload.changed_fields)
  return DataResponse[ContentEventResponse](data=ContentEventResponse.model_validate(asdict(outcome)))


@router.post("/reindex", response_model=DataResponse[ReindexResponse])
async def reindex(  # noqa: B008
  payload: ReindexRequest,
  caller: Caller = Depends(require_admin),  # noqa: B008
  container: ServiceContainer = Depends(get_container),  # noqa: B008
) -> DataResponse[ReindexResponse]:
  """Rebuild index entries for the supplied items; admin only."""
  items = [(item.content_type, _record(item.record)) for item in payload.items]
  logger.info("Re-index requested by user:%s items=%s", caller.user_id, len(items))
  report = await container.events.reindex_all(items)
  return DataResponse[ReindexResponse](data=ReindexResponse(indexed=report.indexed, errors=report.errors))
