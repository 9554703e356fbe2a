"""Process-wide service graph, built once at startup."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from app.ai.inference import InferenceClient
from app.ai.service import AIService, FeatureFlags
from app.config import Settings
from app.jobs.queue import AsyncTaskQueue
from app.recommendations.engine import RecommendationEngine
from app.retrieval.chunker import ContentChunker
from app.retrieval.index import EmbeddingIndex
from app.services.content_events import ContentEventHandler


@dataclass
class ServiceContainer:
  """Holds the single instance of every stateful collaborator."""

  settings: Settings
  client: InferenceClient
  queue: AsyncTaskQueue
  index: EmbeddingIndex
  engine: RecommendationEngine
  service: AIService
  events: ContentEventHandler

  @classmethod
  def build(cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> ServiceContainer:
    """Wire collaborators from settings; ``transport`` replaces the network in tests."""
    client = InferenceClient.from_settings(settings, transport=transport)
    queue = AsyncTaskQueue(settings.max_concurrent_jobs, job_ttl=settings.job_ttl_seconds, sweep_interval=settings.job_sweep_interval_seconds)
    index = EmbeddingIndex(client, ContentChunker(), vector_search_enabled=settings.search_enabled)
    engine = RecommendationEngine(index, client, boost_enabled=settings.recommendations_enabled)
    features = FeatureFlags(moderation=settings.moderation_enabled, search=settings.search_enabled, recommendations=settings.recommendations_enabled)
    service = AIService(client, queue, features)
    events = ContentEventHandler(service, index, queue, settings)
    return cls(settings=settings, client=client, queue=queue, index=index, engine=engine, service=service, events=events)

  def start(self) -> None:
    self.queue.start()

  async def aclose(self) -> None:
    """Stop background work, then release the HTTP connection pool."""
    await self.queue.stop()
    await self.client.aclose()
