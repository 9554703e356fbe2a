"""Shared fixtures: settings, a stubbed inference backend and an API client."""

from __future__ import annotations

import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

import httpx  # noqa: E402
import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.ai.inference import InferenceClient  # noqa: E402
from app.config import Settings  # noqa: E402
from app.core.container import ServiceContainer  # noqa: E402
from app.main import app  # noqa: E402

# Embedding dimensions are keyword counts, so similarity in tests follows shared vocabulary.
VOCABULARY = ("prayer", "salah", "fasting", "ramadan", "quran", "tajweed", "hadith", "arabic")


def keyword_vector(text: str) -> list[float]:
  lowered = text.lower()
  return [float(lowered.count(word)) for word in VOCABULARY] + [0.01]


class OllamaStub:
  """In-process stand-in for the inference server, served through ``httpx.MockTransport``."""

  def __init__(self) -> None:
    self.available = True
    self.generate_replies: list[str] = []
    self.generate_status = 200
    self.embed_status = 200
    self.embed_failures = 0
    self.requests: list[tuple[str, dict]] = []

  def handler(self, request: httpx.Request) -> httpx.Response:
    path = request.url.path
    body = json.loads(request.content) if request.content else {}
    self.requests.append((path, body))

    if path == "/api/tags":
      if not self.available:
        return httpx.Response(503, text="loading model")
      return httpx.Response(200, json={"models": [{"name": "mistral:7b-instruct-q4_K_M"}, {"name": "nomic-embed-text"}]})

    if path == "/api/generate":
      if self.generate_status != 200:
        return httpx.Response(self.generate_status, text="generation failed")
      reply = self.generate_replies.pop(0) if self.generate_replies else "ok"
      return httpx.Response(200, json={"response": reply, "done": True, "model": body.get("model")})

    if path == "/api/embed":
      if self.embed_failures > 0:
        self.embed_failures -= 1
        return httpx.Response(500, text="embedding failed")
      if self.embed_status != 200:
        return httpx.Response(self.embed_status, text="embedding failed")
      inputs = body["input"] if isinstance(body["input"], list) else [body["input"]]
      return httpx.Response(200, json={"embeddings": [keyword_vector(text) for text in inputs]})

    return httpx.Response(404, text="not found")

  def bodies(self, path: str) -> list[dict]:
    return [body for request_path, body in self.requests if request_path == path]

  @property
  def transport(self) -> httpx.MockTransport:
    return httpx.MockTransport(self.handler)


def build_settings(**overrides: object) -> Settings:
  values: dict[str, object] = {
    "environment": "test",
    "allowed_origins": ("http://localhost:1337",),
    "debug": False,
    "log_dir": "logs",
    "log_max_bytes": 1024 * 1024,
    "log_backup_count": 1,
    "log_http_4xx": False,
    "ollama_base_url": "http://ollama.test:11434",
    "ollama_model": "mistral:7b-instruct-q4_K_M",
    "ollama_embed_model": "nomic-embed-text",
    "ollama_enabled": True,
    "ollama_timeout_seconds": 5.0,
    "ollama_health_timeout_seconds": 1.0,
    "max_concurrent_jobs": 2,
    "job_ttl_seconds": 3600.0,
    "job_sweep_interval_seconds": 600.0,
    "search_enabled": True,
    "moderation_enabled": True,
    "recommendations_enabled": True,
    "auto_moderate_on_create": True,
    "rate_limit_authenticated": 10,
    "rate_limit_admin": 50,
  }
  values.update(overrides)
  return Settings(**values)


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def ollama() -> OllamaStub:
  return OllamaStub()


@pytest.fixture
def make_settings():
  return build_settings


@pytest.fixture
def settings() -> Settings:
  return build_settings()


@pytest.fixture
async def inference_client(ollama: OllamaStub):
  client = InferenceClient("http://ollama.test:11434", "mistral:7b-instruct-q4_K_M", embed_model="nomic-embed-text", retry_delay=0.0, transport=ollama.transport)
  yield client
  await client.aclose()


@pytest.fixture
async def container(settings: Settings, ollama: OllamaStub):
  services = ServiceContainer.build(settings, transport=ollama.transport)
  services.client.retry_delay = 0.0
  yield services
  await services.aclose()


@pytest.fixture
async def async_client(container: ServiceContainer):
  app.state.container = container
  # Each test gets fresh rate-limit windows.
  app.state.ai_rate_limiter = None
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.state.container = None
  app.state.ai_rate_limiter = None
