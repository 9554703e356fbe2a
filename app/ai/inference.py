"""HTTP client for the external text/embedding inference service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Final, TypeVar

import httpx
import msgspec

from app.ai.backoff import MAX_RETRIES, RETRY_DELAY_SECONDS, retry_with_backoff
from app.ai.errors import InferenceDisabledError, TransientInferenceError
from app.ai.wire import EmbedRequest, EmbedResponse, GenerateOptions, GenerateRequest, GenerateResponse, TagsResponse
from app.config import Settings

logger = logging.getLogger("app.ai.inference")

T = TypeVar("T", bound=msgspec.Struct)

DEFAULT_TEMPERATURE: Final[float] = 0.3
DEFAULT_TOP_P: Final[float] = 0.9
DEFAULT_MAX_TOKENS: Final[int] = 2048


@dataclass(frozen=True)
class InferenceHealth:
  """Snapshot of the inference backend as seen by this process."""

  available: bool
  enabled: bool
  base_url: str
  model: str
  models: list[str] = field(default_factory=list)


class InferenceClient:
  """Stateless async client for generate / embed / list-models calls."""

  def __init__(
    self,
    base_url: str,
    model: str,
    *,
    embed_model: str | None = None,
    enabled: bool = True,
    timeout: float = 120.0,
    health_timeout: float = 5.0,
    max_retries: int = MAX_RETRIES,
    retry_delay: float = RETRY_DELAY_SECONDS,
    transport: httpx.AsyncBaseTransport | None = None,
  ) -> None:
    self.base_url = base_url.rstrip("/")
    self.model = model
    self.embed_model = embed_model or model
    self.enabled = enabled
    self.timeout = timeout
    self.health_timeout = health_timeout
    self.max_retries = max_retries
    self.retry_delay = retry_delay
    # Never trust environment proxy variables for calls to the in-cluster model server.
    self._client = httpx.AsyncClient(base_url=self.base_url, timeout=httpx.Timeout(timeout), transport=transport, trust_env=False)

  @classmethod
  def from_settings(cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> InferenceClient:
    """Build a client from process settings."""
    return cls(
      settings.ollama_base_url,
      settings.ollama_model,
      embed_model=settings.ollama_embed_model,
      enabled=settings.ollama_enabled,
      timeout=settings.ollama_timeout_seconds,
      health_timeout=settings.ollama_health_timeout_seconds,
      transport=transport,
    )

  async def aclose(self) -> None:
    """Release pooled connections."""
    await self._client.aclose()

  def _ensure_enabled(self) -> None:
    if not self.enabled:
      raise InferenceDisabledError("Inference is disabled via OLLAMA_ENABLED=false")

  async def _request(self, method: str, path: str, *, body: bytes | None = None, timeout: float) -> bytes:
    """Issue one request under a hard wall-clock deadline and return the 2xx body."""
    headers = {"content-type": "application/json"} if body is not None else None
    try:
      async with asyncio.timeout(timeout):
        response = await self._client.request(method, path, content=body, headers=headers, timeout=timeout)
    except TimeoutError as exc:
      raise TransientInferenceError(f"Inference request {method} {path} timed out after {timeout:.1f}s") from exc
    except httpx.HTTPError as exc:
      raise TransientInferenceError(f"Inference request {method} {path} failed: {exc}") from exc

    if not response.is_success:
      raise TransientInferenceError(f"Inference API error ({response.status_code}): {response.text[:500]}", status_code=response.status_code)
    return response.content

  @staticmethod
  def _decode(payload: bytes, struct_type: type[T], path: str) -> T:
    try:
      return msgspec.json.decode(payload, type=struct_type)
    except msgspec.DecodeError as exc:
      raise TransientInferenceError(f"Inference response from {path} did not match the contract: {exc}") from exc

  async def generate(
    self,
    prompt: str,
    *,
    system: str | None = None,
    temperature: float | None = None,
    top_p: float | None = None,
    max_tokens: int | None = None,
    model: str | None = None,
  ) -> str:
    """Generate a completion and return the response text."""
    self._ensure_enabled()

    request = GenerateRequest(
      model=model or self.model,
      prompt=prompt,
      system=system,
      options=GenerateOptions(
        temperature=DEFAULT_TEMPERATURE if temperature is None else temperature,
        top_p=DEFAULT_TOP_P if top_p is None else top_p,
        num_predict=DEFAULT_MAX_TOKENS if max_tokens is None else max_tokens,
      ),
      stream=False,
    )
    body = msgspec.json.encode(request)

    async def _attempt() -> str:
      payload = await self._request("POST", "/api/generate", body=body, timeout=self.timeout)
      return self._decode(payload, GenerateResponse, "/api/generate").response

    logger.debug("Generating with model=%s prompt_chars=%s", request.model, len(prompt))
    return await retry_with_backoff(_attempt, max_retries=self.max_retries, delay=self.retry_delay, label="generate")

  async def embed(self, text: str | list[str], model: str | None = None) -> list[list[float]]:
    """Embed one text or a batch; returns one vector per input."""
    self._ensure_enabled()

    if isinstance(text, list) and not text:
      return []

    body = msgspec.json.encode(EmbedRequest(model=model or self.embed_model, input=text))

    async def _attempt() -> list[list[float]]:
      payload = await self._request("POST", "/api/embed", body=body, timeout=self.timeout)
      return self._decode(payload, EmbedResponse, "/api/embed").embeddings

    return await retry_with_backoff(_attempt, max_retries=self.max_retries, delay=self.retry_delay, label="embed")

  async def _list_models(self) -> list[str]:
    payload = await self._request("GET", "/api/tags", timeout=self.health_timeout)
    return [tag.name for tag in self._decode(payload, TagsResponse, "/api/tags").models]

  async def is_available(self) -> bool:
    """Probe the backend; never raises."""
    if not self.enabled:
      return False

    try:
      await self._request("GET", "/api/tags", timeout=self.health_timeout)
    except TransientInferenceError as exc:
      logger.debug("Inference backend unavailable: %s", exc)
      return False
    return True

  async def health(self) -> InferenceHealth:
    """Report availability and the models loaded on the backend."""
    if not self.enabled:
      return InferenceHealth(available=False, enabled=False, base_url=self.base_url, model=self.model)

    try:
      models = await self._list_models()
    except TransientInferenceError as exc:
      logger.warning("Inference health check failed: %s", exc)
      return InferenceHealth(available=False, enabled=True, base_url=self.base_url, model=self.model)
    return InferenceHealth(available=True, enabled=True, base_url=self.base_url, model=self.model, models=models)
