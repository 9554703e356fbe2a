"""msgspec structs for the inference backend's HTTP contract (Ollama-compatible)."""

from __future__ import annotations

import msgspec


class GenerateOptions(msgspec.Struct):
  """Sampling options forwarded under the ``options`` key."""

  temperature: float
  top_p: float
  num_predict: int


class GenerateRequest(msgspec.Struct, omit_defaults=True):
  """Body of ``POST /api/generate``; streaming is always off."""

  model: str
  prompt: str
  options: GenerateOptions
  stream: bool
  system: str | None = None


class GenerateResponse(msgspec.Struct):
  """Single-shot response of ``POST /api/generate``; extra fields are ignored."""

  response: str
  done: bool = True
  model: str | None = None
  total_duration: int | None = None
  eval_count: int | None = None


class EmbedRequest(msgspec.Struct):
  """Body of ``POST /api/embed``."""

  model: str
  input: str | list[str]


class EmbedResponse(msgspec.Struct):
  """Response of ``POST /api/embed``: one vector per input."""

  embeddings: list[list[float]]
  model: str | None = None


class ModelTag(msgspec.Struct):
  name: str


class TagsResponse(msgspec.Struct):
  """Response of ``GET /api/tags``."""

  models: list[ModelTag] = msgspec.field(default_factory=list)
