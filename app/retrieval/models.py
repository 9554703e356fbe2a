"""Value types for chunked, embedded content and search results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TextChunk:
  """A window of source text, before embedding."""

  chunk_index: int
  char_start: int
  char_end: int
  text: str


@dataclass(frozen=True)
class ContentChunk:
  """An embedded chunk stored in the index; identity is (content_type, content_id, chunk_index)."""

  content_type: str
  content_id: str
  chunk_index: int
  text: str
  char_start: int
  char_end: int
  embedding: tuple[float, ...]
  title: str
  metadata: dict[str, Any] = field(default_factory=dict)
  updated_at: float = 0.0

  @property
  def key(self) -> tuple[str, str]:
    return (self.content_type, self.content_id)


@dataclass(frozen=True)
class SearchResult:
  """One content item returned by vector or keyword search."""

  content_type: str
  content_id: str
  title: str
  snippet: str
  score: float
  metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IndexStats:
  items: int
  chunks: int
