"""Retrieval layer over chunked content: vector search with a keyword fallback."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import numpy as np

from app.ai.errors import IndexUnavailableError
from app.ai.inference import InferenceClient
from app.ai.text import strip_html, truncate
from app.retrieval.chunker import ContentChunker
from app.retrieval.models import ContentChunk, IndexStats, SearchResult

logger = logging.getLogger("app.retrieval.index")

SNIPPET_CHARS = 200
DEFAULT_EMBED_BATCH_SIZE = 16


def _snippet(text: str) -> str:
  return truncate(text, SNIPPET_CHARS)


class EmbeddingIndex:
  """In-memory chunk store keyed by (content_type, content_id).

  An item's chunk set is always replaced as a whole. Embedding happens before
  the swap, so a failed re-index leaves the previous chunks in place and the
  swap itself never straddles an ``await``.

  Every update and removal bumps a per-item generation. An update only swaps
  its chunks in if no newer update or removal happened since its generation
  was taken, so a late job can never resurrect deleted content or overwrite
  newer text.
  """

  def __init__(
    self,
    client: InferenceClient,
    chunker: ContentChunker | None = None,
    *,
    vector_search_enabled: bool = True,
    embed_batch_size: int = DEFAULT_EMBED_BATCH_SIZE,
    clock: Callable[[], float] = time.time,
  ) -> None:
    self._client = client
    self._chunker = chunker or ContentChunker()
    self.vector_search_enabled = vector_search_enabled
    self.embed_batch_size = embed_batch_size
    self._clock = clock
    self._items: dict[tuple[str, str], list[ContentChunk]] = {}
    self._generations: dict[tuple[str, str], int] = {}

  async def _embed_all(self, texts: list[str]) -> list[list[float]]:
    vectors: list[list[float]] = []
    for offset in range(0, len(texts), self.embed_batch_size):
      batch = texts[offset : offset + self.embed_batch_size]
      embedded = await self._client.embed(batch)
      if len(embedded) != len(batch):
        raise IndexUnavailableError(f"Embedding backend returned {len(embedded)} vectors for {len(batch)} inputs")
      vectors.extend(embedded)
    return vectors

  def begin_update(self, content_type: str, content_id: str) -> int:
    """Claim the next generation for an item; pass it to ``index_content`` when the work runs later."""
    key = (content_type, content_id)
    self._generations[key] = self._generations.get(key, 0) + 1
    return self._generations[key]

  def _is_current(self, key: tuple[str, str], generation: int) -> bool:
    return self._generations.get(key, 0) == generation

  async def index_content(
    self,
    content_type: str,
    content_id: str,
    title: str,
    text: str,
    metadata: Mapping[str, Any] | None = None,
    *,
    generation: int | None = None,
  ) -> int:
    """Chunk, embed and store ``text``, replacing any chunks previously held for the item.

    ``generation`` comes from ``begin_update`` when the update was scheduled
    earlier; the result is discarded if the item was removed or updated again
    in the meantime. Returns the number of chunks now stored for the item.
    """
    key = (content_type, content_id)
    if generation is None:
      generation = self.begin_update(content_type, content_id)

    if not self._is_current(key, generation):
      logger.info("Skipping stale update for %s:%s (generation %s)", content_type, content_id, generation)
      return 0

    clean_title = strip_html(title)
    clean_text = strip_html(text)
    windows = self._chunker.chunk(clean_text)

    if not windows:
      self.remove_content(content_type, content_id)
      return 0

    # Prefix the title so short chunks keep their context in embedding space.
    vectors = await self._embed_all([f"{clean_title}: {window.text}" for window in windows])

    updated_at = self._clock()
    item_metadata = dict(metadata or {})
    chunks = [
      ContentChunk(
        content_type=content_type,
        content_id=content_id,
        chunk_index=window.chunk_index,
        text=window.text,
        char_start=window.char_start,
        char_end=window.char_end,
        embedding=tuple(vector),
        title=clean_title,
        metadata=item_metadata,
        updated_at=updated_at,
      )
      for window, vector in zip(windows, vectors, strict=True)
    ]

    # A removal or newer update landed while embedding.
    if not self._is_current(key, generation):
      logger.info("Discarding stale chunks for %s:%s (generation %s)", content_type, content_id, generation)
      return 0

    previous = self._items.get(key)
    self._items[key] = chunks
    logger.info("Indexed %s:%s chunks=%s (previously %s)", content_type, content_id, len(chunks), len(previous or []))
    return len(chunks)

  def remove_content(self, content_type: str, content_id: str) -> int:
    """Drop every chunk for the item; removing an unknown item is a no-op. Returns chunks removed."""
    key = (content_type, content_id)
    # Invalidate updates still queued or embedding for this item.
    self._generations[key] = self._generations.get(key, 0) + 1
    removed = self._items.pop(key, None)
    if removed:
      logger.info("Removed %s:%s chunks=%s", content_type, content_id, len(removed))
    return len(removed or [])

  def chunks_for(self, content_type: str, content_id: str) -> list[ContentChunk]:
    return list(self._items.get((content_type, content_id), []))

  def stats(self) -> IndexStats:
    return IndexStats(items=len(self._items), chunks=sum(len(chunks) for chunks in self._items.values()))

  def _snapshot(self, content_type: str | None) -> list[ContentChunk]:
    chunk_sets = list(self._items.values())
    return [chunk for chunks in chunk_sets for chunk in chunks if content_type is None or chunk.content_type == content_type]

  async def search_similar(self, query: str, *, content_type: str | None = None, limit: int = 10) -> list[SearchResult]:
    """Rank stored items by cosine similarity of their best chunk to the query.

    Raises ``IndexUnavailableError`` when vector search is switched off or the
    backend is unreachable; inference errors during the query embedding propagate.
    """
    if not self.vector_search_enabled:
      raise IndexUnavailableError("Vector search is disabled")
    if not await self._client.is_available():
      raise IndexUnavailableError("Inference backend is unavailable")

    candidates = self._snapshot(content_type)
    if not candidates:
      return []

    embedded = await self._client.embed(query)
    if not embedded:
      raise IndexUnavailableError("Embedding backend returned no vector for the query")

    query_vector = np.asarray(embedded[0], dtype=np.float32)
    matrix = np.asarray([chunk.embedding for chunk in candidates], dtype=np.float32)
    if matrix.ndim != 2 or matrix.shape[1] != query_vector.shape[0]:
      raise IndexUnavailableError("Query embedding dimension does not match the indexed vectors")

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vector)
    scores = np.divide(matrix @ query_vector, norms, out=np.zeros(len(candidates), dtype=np.float32), where=norms > 0)

    # Keep each item's best-scoring chunk; candidates are visited best-first.
    best: dict[tuple[str, str], SearchResult] = {}
    for position in np.argsort(-scores, kind="stable"):
      chunk = candidates[int(position)]
      if chunk.key in best:
        continue
      best[chunk.key] = SearchResult(
        content_type=chunk.content_type,
        content_id=chunk.content_id,
        title=chunk.title,
        snippet=_snippet(chunk.text),
        score=float(scores[position]),
        metadata=dict(chunk.metadata),
      )
      if len(best) >= limit:
        break

    return list(best.values())

  def keyword_search(self, query: str, *, content_type: str | None = None, limit: int = 10) -> list[SearchResult]:
    """Case-insensitive substring match over chunk titles and text, newest first.

    Scores are ``1 / (rank + 1)`` so both search paths return the same shape.
    Never raises.
    """
    needle = query.strip()
    # An empty pattern would match every chunk.
    if not needle:
      return []

    try:
      pattern = re.compile(re.escape(needle), re.IGNORECASE)
      matches = [chunk for chunk in self._snapshot(content_type) if pattern.search(chunk.title) or pattern.search(chunk.text)]
      matches.sort(key=lambda chunk: (-chunk.updated_at, chunk.chunk_index))

      results: list[SearchResult] = []
      seen: set[tuple[str, str]] = set()
      for chunk in matches:
        if chunk.key in seen:
          continue
        seen.add(chunk.key)
        rank = len(results)
        results.append(SearchResult(content_type=chunk.content_type, content_id=chunk.content_id, title=chunk.title, snippet=_snippet(chunk.text), score=1 / (rank + 1), metadata=dict(chunk.metadata)))
        if len(results) >= limit:
          break
      return results
    except Exception:  # noqa: BLE001
      logger.error("Keyword search failed for query=%r", query, exc_info=True)
      return []

  async def hybrid_search(self, query: str, *, content_type: str | None = None, limit: int = 10) -> list[SearchResult]:
    """Vector search first, keyword matching when the vector path is unavailable or fails. Never raises."""
    try:
      return await self.search_similar(query, content_type=content_type, limit=limit)
    except IndexUnavailableError as exc:
      logger.info("Vector search unavailable (%s); using keyword search", exc)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Vector search failed (%s: %s); using keyword search", type(exc).__name__, exc)
    return self.keyword_search(query, content_type=content_type, limit=limit)

  def indexed_items(self) -> Iterable[tuple[str, str]]:
    return list(self._items.keys())
