"""Split free text into overlapping fixed-size windows for embedding."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from app.retrieval.models import TextChunk

CHARS_PER_TOKEN: Final[int] = 4
DEFAULT_WINDOW_TOKENS: Final[int] = 500
DEFAULT_OVERLAP_TOKENS: Final[int] = 50


class ContentChunker:
  """Slides a window over raw text so every boundary is covered by an overlap.

  Sizes are given in approximate tokens and converted to characters with a
  fixed ratio. A window that does not reach the end of the text is shortened
  to the last ``.`` in its second half when there is one; the following window
  always starts ``overlap`` characters before the previous one ended.
  """

  def __init__(
    self,
    window_tokens: int = DEFAULT_WINDOW_TOKENS,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
    *,
    chars_per_token: int = CHARS_PER_TOKEN,
    prefer_sentence_breaks: bool = True,
  ) -> None:
    self.window_chars = window_tokens * chars_per_token
    self.overlap_chars = overlap_tokens * chars_per_token
    self.prefer_sentence_breaks = prefer_sentence_breaks

    if self.window_chars <= 0:
      raise ValueError("Chunk window must be positive.")
    if self.overlap_chars < 0:
      raise ValueError("Chunk overlap must not be negative.")
    # A sentence break may shorten a window to half its size; the step must still advance.
    if self.overlap_chars >= self.window_chars // 2:
      raise ValueError("Chunk overlap must be smaller than half the window.")

  def _window_end(self, text: str, start: int) -> int:
    end = start + self.window_chars
    if end >= len(text):
      return len(text)

    if self.prefer_sentence_breaks:
      sentence_end = text.rfind(".", start, end)
      if sentence_end > start + self.window_chars // 2:
        return sentence_end + 1
    return end

  def chunk(self, text: str) -> list[TextChunk]:
    """Return the windows of ``text`` in order; empty text yields no chunks."""
    chunks: list[TextChunk] = []
    start = 0

    while start < len(text):
      end = self._window_end(text, start)
      chunks.append(TextChunk(chunk_index=len(chunks), char_start=start, char_end=end, text=text[start:end]))
      if end >= len(text):
        break
      start = end - self.overlap_chars

    return chunks


def reassemble(chunks: Sequence[TextChunk]) -> str:
  """Rebuild the source text from ordered chunks by dropping each overlap."""
  parts: list[str] = []
  covered = 0

  for chunk in chunks:
    parts.append(chunk.text[max(covered - chunk.char_start, 0) :])
    covered = chunk.char_end

  return "".join(parts)
