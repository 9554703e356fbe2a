"""Text helpers shared by the AI operations and the retrieval index."""

from __future__ import annotations

import re

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
_ENTITIES = (("&nbsp;", " "), ("&amp;", "&"), ("&lt;", "<"), ("&gt;", ">"), ("&quot;", '"'))


def strip_html(html: str) -> str:
  """Drop tags, decode the handful of entities rich-text editors emit and collapse whitespace."""
  text = _TAG_RE.sub(" ", html)
  for entity, replacement in _ENTITIES:
    text = text.replace(entity, replacement)
  return _WHITESPACE_RE.sub(" ", text).strip()


def split_at_sentences(text: str, max_chars: int = 3000) -> list[str]:
  """Split text into consecutive pieces of at most ``max_chars``, preferring sentence ends.

  Pieces do not overlap; this is used for map-reduce summarization, not retrieval.
  """
  if len(text) <= max_chars:
    return [text]

  pieces: list[str] = []
  start = 0
  while start < len(text):
    end = start + max_chars
    if end < len(text):
      sentence_end = text.rfind(".", start, end)
      if sentence_end > start + max_chars // 2:
        end = sentence_end + 1
    piece = text[start:end].strip()
    if piece:
      pieces.append(piece)
    start = end
  return pieces


def truncate(text: str, max_chars: int, *, suffix: str = "...") -> str:
  """Return at most ``max_chars`` characters, marking the cut with ``suffix``."""
  if len(text) <= max_chars:
    return text
  return text[:max_chars] + suffix
