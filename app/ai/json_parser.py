"""Lenient extraction of JSON objects from model output."""

from __future__ import annotations

import json
import re
from typing import Any

from app.ai.errors import AIResponseParseError

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def strip_json_fences(raw: str) -> str:
  """Remove a surrounding markdown code fence if the model added one."""
  return _FENCE_RE.sub("", raw.strip())


def parse_json_object(raw: str) -> dict[str, Any]:
  """Return the first JSON object found in ``raw``.

  Models often wrap JSON in prose or code fences and sometimes leave trailing
  commas; both are tolerated. Raises ``AIResponseParseError`` when nothing
  object-shaped can be decoded.
  """
  text = strip_json_fences(raw)

  # Prefer strict parsing so valid JSON is preserved without mutation.
  try:
    parsed = json.loads(text)
  except json.JSONDecodeError:
    parsed = None
  if isinstance(parsed, dict):
    return parsed

  candidate = _extract_object(text)
  if candidate is None:
    raise AIResponseParseError("No valid JSON found in AI response")

  for attempt in (candidate, _TRAILING_COMMA_RE.sub(r"\1", candidate)):
    try:
      parsed = json.loads(attempt)
    except json.JSONDecodeError:
      continue
    if isinstance(parsed, dict):
      return parsed

  raise AIResponseParseError("AI response contained malformed JSON")


def _extract_object(raw: str) -> str | None:
  """Locate the first balanced ``{...}`` block while honoring string escapes."""
  start_index: int | None = None
  depth = 0
  in_string = False
  escape = False

  for index, char in enumerate(raw):
    if start_index is None:
      if char == "{":
        start_index = index
        depth = 1
      continue

    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      continue

    if char == '"':
      in_string = True
    elif char == "{":
      depth += 1
    elif char == "}":
      depth -= 1
      if depth == 0:
        return raw[start_index : index + 1]

  return None
