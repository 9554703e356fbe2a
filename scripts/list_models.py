"""Print the models loaded on the configured inference backend."""

import asyncio
import sys

from app.ai.inference import InferenceClient
from app.config import get_settings


async def _main() -> int:
  settings = get_settings()
  client = InferenceClient.from_settings(settings)
  try:
    health = await client.health()
  finally:
    await client.aclose()

  if not health.enabled:
    print("Inference is disabled (OLLAMA_ENABLED=false).")
    return 1
  if not health.available:
    print(f"Inference backend at {health.base_url} is not reachable.")
    return 1

  print(f"Backend: {health.base_url}")
  for name in health.models:
    marker = "*" if name in (settings.ollama_model, settings.ollama_embed_model) else " "
    print(f"{marker} {name}")
  if settings.ollama_model not in health.models:
    print(f"Warning: configured model {settings.ollama_model} is not loaded.")
  return 0


if __name__ == "__main__":
  sys.exit(asyncio.run(_main()))
