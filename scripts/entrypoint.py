import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("entrypoint")


def main() -> None:
  """Launch the AI service under uvicorn."""
  host = os.getenv("TAQWA_HOST", "0.0.0.0")
  port = os.getenv("TAQWA_PORT", "8002")
  logger.info("Starting Taqwa AI engine on %s:%s (inference at %s)", host, port, os.getenv("OLLAMA_BASE_URL", "http://ollama:11434"))
  # Replace this process so uvicorn receives SIGTERM directly.
  args = ["uvicorn", "app.main:app", "--host", host, "--port", port, "--no-server-header"]
  os.execvp("uvicorn", args)


if __name__ == "__main__":
  main()
