"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Taqwa AI service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  ollama_base_url: str
  ollama_model: str
  ollama_embed_model: str
  ollama_enabled: bool
  ollama_timeout_seconds: float
  ollama_health_timeout_seconds: float
  max_concurrent_jobs: int
  job_ttl_seconds: float
  job_sweep_interval_seconds: float
  search_enabled: bool
  moderation_enabled: bool
  recommendations_enabled: bool
  auto_moderate_on_create: bool
  rate_limit_authenticated: int
  rate_limit_admin: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:1337",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("TAQWA_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("TAQWA_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _parse_flag(raw: str | None) -> bool:
  """Parse an opt-out flag: anything except an explicit false value keeps the feature on."""

  if raw is None:
    return True

  normalized = raw.strip().lower()
  return normalized not in {"0", "false", "no", "off"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("TAQWA_ENV", "development").lower()
  debug = _parse_bool(os.getenv("TAQWA_DEBUG"))

  log_max_bytes = _positive_int("TAQWA_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("TAQWA_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("TAQWA_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("TAQWA_LOG_HTTP_4XX"))

  # Inference backend; the env names match the ones the CMS deployment already exports.
  ollama_base_url = (os.getenv("OLLAMA_BASE_URL") or "http://ollama:11434").strip().rstrip("/")
  ollama_model = (os.getenv("OLLAMA_MODEL") or "mistral:7b-instruct-q4_K_M").strip()
  ollama_embed_model = (os.getenv("OLLAMA_EMBED_MODEL") or ollama_model).strip()
  ollama_timeout_ms = _positive_int("OLLAMA_TIMEOUT_MS", "120000")
  ollama_health_timeout_ms = _positive_int("OLLAMA_HEALTH_TIMEOUT_MS", "5000")

  max_concurrent_jobs = _positive_int("OLLAMA_MAX_PARALLEL", "2")
  job_ttl_seconds = _positive_int("AI_JOB_TTL_SECONDS", "3600")
  job_sweep_interval_seconds = _positive_int("AI_JOB_SWEEP_SECONDS", "600")

  rate_limit_authenticated = int(os.getenv("AI_RATE_LIMIT_AUTHENTICATED", "10"))
  rate_limit_admin = int(os.getenv("AI_RATE_LIMIT_ADMIN", "50"))
  if rate_limit_authenticated < 0 or rate_limit_admin < 0:
    raise ValueError("AI rate limits must be zero or positive integers.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("TAQWA_ALLOWED_ORIGINS")),
    debug=debug,
    log_dir=(os.getenv("TAQWA_LOG_DIR") or "logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    ollama_base_url=ollama_base_url,
    ollama_model=ollama_model,
    ollama_embed_model=ollama_embed_model,
    ollama_enabled=_parse_flag(os.getenv("OLLAMA_ENABLED")),
    ollama_timeout_seconds=ollama_timeout_ms / 1000,
    ollama_health_timeout_seconds=ollama_health_timeout_ms / 1000,
    max_concurrent_jobs=max_concurrent_jobs,
    job_ttl_seconds=float(job_ttl_seconds),
    job_sweep_interval_seconds=float(job_sweep_interval_seconds),
    search_enabled=_parse_flag(os.getenv("AI_SEARCH_ENABLED")),
    moderation_enabled=_parse_flag(os.getenv("AI_MODERATION_ENABLED")),
    recommendations_enabled=_parse_flag(os.getenv("AI_RECOMMENDATIONS_ENABLED")),
    auto_moderate_on_create=_parse_flag(os.getenv("AI_AUTO_MODERATE_ON_CREATE")),
    rate_limit_authenticated=rate_limit_authenticated,
    rate_limit_admin=rate_limit_admin,
  )
