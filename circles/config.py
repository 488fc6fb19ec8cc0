"""
Application configuration via environment variables.

Uses Pydantic BaseSettings to load and validate all config from env vars
or a .env.local file. Every setting has a sensible default for local
development so the intake pipeline can start with minimal configuration.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment selector."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class QueueBackend(str, Enum):
    """Where pending intake operations are persisted."""

    FILE = "file"
    REDIS = "redis"


class Settings(BaseSettings):
    """
    Central configuration for the Circles intake service.

    Values are loaded from environment variables first, falling back
    to a `.env.local` file in the project root. Secrets should NEVER
    be committed; use `.env.example` as the template.
    """

    model_config = SettingsConfigDict(
        env_file=".env.local",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Environment ──────────────────────────────────────────────
    environment: Environment = Environment.DEVELOPMENT

    # ── Gemini (direct) ──────────────────────────────────────────
    gemini_api_key: str = Field(default="", description="Gemini API key for direct model calls")
    gemini_model: str = Field(default="gemini-2.5-flash", description="Gemini model name")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        description="Gemini REST base URL",
    )

    # ── Circles backend (preferred when configured) ──────────────
    backend_base_url: str = Field(default="", description="Circles backend base URL")
    backend_api_key: str = Field(default="", description="Bearer key for the Circles backend")

    summarizer_timeout_seconds: float = Field(default=30.0, gt=0, description="Per-call model timeout")

    # ── Supabase ─────────────────────────────────────────────────
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_service_key: str = Field(default="", description="Supabase service-role key")

    # ── Offline queue ────────────────────────────────────────────
    queue_backend: QueueBackend = QueueBackend.FILE
    queue_file: str = Field(default="data/ai_operations_queue.json", description="File-backed queue path")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    queue_redis_key: str = Field(default="circles:intake:queue", description="Redis key holding the queue")

    # ── Matching / merge policy ──────────────────────────────────
    confidence_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Minimum confidence to auto-assign imported text"
    )
    suggestion_limit: int = Field(default=5, ge=0, le=50, description="Max contacts suggested for triage")

    # ── Connectivity ─────────────────────────────────────────────
    connectivity_probe_url: str = Field(
        default="https://generativelanguage.googleapis.com", description="URL probed to detect connectivity"
    )
    connectivity_poll_seconds: float = Field(default=15.0, gt=0, description="Probe interval")

    # ── HTTP API ─────────────────────────────────────────────────
    api_keys: list[str] = Field(default_factory=list, description="Accepted inbound API keys")
    rate_limit_max_requests: int = Field(default=30, ge=1, description="Requests per window per client")
    rate_limit_window_seconds: int = Field(default=60, ge=1, description="Rate limit window")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Root log level")
    log_note_text: bool = Field(default=False, description="Log note and summary text verbatim")

    # ── Derived helpers ──────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def use_backend(self) -> bool:
        return bool(self.backend_base_url and self.backend_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return cached Settings instance.

    Using lru_cache ensures we read env vars exactly once, and every
    module that calls ``get_settings()`` gets the same object.
    """
    return Settings()
