"""Pydantic Settings — typed configuration with .env auto-loading."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from config.llm_config import LLMConfig


class Settings(BaseSettings):
    """Application configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    service_port: int = 5000
    cors_origins: list[str] = ["*"]
    debug: bool = False
    log_level: str = "INFO"

    # ── LLM ──────────────────────────────────────────────────
    tutor_model: str = "gemini/gemini-2.5-flash"  # Streaming chat turns
    architect_model: str = "gemini/gemini-2.5-flash"  # Next-lesson generation
    translator_model: str = "gemini/gemini-2.5-flash-lite"  # On-demand translation
    max_tokens: int = 2048

    # ── LLM Generation Defaults (all optional, None = model default) ──
    temperature: float | None = None
    top_p: float | None = None
    seed: int | None = None
    stop: list[str] | None = None

    # Provider API keys
    gemini_api_key: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    dashscope_api_key: str = ""
    zai_api_key: str = ""

    # ── Tutor ────────────────────────────────────────────────
    tutor_name: str = "Leo"
    app_name: str = "Lingo"
    native_language: str = "Russian"  # Language of ru_translation and explanations
    history_limit: int = 50  # Messages loaded from persistence at session start
    stream_idle_timeout: float = 60.0  # seconds between fragments before a turn fails

    # ── Sessions ─────────────────────────────────────────────
    session_ttl: int = 1800  # seconds (30 min) of inactivity before eviction
    session_cleanup_interval: int = 300

    # ── Persistence ──────────────────────────────────────────
    repository_type: str = "memory"  # "memory" or "redis"
    redis_url: str = ""  # e.g. redis://:password@host:6379/0

    # ── Admin notifications (Telegram) ───────────────────────
    telegram_bot_token: str = ""
    telegram_admin_chat_id: str = ""
    telegram_api_base: str = "https://api.telegram.org"
    notifier_timeout: float = 10.0

    # ── Helpers ───────────────────────────────────────────────

    def get_default_llm_config(self) -> LLMConfig:
        """Build an :class:`LLMConfig` from global .env defaults."""
        return LLMConfig(
            model=self.tutor_model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            top_p=self.top_p,
            seed=self.seed,
            stop=self.stop,
        )


@lru_cache
def get_settings() -> Settings:
    """Singleton accessor for application settings."""
    return Settings()
