"""Configuration for the assistant using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _PACKAGE_DIR.parent.parent  # src/agri_assistant/ → project root


class Settings(BaseSettings):
    """All service settings, loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Completion capability (OpenAI-compatible endpoint, Groq by default)
    # ------------------------------------------------------------------
    groq_api_key: str = ""
    groq_base_url: str = "https://api.groq.com/openai/v1"
    chat_model: str = "llama-3.3-70b-versatile"
    # Falls back to chat_model when empty.
    classifier_model: str = ""

    chat_temperature: float = 0.3
    chat_max_tokens: int = 1500
    research_max_tokens: int = 2000

    # ------------------------------------------------------------------
    # Web search (Tavily)
    # ------------------------------------------------------------------
    tavily_api_key: str = ""
    search_max_results: int = 5
    search_depth: str = "basic"

    # ------------------------------------------------------------------
    # Deadlines (seconds)
    # ------------------------------------------------------------------
    turn_timeout_seconds: float = 60.0
    llm_timeout_seconds: float = 30.0
    search_timeout_seconds: float = 30.0

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    chat_db_path: Path = _PROJECT_ROOT / "database" / "chat_history.sqlite"

    # ------------------------------------------------------------------
    # Auth (JWT); AUTH_ENABLED=false disables it for development
    # ------------------------------------------------------------------
    auth_enabled: bool = True
    jwt_secret: str = "dev-secret-change-in-production!!"
    jwt_expiry_hours: int = 24

    # ------------------------------------------------------------------
    # Logging / observability
    # ------------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False
    observability: str = "off"
    otel_service_name: str = "agri-assistant"
    otel_exporter_otlp_endpoint: str = "http://localhost:4318"
    otel_console_exporter: bool = False

    @property
    def effective_classifier_model(self) -> str:
        return self.classifier_model or self.chat_model

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------
    def validate_runtime(self) -> None:
        """Check that all required values are present.

        Call this at application startup (not at import time) so that
        tests can override settings before validation runs.
        """
        if not self.groq_api_key:
            raise ValueError("GROQ_API_KEY not set. Add it to .env")
        if not self.tavily_api_key:
            raise ValueError("TAVILY_API_KEY not set. Add it to .env")
        if self.turn_timeout_seconds <= 0:
            raise ValueError("TURN_TIMEOUT_SECONDS must be positive.")


@lru_cache
def get_settings() -> Settings:
    """Return the cached Settings singleton."""
    return Settings()
