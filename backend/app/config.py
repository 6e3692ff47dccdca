"""Application configuration using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Database
    DATABASE_URL: str

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # Where rate limiter / cache / ledger state lives: "database" or "memory"
    STATE_BACKEND: str = "database"

    # Result cache
    RESULT_CACHE_TTL_SECONDS: int = 300

    # Admission control (token bucket per tenant)
    RATE_LIMIT_CAPACITY: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # Broker house rules at or below this confidence are ignored
    HOUSE_RULE_CONFIDENCE_THRESHOLD: float = 0.8

    # Error remediation
    REMEDIATION_RETRY_BACKOFF_SECONDS: float = 0.5
    REMEDIATION_ACTIONS: dict[str, str] = {
        "ADMISSION_ERROR": "no_op",
        "INPUT_ERROR": "no_op",
        "EVALUATION_ERROR": "retry_with_backoff",
        "CACHE_ERROR": "flush_cache_key",
        "INTEGRITY_ERROR": "halt_ledger",
    }

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def uses_memory_state(self) -> bool:
        """Whether shared state is kept in-process instead of in PostgreSQL."""
        return self.STATE_BACKEND.lower() == "memory"


# Global settings instance
settings = Settings()
