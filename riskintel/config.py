"""
RiskIntel Configuration.

Pydantic Settings v2 — loads from .env, environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "RiskIntel"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # ── Database ─────────────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite+aiosqlite:///./riskintel.db",
        alias="DATABASE_URL",
    )
    db_pool_size: int = Field(default=10, alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=20, alias="DB_MAX_OVERFLOW")
    db_pool_recycle: int = Field(default=3600, alias="DB_POOL_RECYCLE")

    # ── Scoring ───────────────────────────────────────────────────────────
    default_matrix_size: int = Field(default=5, ge=5, le=6, alias="DEFAULT_MATRIX_SIZE")
    residual_formula: str = Field(
        default="multiplicative-v1",
        alias="RESIDUAL_FORMULA",
        description="Versioned control-combination formula used for residual scores",
    )

    # ── Intelligence ──────────────────────────────────────────────────────
    intel_min_confidence: int = Field(
        default=70, ge=0, le=100, alias="INTEL_MIN_CONFIDENCE",
        description="Classifier confidence below this creates no alert",
    )
    intel_scan_batch_limit: int = Field(default=50, alias="INTEL_SCAN_BATCH_LIMIT")
    event_dedup_window_days: int = Field(default=7, alias="EVENT_DEDUP_WINDOW_DAYS")

    # ── External Services ─────────────────────────────────────────────────
    classifier_url: str = Field(default="http://localhost:8090", alias="CLASSIFIER_URL")
    classifier_api_key: str = Field(default="", alias="CLASSIFIER_API_KEY")
    classifier_timeout_seconds: float = Field(default=30.0, alias="CLASSIFIER_TIMEOUT_SECONDS")
    classifier_retry_attempts: int = Field(default=2, alias="CLASSIFIER_RETRY_ATTEMPTS")
    classifier_breaker_failures: int = Field(default=5, ge=1, alias="CLASSIFIER_BREAKER_FAILURES")
    classifier_breaker_cooldown_seconds: float = Field(
        default=30.0, ge=0, alias="CLASSIFIER_BREAKER_COOLDOWN_SECONDS"
    )

    # ── Operational ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")

    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses an async driver."""
        url = self.database_url
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://"):
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url


settings = Settings()
