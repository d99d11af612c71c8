"""
Rescan Backend — Application Configuration
===========================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by the app factory and by services that need defaults.
When:  Loaded once at module import time; validated before the app starts.

Tests and embedding code build their own `Settings(...)` and pass it to
`create_app()`; the module-level `settings` is only the process default.
"""

from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have defaults suitable for a classroom deployment on a
    single machine (SQLite file, mock vision when no API key is set).
    Attributes are grouped by concern.
    """

    # ── Database ──────────────────────────────────────────────────────────
    # Format: sqlite+aiosqlite:///path/to.db or postgresql+asyncpg://user:pw@host/db
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/rescan.db",
        description="Async SQLAlchemy connection URL",
    )

    # Pool sizing only applies to client-server databases; SQLite ignores it.
    db_pool_size: int = Field(default=20, ge=5, le=100)
    db_max_overflow: int = Field(default=10, ge=0, le=50)
    db_pool_pre_ping: bool = Field(default=True)

    # Seconds a SQLite writer waits for the write lock before failing
    sqlite_busy_timeout: float = Field(default=5.0, gt=0, le=120)

    # Run Base.metadata.create_all() at startup (disable when Alembic owns the schema)
    db_auto_create: bool = Field(default=True)

    # ── Address Rules ─────────────────────────────────────────────────────
    address_max_length: int = Field(default=255, ge=16, le=255)

    # Comma-separated region terms; an address must contain one of them as a
    # whole word. Empty means any region is accepted.
    # Example: "nj,new jersey"
    address_required_terms: str = Field(default="")

    @property
    def address_required_terms_list(self) -> List[str]:
        return [
            term.strip().casefold()
            for term in self.address_required_terms.split(",")
            if term.strip()
        ]

    # ── Points Ledger ─────────────────────────────────────────────────────
    points_recyclable: int = Field(default=100, ge=0)
    points_non_recyclable: int = Field(default=10, ge=0)

    # Extra points for confident identifications: +25 at >= 0.9, +10 at >= 0.7
    confidence_bonus_enabled: bool = Field(default=False)

    # Upper bound for one ledger transaction (find-or-create + insert + increment)
    ledger_timeout_seconds: float = Field(default=10.0, gt=0, le=120)

    # ── Vision ────────────────────────────────────────────────────────────
    # auto: Gemini when GEMINI_API_KEY is set, otherwise the mock analyzer
    vision_provider: str = Field(default="auto")

    @field_validator("vision_provider")
    @classmethod
    def validate_vision_provider(cls, v: str) -> str:
        valid = {"auto", "gemini", "mock"}
        lower = v.lower()
        if lower not in valid:
            raise ValueError(f"Invalid vision_provider '{v}'. Must be one of: {valid}")
        return lower

    # Identifications below this confidence (0.0-1.0) are rejected
    min_confidence: float = Field(default=0.2, ge=0.0, le=1.0)

    # How to obtain: https://aistudio.google.com/app/apikey
    gemini_api_key: str = Field(
        default="",
        description="Google Gemini API key for recycling symbol recognition",
    )
    gemini_model: str = Field(default="gemini-1.5-flash")

    @property
    def gemini_configured(self) -> bool:
        return bool(self.gemini_api_key) and self.gemini_api_key != "your_gemini_api_key_here"

    # ── File Storage ──────────────────────────────────────────────────────
    storage_root: str = Field(default="./storage")

    # Default: 10MB = 10 * 1024 * 1024
    max_file_size: int = Field(default=10_485_760, ge=1_048_576, le=52_428_800)

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Retry Configuration (vision calls) ────────────────────────────────
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_min_wait: int = Field(default=2, ge=0, le=30)
    retry_max_wait: int = Field(default=10, ge=0, le=120)

    # ── Circuit Breaker ───────────────────────────────────────────────────
    # After N consecutive failures, stop calling the vision API for M seconds
    cb_failure_threshold: int = Field(default=5, ge=1, le=20)
    cb_recovery_timeout: int = Field(default=60, ge=0, le=300)

    # ── Rate Limiting ─────────────────────────────────────────────────────
    rate_limit_requests: int = Field(default=100, ge=1, le=10000)
    rate_limit_window: int = Field(default=3600, ge=1, le=86400)  # seconds

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    def validate_required_for_production(self) -> None:
        """
        Validates that settings required by the selected providers are present.

        Raises ValueError listing every problem found.
        """
        errors = []
        if self.vision_provider == "gemini" and not self.gemini_configured:
            errors.append(
                "VISION_PROVIDER=gemini but GEMINI_API_KEY is not set. "
                "Get a free key at https://aistudio.google.com/app/apikey"
            )
        if self.points_recyclable < self.points_non_recyclable:
            errors.append(
                "POINTS_RECYCLABLE must not be lower than POINTS_NON_RECYCLABLE"
            )
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


settings = Settings()
