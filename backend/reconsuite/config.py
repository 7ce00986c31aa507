"""
ReconSuite application configuration.

Loads settings from environment variables with sensible defaults for local
development.  Uses Pydantic BaseSettings so every value can be overridden via
an environment variable or a ``.env`` file placed next to the backend root.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the ReconSuite backend.

    All attributes can be overridden through environment variables of the same
    name (case-insensitive).  For example, set ``DATABASE_URL`` in the shell or
    in a ``.env`` file to point the backend at PostgreSQL instead of SQLite.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ─────────────────────────────────────────────────────────
    APP_NAME: str = "ReconSuite"
    API_PREFIX: str = "/api"
    DEBUG: bool = False
    HOST: str = "127.0.0.1"
    PORT: int = 8080

    # ── Database ────────────────────────────────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./reconsuite.db"
    AUTO_CREATE_SCHEMA: bool = True

    # ── Redis event mirror (disabled when unset) ────────────────────────────
    REDIS_URL: Optional[str] = None

    # ── CORS ────────────────────────────────────────────────────────────────
    CORS_ORIGINS: list[str] = ["http://localhost:8080", "http://127.0.0.1:8080"]

    # ── Scan execution ──────────────────────────────────────────────────────
    MAX_CONCURRENT_SCANS: int = 0  # 0 = unbounded
    OUTPUT_BUFFER_LINES: int = 100
    OBSERVER_SEND_TIMEOUT_SECONDS: float = 5.0
    KILL_GRACE_SECONDS: float = 5.0
    SHUTDOWN_TIMEOUT_SECONDS: float = 10.0

    # ── Tool defaults ───────────────────────────────────────────────────────
    DEFAULT_WORDLIST: str = "/usr/share/wordlists/dirb/common.txt"
    HTTP_USER_AGENT: str = "ReconSuite/1.0 (Metadata Extractor)"

    # ── Validators ──────────────────────────────────────────────────────────

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: object) -> list[str]:
        """Accept a comma-separated string *or* an actual list."""
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return list(value)  # type: ignore[arg-type]

    @field_validator("MAX_CONCURRENT_SCANS")
    @classmethod
    def check_concurrency(cls, value: int) -> int:
        """Reject negative caps; zero disables the admission limit."""
        if value < 0:
            raise ValueError("MAX_CONCURRENT_SCANS must be >= 0")
        return value

    @field_validator("OUTPUT_BUFFER_LINES")
    @classmethod
    def check_buffer(cls, value: int) -> int:
        """The output channel needs room for at least one line."""
        if value < 1:
            raise ValueError("OUTPUT_BUFFER_LINES must be >= 1")
        return value

    @property
    def is_sqlite(self) -> bool:
        """``True`` when the configured database is SQLite."""
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings.

    Using ``lru_cache`` ensures the ``.env`` file is read only once and the
    same ``Settings`` instance is reused across the entire process.
    """
    return Settings()
