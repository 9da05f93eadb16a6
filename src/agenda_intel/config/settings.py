"""
Agenda Intel configuration: single source of truth.

Pydantic BaseSettings, load at startup, fail fast on invalid.
"""

import os
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from project root so settings load regardless of cwd
_CONFIG_DIR = os.path.dirname(os.path.abspath(__file__))
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(_CONFIG_DIR)))
_DOTENV_PATH = os.path.join(_PROJECT_ROOT, ".env")


class AppSettings(BaseSettings):
    """Central config; single initialization."""

    model_config = SettingsConfigDict(
        env_file=_DOTENV_PATH,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite database (embedded, no server required); used when PostgreSQL is not configured
    sqlite_db_path: str = Field(
        default="agenda_intel.db",
        description="Path to SQLite database file (relative to project root or absolute)"
    )

    # PostgreSQL (when set, overrides SQLite)
    postgres_host: Optional[str] = Field(default=None, description="PostgreSQL host")
    postgres_port: int = Field(default=5432, description="PostgreSQL port")
    postgres_user: str = Field(default="admin", description="PostgreSQL user")
    postgres_password: str = Field(default="admin", description="PostgreSQL password")
    postgres_database: str = Field(default="agenda", description="PostgreSQL database name")

    cors_allow_all: bool = Field(default=True)
    cors_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000"
    )

    # Scheduling constants
    day_capacity_minutes: int = Field(default=480, ge=0, description="Workable minutes per day (8h)")
    lookahead_days: int = Field(default=14, ge=1, description="Days ahead considered for predictions")
    fallback_estimate_minutes: int = Field(default=30, gt=0, description="Estimate used when a task has none")
    overrun_ratio_threshold: float = Field(default=1.2, gt=0, description="avg/estimate ratio that signals overrun")
    client_cancellation_risk_count: int = Field(default=2, ge=1, description="Cancellations before a client is risky")
    max_recommendations: int = Field(default=15, ge=1)
    max_redistribution_suggestions: int = Field(default=20, ge=1)

    # Calendar rules and optimizer
    working_hours_start: int = Field(default=9, ge=0, le=23, description="Working day start hour")
    working_hours_end: int = Field(default=18, ge=1, le=24, description="Working day end hour")
    daily_hours_limit: float = Field(default=8, gt=0, description="Assignable hours per person per day")
    min_gap_minutes: float = Field(default=0, ge=0, description="Required margin between back-to-back tasks")
    optimizer_min_gap_minutes: float = Field(default=15, ge=0, description="Idle gap worth suggesting to fill")
    load_imbalance_threshold_minutes: float = Field(default=120, ge=0)

    # Optional: fetch predictions from a remote service instead of computing in-process
    predictions_url: Optional[str] = Field(
        default=None,
        description="Base URL of a predictions endpoint; when unset predictions are computed in-process",
    )
    predictions_timeout_seconds: float = Field(default=5.0, gt=0)

    @property
    def sqlite_conn(self) -> str:
        """SQLite connection string for SQLAlchemy."""
        db_path = self.sqlite_db_path
        if not os.path.isabs(db_path):
            db_path = os.path.join(_PROJECT_ROOT, db_path)
        return f"sqlite:///{db_path}"

    @property
    def database_url(self) -> str:
        """Primary database URL: PostgreSQL when configured, else SQLite."""
        if self.postgres_host:
            return (
                f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
                f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_database}"
            )
        return self.sqlite_conn

    @property
    def is_postgres(self) -> bool:
        """True when using PostgreSQL (postgres_host configured)."""
        return bool(self.postgres_host)

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Return settings singleton. Fail fast on first load if invalid."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
