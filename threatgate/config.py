"""
Application configuration. Loads from environment variables.
Secrets and sensitive config must never be hardcoded.

Per-entity-class thresholds live in profiles/*.yaml (see threatgate.profiles);
this module only carries deployment settings.
"""

import os

from dotenv import load_dotenv

load_dotenv()
from functools import lru_cache
from pathlib import Path


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Return cached settings instance."""
    return Settings()


def _default_profiles_dir() -> str:
    # threatgate/config.py -> project_root/profiles
    return str(Path(__file__).resolve().parent.parent / "profiles")


class Settings:
    """Application settings loaded from environment."""

    # App
    app_name: str = "ThreatGate"
    debug: bool = False

    # Database (postgresql+psycopg for psycopg3 async; sqlite+aiosqlite for local runs)
    database_url: str = "postgresql+psycopg://localhost:5432/threatgate_dev"
    db_connect_timeout: int = 10  # seconds

    # Security
    internal_job_token: str = ""  # Required for /internal/* and /api/* endpoints

    # Profiles (entity-class engine config)
    profiles_dir: str = ""

    # Scheduled re-evaluation
    re_eval_concurrency: int = 20  # concurrent entity evaluations per batch
    re_eval_budget_seconds: float = 240.0  # wall-clock budget per batch run

    # Capacity counters older than this are purged at the end of each batch
    capacity_retention_days: int = 7

    def __init__(self) -> None:
        self.app_name = os.getenv("APP_NAME", self.app_name)
        self.debug = os.getenv("DEBUG", "false").lower() == "true"

        default_user = os.getenv("PGUSER") or os.getenv("USER") or "postgres"
        default_url = (
            f"postgresql+psycopg://{default_user}:"
            f"{os.getenv('PGPASSWORD', '')}@"
            f"{os.getenv('PGHOST', 'localhost')}:"
            f"{os.getenv('PGPORT', '5432')}/"
            f"{os.getenv('PGDATABASE', 'threatgate_dev')}"
        )
        raw_url = os.getenv("DATABASE_URL", default_url)
        # Ensure psycopg3 driver if URL uses generic postgresql://
        if raw_url.startswith("postgresql://") and not raw_url.startswith("postgresql+psycopg"):
            raw_url = raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
        self.database_url = raw_url
        self.db_connect_timeout = int(os.getenv("DB_CONNECT_TIMEOUT", str(self.db_connect_timeout)))

        self.internal_job_token = os.getenv("INTERNAL_JOB_TOKEN", "")

        self.profiles_dir = os.getenv("PROFILES_DIR") or _default_profiles_dir()

        self.re_eval_concurrency = int(
            os.getenv("RE_EVAL_CONCURRENCY", str(self.re_eval_concurrency))
        )
        self.re_eval_budget_seconds = float(
            os.getenv("RE_EVAL_BUDGET_SECONDS", str(self.re_eval_budget_seconds))
        )
        self.capacity_retention_days = int(
            os.getenv("CAPACITY_RETENTION_DAYS", str(self.capacity_retention_days))
        )
