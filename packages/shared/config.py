"""
Run configuration for the EPA assignment and enrichment jobs.

Built once per run (from the environment or explicitly) and passed down to
the engine factory and the pipeline. Nothing below reads the environment
after construction.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote_plus

from pydantic import BaseModel, Field, field_validator

DEFAULT_DATA_DIR = Path(os.environ.get("DATA_DIR", "data"))
DEFAULT_REPORT_LIMIT = 500
MAX_REPORT_LIMIT = 10000


def _first_env(*names: str) -> Optional[str]:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


def _rds_url() -> Optional[str]:
    """Assemble a MySQL URL from the RDS_* / AWS_RDS_* variables, if present."""
    host = _first_env("RDS_HOST", "AWS_RDS_HOST")
    if not host:
        return None
    user = _first_env("RDS_USER", "AWS_RDS_USER") or ""
    password = _first_env("RDS_PWD", "AWS_RDS_PWD", "AWS_RDS_PASS") or ""
    database = _first_env("RDS_DB", "AWS_RDS_DB") or ""
    port = _first_env("RDS_PORT", "AWS_RDS_PORT") or "3306"
    return f"mysql+pymysql://{quote_plus(user)}:{quote_plus(password)}@{host}:{port}/{database}"


def _normalize_database_url(url: str) -> str:
    # Render (and Heroku) provide postgres:// but SQLAlchemy 2.0 requires postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def clamp_limit(limit: Optional[int]) -> int:
    if not limit:
        return DEFAULT_REPORT_LIMIT
    return max(1, min(MAX_REPORT_LIMIT, int(limit)))


class PipelineConfig(BaseModel):
    """Configuration for one EPA assignment (or enrichment) run."""
    database_url: str = f"sqlite:///{DEFAULT_DATA_DIR / 'epatrack.db'}"
    report_limit: int = DEFAULT_REPORT_LIMIT
    write: bool = False
    workers: int = Field(default=1, ge=1, le=32)
    review_output_path: Path = DEFAULT_DATA_DIR / "assign_epa_scores_unmatched.json"
    review_excerpt_chars: int = Field(default=500, ge=0)
    echo_sql: bool = False

    @field_validator("database_url")
    @classmethod
    def _fix_scheme(cls, v: str) -> str:
        return _normalize_database_url(v.strip())

    @field_validator("report_limit", mode="before")
    @classmethod
    def _clamp(cls, v) -> int:
        return clamp_limit(v)

    @classmethod
    def from_env(cls, **overrides) -> "PipelineConfig":
        """Read DATABASE_URL (or RDS_*), EPA_REVIEW_PATH and EPA_WORKERS."""
        values: dict = {}
        url = os.environ.get("DATABASE_URL") or _rds_url()
        if url:
            values["database_url"] = url
        review_path = os.environ.get("EPA_REVIEW_PATH")
        if review_path:
            values["review_output_path"] = Path(review_path)
        workers = os.environ.get("EPA_WORKERS")
        if workers:
            values["workers"] = workers
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")
