"""Configuration loaded from environment variables and an optional ``.env`` file.

Every knob is prefixed with ``JOB_AGGREGATOR_``; nested source settings use a
double underscore, e.g. ``JOB_AGGREGATOR_REMOTIVE__TIMEOUT_S=10`` or
``JOB_AGGREGATOR_REMOTIVE__RATE_LIMIT__MAX_CALLS=2``.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import SourceName
from .rate_limit import RateLimitPolicy

BASE_DIR = Path(__file__).resolve().parent.parent


class SourceSettings(BaseModel):
    """Settings shared by every source client."""

    enabled: bool = True
    base_url: str
    timeout_s: float = Field(default=20.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    backoff_s: float = Field(default=2.0, ge=0)
    default_limit: int = Field(default=50, ge=0)
    rate_limit: RateLimitPolicy = Field(default_factory=RateLimitPolicy)


class RemotiveSettings(SourceSettings):
    base_url: str = "https://remotive.com/api/remote-jobs"
    # Remotive asks clients to stay around four requests a day.
    rate_limit: RateLimitPolicy = Field(
        default_factory=lambda: RateLimitPolicy(max_calls=4, period_s=86400.0, on_limit="reject")
    )


class ArbeitnowSettings(SourceSettings):
    base_url: str = "https://www.arbeitnow.com/api/job-board-api"
    max_pages: int = Field(default=3, ge=1)
    rate_limit: RateLimitPolicy = Field(
        default_factory=lambda: RateLimitPolicy(max_calls=30, period_s=60.0, on_limit="delay")
    )


class HNWhoIsHiringSettings(SourceSettings):
    base_url: str = "https://hacker-news.firebaseio.com/v0"
    item_url: str = "https://news.ycombinator.com/item?id={id}"
    username: str = "whoishiring"
    thread_scan_depth: int = Field(default=10, ge=1)
    reply_concurrency: int = Field(default=10, ge=1)
    max_replies: int = Field(default=200, ge=1)
    default_limit: int = Field(default=100, ge=0)
    rate_limit: RateLimitPolicy = Field(
        default_factory=lambda: RateLimitPolicy(max_calls=10, period_s=3600.0, on_limit="delay")
    )


class Settings(BaseSettings):
    """Configuration for the aggregation engine."""

    model_config = SettingsConfigDict(
        env_prefix="JOB_AGGREGATOR_",
        env_nested_delimiter="__",
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_path: str = "jobs.db"
    user_agent: str = "job-aggregator/1.0"
    log_level: str = "INFO"

    # Order in which sources are invoked and merged.
    source_order: List[SourceName] = Field(
        default_factory=lambda: ["remotive", "hn_who_is_hiring", "arbeitnow"]
    )

    remotive: RemotiveSettings = Field(default_factory=RemotiveSettings)
    arbeitnow: ArbeitnowSettings = Field(default_factory=ArbeitnowSettings)
    hn_who_is_hiring: HNWhoIsHiringSettings = Field(default_factory=HNWhoIsHiringSettings)

    def source_settings(self, name: str) -> SourceSettings:
        return getattr(self, name)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
