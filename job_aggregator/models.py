"""Data models for the aggregation engine.

The key idea: the product owns a *stable* normalized schema regardless of the
upstream job source(s). Sources produce ``IntermediateRecord`` objects that
stay close to the provider's payload; the normalizer turns them into ``Job``.

This file uses Pydantic v2.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


SourceName = Literal["remotive", "arbeitnow", "hn_who_is_hiring"]

SalaryPeriod = Literal["hourly", "daily", "weekly", "monthly", "annual"]


class FetchFilter(BaseModel):
    """Request-scoped filter passed unchanged to every source.

    Sources honour what their API supports server-side; the rest is applied
    client-side. A source that cannot filter by location simply ignores it.
    """

    model_config = ConfigDict(frozen=True)

    keywords: Optional[str] = None
    location: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=0, description="Max jobs per source.")

    @field_validator("keywords", "location")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class IntermediateRecord(BaseModel):
    """A source-specific record after parsing, before normalization.

    Every field is optional: heuristic sources (the HN thread scrape) often
    cannot fill them all.
    """

    source_id: Optional[str] = None
    title: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    salary_text: Optional[str] = None
    salary_min: Optional[float] = None
    salary_max: Optional[float] = None
    salary_currency: Optional[str] = None

    remote: Optional[bool] = Field(default=None, description="Explicit remote flag from the provider.")
    posted_raw: Optional[Union[str, int, float, datetime]] = Field(
        default=None,
        description="Posting date in the provider's native representation.",
    )

    raw: Dict[str, Any] = Field(default_factory=dict, description="Original payload.")


class Job(BaseModel):
    """The canonical, source-agnostic job record.

    Fields are intentionally explicit and stable. Prefer adding new fields rather
    than changing existing ones once you start storing these in a database.
    ``is_saved`` and ``match_score`` belong to the user and the scoring
    collaborator; aggregation never sets them.
    """

    id: str = Field(..., description="sha256(source|source_id), else sha256(title|company|source_url).")
    source: SourceName
    source_id: Optional[str] = Field(default=None, description="Provider-native identifier.")

    title: str
    company: str
    location: Optional[str] = None
    description: Optional[str] = None
    requirements: List[str] = Field(default_factory=list)

    salary_min: Optional[int] = None
    salary_max: Optional[int] = None
    salary_currency: Optional[str] = None
    salary_period: Optional[SalaryPeriod] = None

    source_url: str = Field(..., min_length=1)
    posted_date: Optional[datetime] = Field(default=None, description="Source-reported posting time (UTC).")
    fetched_at: datetime = Field(..., description="When the aggregator collected this listing (UTC).")

    is_remote: bool = False
    is_saved: bool = False
    match_score: Optional[float] = None

    @field_validator("source_url")
    @classmethod
    def _url_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("source_url must not be empty")
        return v

    @model_validator(mode="after")
    def _salary_ordered(self) -> "Job":
        if self.salary_min is not None and self.salary_max is not None and self.salary_min > self.salary_max:
            raise ValueError(f"salary_min ({self.salary_min}) exceeds salary_max ({self.salary_max})")
        return self

    @property
    def dedup_key(self) -> str:
        """Natural identity shared by in-memory dedup and the upsert conflict target."""
        if self.source_id:
            return f"{self.source}:{self.source_id}"
        return f"url:{self.source_url}"


class SourceOutcome(BaseModel):
    """One source's result within a fetch: a count, or an error summary."""

    source: str
    count: Optional[int] = None
    error: Optional[str] = None
    elapsed_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


class FetchResult(BaseModel):
    """What a caller of ``fetch_all`` gets back."""

    fetched: int = Field(..., description="Jobs returned by all successful sources, before dedup.")
    unique: int = Field(..., description="Jobs left after cross-source dedup.")
    saved: int = Field(..., description="Rows written by the persistence adapter.")
    per_source: List[SourceOutcome] = Field(default_factory=list)

    @property
    def failed_sources(self) -> List[str]:
        return [o.source for o in self.per_source if not o.ok]
