"""Exception hierarchy for the aggregation engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .models import Job


class JobAggregatorError(Exception):
    """Base class for all errors raised by this package."""


class SourceError(JobAggregatorError):
    """A single source failed: transport error, bad payload or rate limit.

    Scoped to one source. The aggregator records it in the per-source
    outcome and keeps going with the other sources.
    """

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message


class RateLimitExceeded(SourceError):
    """The call came sooner than the source's configured cadence allows."""

    def __init__(self, source: str, retry_after_s: float) -> None:
        super().__init__(source, f"rate limit exceeded, retry in {retry_after_s:.0f}s")
        self.retry_after_s = retry_after_s


class AggregationError(JobAggregatorError):
    """Nothing to aggregate: no sources configured, or unknown names selected."""


class PersistenceError(JobAggregatorError):
    """The upsert transaction failed and was rolled back.

    ``jobs`` holds the normalized jobs computed before the failure so the
    caller can still use them.
    """

    def __init__(self, message: str, jobs: Optional[List["Job"]] = None) -> None:
        super().__init__(message)
        self.jobs: List["Job"] = list(jobs or [])
