"""Job aggregation engine.

The package is structured to be easily productized:
- `models.py` defines the stable schema (what the product owns).
- `sources/` contains per-source connectors that fetch raw listings.
- `normalize.py` turns raw listings into canonical jobs.
- `aggregator.py` runs the sources concurrently and merges their results.
- `storage.py` persists jobs idempotently; `service.py` ties it together.
"""

from .aggregator import JobAggregator
from .errors import AggregationError, JobAggregatorError, PersistenceError, RateLimitExceeded, SourceError
from .models import FetchFilter, FetchResult, IntermediateRecord, Job, SourceOutcome
from .service import JobService
from .storage import JobSearchQuery, SqliteJobRepository

__all__ = [
    "AggregationError",
    "FetchFilter",
    "FetchResult",
    "IntermediateRecord",
    "Job",
    "JobAggregator",
    "JobAggregatorError",
    "JobSearchQuery",
    "JobService",
    "PersistenceError",
    "RateLimitExceeded",
    "SourceError",
    "SourceOutcome",
    "SqliteJobRepository",
]
