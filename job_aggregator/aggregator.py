"""Job Aggregator - combines results from multiple job sources.

Sources run concurrently, each under its own timeout. A slow or failing
source is recorded as a failed outcome and never blocks the others.

Ordering:
- Results are merged in configured source order, not completion order
- Within a source, jobs keep the order the provider returned

Deduplication:
- Jobs are keyed by ``Job.dedup_key`` (the same identity the repository
  upserts on)
- A later duplicate only fills fields that are still empty on the first
  occurrence; non-empty values are never overwritten
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx

from .config import Settings, get_settings
from .errors import AggregationError, SourceError
from .models import FetchFilter, Job, SourceOutcome
from .normalize import UNKNOWN, normalize
from .rate_limit import RateLimitState
from .sources import JobSource, build_sources
from .utils import utcnow

logger = logging.getLogger(__name__)

# Identity and user/scoring-owned fields never come from a duplicate.
NON_MERGED_FIELDS = frozenset(
    {"id", "source", "source_id", "source_url", "fetched_at", "is_remote", "is_saved", "match_score"}
)


# Fields the normalizer fills with a placeholder when the source had nothing.
PLACEHOLDER_FIELDS = frozenset({"title", "company"})

# Amounts are only meaningful together with their currency and period.
SALARY_FIELDS = ("salary_min", "salary_max", "salary_currency", "salary_period")


def _is_missing(name: str, value: Any) -> bool:
    if name in PLACEHOLDER_FIELDS and value == UNKNOWN:
        return True
    return value is None or value == "" or value == []


def merge_duplicate(first: Job, duplicate: Job) -> Job:
    """Fill ``first``'s empty fields from ``duplicate`` (first-non-null wins)."""
    updates: Dict[str, Any] = {}
    for name in Job.model_fields:
        if name in NON_MERGED_FIELDS:
            continue
        if _is_missing(name, getattr(first, name)):
            candidate = getattr(duplicate, name)
            if not _is_missing(name, candidate):
                updates[name] = candidate

    low = updates.get("salary_min", first.salary_min)
    high = updates.get("salary_max", first.salary_max)
    if low is not None and high is not None and low > high:
        logger.debug("Not merging salary for %s: %s > %s", first.dedup_key, low, high)
        for name in SALARY_FIELDS:
            updates.pop(name, None)

    return first.model_copy(update=updates) if updates else first


def merge_jobs(jobs: Iterable[Job]) -> List[Job]:
    """Deduplicate by identity, keeping the position of the first occurrence."""
    index: Dict[str, int] = {}
    out: List[Job] = []
    for job in jobs:
        key = job.dedup_key
        if key in index:
            out[index[key]] = merge_duplicate(out[index[key]], job)
        else:
            index[key] = len(out)
            out.append(job)
    return out


class JobAggregator:
    """Aggregates job listings from multiple sources."""

    def __init__(self, sources: Sequence[JobSource]) -> None:
        names = [s.name for s in sources]
        if len(set(names)) != len(names):
            raise AggregationError(f"duplicate source names: {names}")
        self.sources: List[JobSource] = list(sources)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        rate_limits: Optional[Dict[str, RateLimitState]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "JobAggregator":
        return cls(build_sources(settings or get_settings(), rate_limits=rate_limits, client=client))

    @property
    def source_names(self) -> List[str]:
        return [s.name for s in self.sources]

    def select(self, names: Optional[Iterable[str]] = None) -> List[JobSource]:
        """Sources to run, in configured order."""
        if names is None:
            selected = list(self.sources)
        else:
            wanted = set(names)
            unknown = wanted.difference(self.source_names)
            if unknown:
                raise AggregationError(f"unknown job sources: {', '.join(sorted(unknown))}")
            selected = [s for s in self.sources if s.name in wanted]

        if not selected:
            raise AggregationError("no job sources configured or selected")
        return selected

    async def fetch_all(
        self,
        filters: Optional[FetchFilter] = None,
        sources: Optional[Iterable[str]] = None,
    ) -> Tuple[List[Job], List[SourceOutcome]]:
        """Fetch from every selected source concurrently and merge the results.

        Args:
            filters: Keyword/location/limit filter passed to every source.
            sources: Source names to use (None = all configured sources).

        Returns:
            The deduplicated jobs and one outcome per selected source, both in
            configured source order.

        Raises:
            AggregationError: If no source is configured or selected, or an
                unknown source name is given. Source failures never raise.
        """
        filters = filters or FetchFilter()
        selected = self.select(sources)
        logger.info(
            "Fetching from %s (keywords=%r, location=%r, limit=%s)",
            ", ".join(s.name for s in selected),
            filters.keywords,
            filters.location,
            filters.limit,
        )

        # gather keeps argument order, so completion timing cannot reorder sources
        results = await asyncio.gather(*(self._run_source(s, filters) for s in selected))

        outcomes = [outcome for outcome, _ in results]
        jobs = merge_jobs(job for _, batch in results for job in batch)

        failed = [o.source for o in outcomes if not o.ok]
        logger.info(
            "Found %d unique jobs from %d sources (%d failed)", len(jobs), len(selected), len(failed)
        )
        return jobs, outcomes

    async def _run_source(self, source: JobSource, filters: FetchFilter) -> Tuple[SourceOutcome, List[Job]]:
        """Run one source to completion, turning any failure into an outcome."""
        started = time.monotonic()

        def failed(message: str) -> Tuple[SourceOutcome, List[Job]]:
            elapsed = time.monotonic() - started
            return SourceOutcome(source=source.name, error=message, elapsed_s=elapsed), []

        try:
            records = await asyncio.wait_for(source.fetch(filters), timeout=source.timeout_s)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %.1fs", source.name, source.timeout_s)
            return failed(f"timed out after {source.timeout_s:g}s")
        except SourceError as exc:
            logger.warning("%s search failed: %s", source.name, exc.message)
            return failed(exc.message)
        except Exception as exc:
            logger.exception("%s search failed unexpectedly", source.name)
            return failed(f"unexpected error: {exc!r}")

        fetched_at = utcnow()
        records = source.apply_client_filters(records, filters)
        jobs: List[Job] = []
        for record in records:
            try:
                jobs.append(normalize(record, source.name, fetched_at))
            except (ValueError, ArithmeticError) as exc:
                logger.warning("%s: dropping record %s: %s", source.name, record.source_id or record.url, exc)

        elapsed = time.monotonic() - started
        logger.info("%s: found %d jobs in %.2fs", source.name, len(jobs), elapsed)
        return SourceOutcome(source=source.name, count=len(jobs), elapsed_s=elapsed), jobs
