"""Job service: the entry point the surrounding application calls.

``fetch_all`` runs the aggregator, persists the merged jobs and reports
counts. The remaining methods are thin reads and user actions on stored jobs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional, Tuple

from .aggregator import JobAggregator
from .config import Settings, get_settings
from .errors import PersistenceError
from .models import FetchFilter, FetchResult, Job
from .report import build_fetch_result
from .storage import JobSearchQuery, SqliteJobRepository

logger = logging.getLogger(__name__)


class JobService:
    """Fetch, store and query jobs."""

    def __init__(self, aggregator: JobAggregator, repository: SqliteJobRepository) -> None:
        self.aggregator = aggregator
        self.repository = repository

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "JobService":
        settings = settings or get_settings()
        return cls(JobAggregator.from_settings(settings), SqliteJobRepository(settings.database_path))

    async def fetch_all(
        self,
        keywords: Optional[str] = None,
        location: Optional[str] = None,
        limit: Optional[int] = None,
        sources: Optional[Iterable[str]] = None,
    ) -> FetchResult:
        """Fetch from all (or the named) sources, upsert the jobs and report.

        Source failures show up in ``per_source``. Raises ``AggregationError``
        when no source is selected and ``PersistenceError`` when the upsert
        fails; the latter carries the fetched jobs.
        """
        filters = FetchFilter(keywords=keywords, location=location, limit=limit)
        result, _ = await self.fetch_and_store(filters, sources)
        return result

    async def fetch_and_store(
        self,
        filters: FetchFilter,
        sources: Optional[Iterable[str]] = None,
    ) -> Tuple[FetchResult, List[Job]]:
        """Like ``fetch_all`` but also returns the merged jobs."""
        jobs, outcomes = await self.aggregator.fetch_all(filters, sources)
        try:
            saved = await asyncio.to_thread(self.repository.upsert, jobs)
        except PersistenceError as exc:
            logger.error("Saving %d jobs failed: %s", len(jobs), exc)
            exc.jobs = list(jobs)
            raise
        logger.info("Saved %d of %d jobs", saved, len(jobs))
        return build_fetch_result(jobs, outcomes, saved), jobs

    def search_jobs(self, query: JobSearchQuery) -> List[Job]:
        return self.repository.search(query)

    def get_saved_jobs(self) -> List[Job]:
        return self.repository.get_saved()

    def save_job(self, job_id: str) -> bool:
        return self.repository.save(job_id)

    def unsave_job(self, job_id: str) -> bool:
        return self.repository.unsave(job_id)

    def update_match_score(self, job_id: str, score: float) -> bool:
        return self.repository.update_match_score(job_id, score)
