import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx

from job_aggregator.config import SourceSettings
from job_aggregator.models import FetchFilter, IntermediateRecord, Job
from job_aggregator.rate_limit import RateLimitPolicy
from job_aggregator.sources.base import JobSource

FETCHED_AT = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

OPEN_POLICY = RateLimitPolicy(max_calls=1000, period_s=1.0, on_limit="reject")


def run(coro):
    return asyncio.run(coro)


def fetch_with(source_cls, source_settings, handler: Callable[[httpx.Request], httpx.Response], filters=None, **kwargs):
    """Run one source's fetch against a mocked transport."""

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = source_cls(source_settings, client=client, **kwargs)
            return await source.fetch(filters or FetchFilter())

    return run(go())


def make_job(**overrides: Any) -> Job:
    data: Dict[str, Any] = dict(
        id="job-1",
        source="remotive",
        source_id="1",
        title="Backend Engineer",
        company="Acme",
        source_url="https://example.com/jobs/1",
        fetched_at=FETCHED_AT,
    )
    data.update(overrides)
    return Job(**data)


class FakeSource(JobSource):
    """In-memory source with a configurable delay or failure."""

    def __init__(
        self,
        name: str,
        records: Optional[List[IntermediateRecord]] = None,
        delay: float = 0.0,
        error: Optional[BaseException] = None,
        timeout_s: float = 5.0,
        supports_keyword_search: bool = False,
    ) -> None:
        self.name = name
        self.supports_keyword_search = supports_keyword_search
        super().__init__(SourceSettings(base_url="http://fake.invalid", timeout_s=timeout_s, rate_limit=OPEN_POLICY))
        self.records = records or []
        self.delay = delay
        self.error = error
        self.calls = 0

    async def _fetch(self, client, filters):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.records)


def record(n: int, **overrides: Any) -> IntermediateRecord:
    data: Dict[str, Any] = dict(
        source_id=str(n),
        title=f"Engineer {n}",
        company="Acme",
        url=f"https://example.com/jobs/{n}",
    )
    data.update(overrides)
    return IntermediateRecord(**data)
