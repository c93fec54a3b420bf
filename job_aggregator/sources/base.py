"""Base classes for source connectors."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..config import SourceSettings
from ..errors import SourceError
from ..models import FetchFilter, IntermediateRecord, SourceName
from ..rate_limit import RateLimitState

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "job-aggregator/1.0"


class JobSource(ABC):
    """Abstract base class for a job source connector.

    Subclasses implement ``_fetch`` and declare which filters their API can
    apply server-side. ``fetch`` wraps it with the rate-limit check and the
    HTTP client lifecycle. An empty result is a success; only transport
    failures, unexpected payloads and rate-limit rejections raise
    ``SourceError``.
    """

    name: SourceName
    supports_keyword_search: bool = False
    supports_location_search: bool = False

    def __init__(
        self,
        settings: SourceSettings,
        rate_limit: Optional[RateLimitState] = None,
        client: Optional[httpx.AsyncClient] = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.settings = settings
        self.rate_limit = rate_limit or RateLimitState(self.name, settings.rate_limit)
        self._client = client
        self._user_agent = user_agent

    @property
    def timeout_s(self) -> float:
        return self.settings.timeout_s

    async def fetch(self, filters: FetchFilter) -> List[IntermediateRecord]:
        """Fetch raw listings for ``filters`` as intermediate records."""
        reservation = self.rate_limit.reserve()
        if reservation.delay > 0:
            logger.info("%s: rate limited, waiting %.1fs", self.name, reservation.delay)
            try:
                await asyncio.sleep(reservation.delay)
            except asyncio.CancelledError:
                self.rate_limit.release(reservation)
                raise

        if self._client is not None:
            return await self._fetch(self._client, filters)

        async with httpx.AsyncClient(
            timeout=self.settings.timeout_s,
            follow_redirects=True,
            headers={"User-Agent": self._user_agent, "Accept": "application/json"},
        ) as client:
            return await self._fetch(client, filters)

    @abstractmethod
    async def _fetch(self, client: httpx.AsyncClient, filters: FetchFilter) -> List[IntermediateRecord]:
        """Fetch and parse listings using ``client``."""
        raise NotImplementedError

    def effective_limit(self, filters: FetchFilter) -> int:
        """The request limit, or this source's configured default cap."""
        return filters.limit if filters.limit is not None else self.settings.default_limit

    async def _get_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """GET ``url`` and decode JSON, retrying 429 responses with exponential backoff."""
        retries = 0
        while True:
            try:
                resp = await client.get(url, params=params)
                resp.raise_for_status()
                break
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code == 429 and retries < self.settings.max_retries:
                    sleep_s = self.settings.backoff_s * (2**retries)
                    logger.warning("%s: HTTP 429 from %s, retrying in %.1fs", self.name, url, sleep_s)
                    await asyncio.sleep(sleep_s)
                    retries += 1
                    continue
                raise SourceError(self.name, f"HTTP {exc.response.status_code} from {url}") from exc
            except httpx.HTTPError as exc:
                raise SourceError(self.name, f"request to {url} failed: {exc!r}") from exc

        try:
            return resp.json()
        except ValueError as exc:
            raise SourceError(self.name, f"invalid JSON from {url}") from exc

    def _expect(self, payload: Any, kind: type, what: str) -> Any:
        if not isinstance(payload, kind):
            raise SourceError(self.name, f"unexpected payload: {what} is {type(payload).__name__}")
        return payload

    # --- client-side filtering ------------------------------------------------

    def matches(self, record: IntermediateRecord, filters: FetchFilter) -> bool:
        """Case-insensitive substring filter for whatever the API could not apply itself."""
        if filters.keywords and not self.supports_keyword_search:
            kw = filters.keywords.lower()
            haystack = " ".join(
                [record.title or "", record.description or "", record.company or "", *record.tags]
            ).lower()
            if kw not in haystack:
                return False

        if filters.location and not self.supports_location_search:
            loc = filters.location.lower()
            location = (record.location or "").lower()
            is_remote = bool(record.remote) or "remote" in location
            if loc not in location and not (loc == "remote" and is_remote):
                return False

        return True

    def apply_client_filters(
        self, records: Iterable[IntermediateRecord], filters: FetchFilter
    ) -> List[IntermediateRecord]:
        """Filter client-side, drop URL-less records, then cut to the per-source limit."""
        out: List[IntermediateRecord] = []
        limit = self.effective_limit(filters)
        for record in records:
            if len(out) >= limit:
                break
            if not record.url:
                logger.debug("%s: dropping record %s without URL", self.name, record.source_id)
                continue
            if self.matches(record, filters):
                out.append(record)
        return out

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
