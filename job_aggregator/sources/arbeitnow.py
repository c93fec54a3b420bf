"""Arbeitnow jobs source connector.

Docs: https://www.arbeitnow.com/api/job-board-api

Arbeitnow is a Germany/EU focused board with no server-side filtering. We
paginate through the public job board API and filter client-side until the
per-source limit is reached or ``max_pages`` pages have been read.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import httpx

from ..config import ArbeitnowSettings
from ..models import FetchFilter, IntermediateRecord
from ..utils import clean_html, clean_text
from .base import JobSource

logger = logging.getLogger(__name__)


class ArbeitnowSource(JobSource):
    """Fetch jobs from Arbeitnow."""

    name = "arbeitnow"
    settings: ArbeitnowSettings

    def _parse_job(self, j: Dict[str, Any]) -> IntermediateRecord:
        tags = [str(t) for t in (j.get("tags") or []) if t]
        job_types = [str(t) for t in (j.get("job_types") or []) if t]
        remote = j.get("remote")
        return IntermediateRecord(
            source_id=clean_text(j.get("slug")),
            title=clean_text(j.get("title")),
            company=clean_text(j.get("company_name") or j.get("company")),
            location=clean_text(j.get("location")),
            description=clean_html(j.get("description")) or None,
            url=clean_text(j.get("url")),
            tags=tags + job_types,
            salary_text=clean_text(j.get("salary")) if isinstance(j.get("salary"), str) else None,
            remote=remote if isinstance(remote, bool) else None,
            # Arbeitnow returns "created_at" as epoch seconds
            posted_raw=j.get("created_at"),
            raw=j,
        )

    async def _fetch(self, client: httpx.AsyncClient, filters: FetchFilter) -> List[IntermediateRecord]:
        limit = self.effective_limit(filters)
        out: List[IntermediateRecord] = []
        page = 1

        while page <= self.settings.max_pages and len(out) < limit:
            payload = self._expect(
                await self._get_json(client, self.settings.base_url, {"page": page}), dict, "response"
            )
            jobs = self._expect(payload.get("data") or [], list, "'data'")
            if not jobs:
                break

            records = [self._parse_job(self._expect(j, dict, "job entry")) for j in jobs]
            out.extend(self.apply_client_filters(records, filters))
            logger.debug("%s: page %d gave %d jobs, %d kept so far", self.name, page, len(jobs), len(out))

            if "links" in payload and not (payload["links"] or {}).get("next"):
                break
            page += 1

        return out[:limit]
