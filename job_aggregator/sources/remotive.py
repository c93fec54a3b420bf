"""Remotive jobs source connector.

Remotive provides a public JSON endpoint (great for an MVP ingestion layer).
It supports a free-text ``search`` and a ``limit`` parameter server-side;
location is filtered client-side against ``candidate_required_location``.
Every listing is remote.

Docs: https://remotive.com/api/remote-jobs

Note: Free APIs can change; treat this as a pluggable connector. Remotive asks
for a handful of requests per day, which the default rate-limit policy enforces.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from ..models import FetchFilter, IntermediateRecord
from ..utils import clean_html, clean_text
from .base import JobSource


class RemotiveSource(JobSource):
    """Fetch jobs from Remotive."""

    name = "remotive"
    supports_keyword_search = True

    @staticmethod
    def _extract_salary(payload: Dict[str, Any]) -> Optional[str]:
        """Return the salary string, or None if missing/empty."""
        val = payload.get("salary") or payload.get("compensation")
        if isinstance(val, (int, float)):
            return str(val)
        if isinstance(val, str):
            return clean_text(val)
        return None

    async def _fetch(self, client: httpx.AsyncClient, filters: FetchFilter) -> List[IntermediateRecord]:
        params: Dict[str, Any] = {}
        if filters.keywords:
            params["search"] = filters.keywords
        # A server-side limit would cut the list before the location filter runs.
        if not filters.location:
            params["limit"] = self.effective_limit(filters)

        payload = self._expect(await self._get_json(client, self.settings.base_url, params), dict, "response")
        jobs = self._expect(payload.get("jobs") or [], list, "'jobs'")

        out: List[IntermediateRecord] = []
        for j in jobs:
            j = self._expect(j, dict, "job entry")
            tags = j.get("tags") or []
            out.append(
                IntermediateRecord(
                    source_id=str(j["id"]) if j.get("id") is not None else None,
                    title=clean_text(j.get("title")),
                    company=clean_text(j.get("company_name")),
                    # Remotive has "candidate_required_location" like "USA Only" or "Worldwide"
                    location=clean_text(j.get("candidate_required_location")) or "Remote",
                    description=clean_html(j.get("description")) or None,
                    url=clean_text(j.get("url")),
                    tags=[str(t) for t in tags if t],
                    salary_text=self._extract_salary(j),
                    remote=True,
                    # Remotive has "publication_date" like "2024-01-01T12:34:56"
                    posted_raw=j.get("publication_date"),
                    raw=j,
                )
            )

        return self.apply_client_filters(out, filters)
