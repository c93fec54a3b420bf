"""Hacker News "Who is hiring?" thread source.

Uses the official Hacker News Firebase API (no key required). The thread is
posted on the first weekday of each month by the ``whoishiring`` account; each
direct reply is one free-text job post.

Parsing is best-effort. Most posts open with a line like
``Company | Title | Location | REMOTE``, but many do not, so any field we
cannot find is left as None for the normalizer to deal with.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from ..config import HNWhoIsHiringSettings
from ..errors import SourceError
from ..models import FetchFilter, IntermediateRecord
from ..utils import clean_html, clean_text, uniq_preserve_order, utcnow
from .base import JobSource

logger = logging.getLogger(__name__)

MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

HIRING_TITLE_RE = re.compile(r"who\s+is\s+hiring\?\s*\((?P<month>[A-Za-z]+)\s+(?P<year>\d{4})\)", re.IGNORECASE)

HIRING_LINE_RE = re.compile(
    r"^(?P<company>.+?)\s+(?:is\s+hiring|is\s+looking\s+for|hiring|looking\s+for|seeks?)\s+(?:an?\s+)?(?P<title>.+)$",
    re.IGNORECASE,
)

# Pipe segments that describe the offer rather than the place.
NON_LOCATION_RE = re.compile(
    r"[$€£]|\b\d+\s?k\b|full[- ]?time|part[- ]?time|contract|intern(?:ship)?\b|https?://|equity|visa|salary",
    re.IGNORECASE,
)

SALARY_SNIPPET_RE = re.compile(
    r"[$€£]\s?\d[\d,.]*\s?[kK]?"
    r"(?:\s*(?:-|–|to)\s*[$€£]?\s?\d[\d,.]*\s?[kK]?)?"
    r"(?:\s*(?:/\s*(?:hr|hour|yr|year)|per\s+(?:hour|year)))?"
)

ONSITE_CITIES = [
    "San Francisco", "New York", "Seattle", "Austin", "Boston",
    "Chicago", "Los Angeles", "Denver", "Portland", "Miami",
    "London", "Berlin", "Amsterdam", "Paris", "Toronto",
]

TECHNOLOGIES = [
    "Python", "JavaScript", "TypeScript", "Rust", "Go", "Java", "C++", "C#",
    "Ruby", "PHP", "Scala", "Kotlin", "Swift", "React", "Vue", "Angular",
    "Node.js", "Django", "Flask", "Rails", "Spring", "FastAPI",
    "PostgreSQL", "MySQL", "MongoDB", "Redis", "Elasticsearch",
    "Docker", "Kubernetes", "AWS", "GCP", "Azure", "Terraform",
    "GraphQL", "REST", "gRPC", "Kafka", "RabbitMQ",
    "Machine Learning", "ML", "AI", "Deep Learning", "NLP",
    "iOS", "Android", "React Native", "Flutter",
]

# Short names that are ordinary words in lower case.
CASE_SENSITIVE_TECHNOLOGIES = {"Go", "AI", "ML", "REST"}


def _tech_pattern(tech: str) -> "re.Pattern[str]":
    flags = 0 if tech in CASE_SENSITIVE_TECHNOLOGIES else re.IGNORECASE
    return re.compile(r"(?<![\w+#.])" + re.escape(tech) + r"(?![\w+#])", flags)


_TECH_PATTERNS = [(tech, _tech_pattern(tech)) for tech in TECHNOLOGIES]


def extract_technologies(text: str) -> List[str]:
    """Technology keywords mentioned in a post, in list order."""
    if not text:
        return []
    return uniq_preserve_order(tech for tech, pat in _TECH_PATTERNS if pat.search(text))


def detect_location(text: str) -> Optional[str]:
    """Guess a location label from free text, or None."""
    upper = text.upper()

    if "REMOTE" in upper:
        if re.search(r"\bUSA?\b", upper):
            return "Remote (US)"
        if re.search(r"\b(?:EU|EUROPE)\b", upper):
            return "Remote (EU)"
        return "Remote"

    if re.search(r"\bON-?\s?SITE\b", upper):
        for city in ONSITE_CITIES:
            if city in text:
                return f"{city} (Onsite)"
        return "Onsite"

    return None


def parse_first_line(line: str) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """Split a post's first line into (company, title, location) guesses."""
    parts = [p.strip() for p in line.split("|") if p.strip()]

    if len(parts) >= 2:
        rest = [p for p in parts[2:] if not NON_LOCATION_RE.search(p)]
        location = " | ".join(rest) or detect_location(line)
        return parts[0], parts[1], location

    m = HIRING_LINE_RE.match(line.strip())
    if m:
        title = m.group("title").strip().rstrip(".!:,")
        return clean_text(m.group("company")), clean_text(title), detect_location(line)

    company = " ".join(line.split()[:5])
    return clean_text(company), None, detect_location(line)


def find_salary_snippet(text: str) -> Optional[str]:
    m = SALARY_SNIPPET_RE.search(text or "")
    return m.group(0).strip() if m else None


def parse_posting(item: Dict[str, Any], item_url: str) -> IntermediateRecord:
    """Turn one thread reply into an intermediate record. Never raises on odd text."""
    text = clean_html(item.get("text"), keep_links=True)
    first_line = next((line for line in text.splitlines() if line.strip()), "")
    company, title, location = parse_first_line(first_line)

    return IntermediateRecord(
        source_id=str(item["id"]),
        title=title,
        company=company,
        location=location,
        description=text or None,
        url=item_url.format(id=item["id"]),
        tags=extract_technologies(text),
        salary_text=find_salary_snippet(first_line) or find_salary_snippet(text),
        posted_raw=item.get("time"),
        raw=item,
    )


class HNWhoIsHiringSource(JobSource):
    """Fetch jobs from the current month's HN "Who is hiring?" thread."""

    name = "hn_who_is_hiring"
    settings: HNWhoIsHiringSettings

    def __init__(self, *args: Any, now: Callable[[], datetime] = utcnow, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._now = now

    async def _get_item(self, client: httpx.AsyncClient, item_id: Any) -> Optional[Dict[str, Any]]:
        payload = await self._get_json(client, f"{self.settings.base_url}/item/{item_id}.json")
        if payload is None:
            return None
        return self._expect(payload, dict, f"item {item_id}")

    async def find_thread(self, client: httpx.AsyncClient) -> Dict[str, Any]:
        """Locate this month's thread, falling back to the most recent one."""
        user = self._expect(
            await self._get_json(client, f"{self.settings.base_url}/user/{self.settings.username}.json"),
            dict,
            "user",
        )
        submitted = self._expect(user.get("submitted") or [], list, "'submitted'")

        now = self._now()
        wanted = f"{MONTHS[now.month - 1]} {now.year}".lower()
        fallback: Optional[Dict[str, Any]] = None

        for item_id in submitted[: self.settings.thread_scan_depth]:
            item = await self._get_item(client, item_id)
            if not item:
                continue
            m = HIRING_TITLE_RE.search(item.get("title") or "")
            if not m:
                continue
            if f"{m.group('month')} {m.group('year')}".lower() == wanted:
                return item
            if fallback is None:
                fallback = item

        if fallback is None:
            raise SourceError(self.name, "no 'Who is hiring?' thread found")
        logger.warning("%s: no thread for %s, using %r", self.name, wanted, fallback.get("title"))
        return fallback

    async def _fetch(self, client: httpx.AsyncClient, filters: FetchFilter) -> List[IntermediateRecord]:
        thread = await self.find_thread(client)
        kids = self._expect(thread.get("kids") or [], list, "'kids'")

        limit = self.effective_limit(filters)
        budget = min(limit * 2, self.settings.max_replies)
        reply_ids = kids[:budget]
        step = self.settings.reply_concurrency
        out: List[IntermediateRecord] = []

        for start in range(0, len(reply_ids), step):
            chunk = reply_ids[start : start + step]
            results = await asyncio.gather(*(self._get_item(client, k) for k in chunk), return_exceptions=True)

            for reply_id, result in zip(chunk, results):
                if isinstance(result, SourceError):
                    logger.warning("%s: skipping reply %s: %s", self.name, reply_id, result.message)
                    continue
                if isinstance(result, BaseException):
                    raise result
                if not result or result.get("deleted") or result.get("dead") or not result.get("text"):
                    continue

                record = parse_posting(result, self.settings.item_url)
                if self.matches(record, filters):
                    out.append(record)
                if len(out) >= limit:
                    return out

        logger.debug("%s: parsed %d posts from thread %s", self.name, len(out), thread.get("id"))
        return out
