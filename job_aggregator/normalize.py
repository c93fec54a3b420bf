"""Normalization & heuristics.

This module turns a source's ``IntermediateRecord`` into the canonical ``Job``.
It contains deterministic parsing logic:
- salary parsing (free text or structured fields)
- remote-flag inference
- posting date normalization
- requirements extraction (lightweight heuristic)

Nothing here raises on messy input. Anything that cannot be parsed is left
null and reported with a WARNING log record.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import List, NamedTuple, Optional, Tuple, Union

from .models import IntermediateRecord, Job, SalaryPeriod, SourceName
from .utils import clean_text, stable_id, uniq_preserve_order, utcnow

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"

# Anything above this is a parsing accident (phone numbers, ids), not a salary.
MAX_SALARY = 100_000_000


# --- Salary -------------------------------------------------------------------


class SalaryInfo(NamedTuple):
    min: Optional[int] = None
    max: Optional[int] = None
    currency: Optional[str] = None
    period: Optional[SalaryPeriod] = None


CURRENCY_CODES = ("USD", "EUR", "GBP", "CAD", "AUD", "CHF", "INR", "JPY", "SEK", "NOK", "DKK", "PLN")

# Checked in order; prefixed dollars before the bare symbol.
CURRENCY_SYMBOLS: List[Tuple[str, str]] = [
    ("CA$", "CAD"),
    ("C$", "CAD"),
    ("AU$", "AUD"),
    ("A$", "AUD"),
    ("US$", "USD"),
    ("$", "USD"),
    ("€", "EUR"),
    ("£", "GBP"),
    ("₹", "INR"),
    ("¥", "JPY"),
]

_CODE_RE = re.compile(r"\b(" + "|".join(CURRENCY_CODES) + r")\b")
_EURO_WORD_RE = re.compile(r"\beuros?\b", flags=re.IGNORECASE)

_AMOUNT_RE = re.compile(
    r"(?<![\d.,])"
    r"(?P<num>\d{1,3}(?:[,.\u00a0 ]\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)"
    r"\s?(?P<mult>[kKmM](?![a-zA-Z]))?"
    r"(?![\d.,]*\s*%)"
)
_GROUPED_RE = re.compile(r"(\d{1,3}(?:[,.\u00a0 ]\d{3})+)(\.\d+)?")

_UP_TO_RE = re.compile(r"\b(?:up\s*to|max(?:imum)?|under|below)\b")
_FROM_RE = re.compile(r"\b(?:from|starting(?:\s+at)?|min(?:imum)?|at\s+least)\b")

PERIOD_PATTERNS: List[Tuple[str, SalaryPeriod]] = [
    (r"/\s*h(?:ou)?r\b|\bper\s+hour\b|\bhourly\b|\ban\s+hour\b", "hourly"),
    (r"/\s*day\b|\bper\s+day\b|\bdaily\b", "daily"),
    (r"/\s*w(?:ee)?k\b|\bper\s+week\b|\bweekly\b", "weekly"),
    (r"/\s*mo(?:nth)?\b|\bper\s+month\b|\bmonthly\b", "monthly"),
]


def _to_number(text: str) -> float:
    m = _GROUPED_RE.fullmatch(text)
    if m:
        return float(re.sub(r"\D", "", m.group(1)) + (m.group(2) or ""))
    return float(text)


def _multiplier(suffix: Optional[str]) -> int:
    if not suffix:
        return 1
    return 1_000_000 if suffix.lower() == "m" else 1_000


def _plausible(value: float) -> bool:
    return math.isfinite(value) and 0 <= value <= MAX_SALARY


def detect_currency(text: str) -> Optional[str]:
    m = _CODE_RE.search(text.upper())
    if m:
        return m.group(1)
    for symbol, code in CURRENCY_SYMBOLS:
        if symbol in text:
            return code
    if _EURO_WORD_RE.search(text):
        return "EUR"
    return None


def detect_period(text: str) -> SalaryPeriod:
    t = text.lower()
    for pat, period in PERIOD_PATTERNS:
        if re.search(pat, t):
            return period
    return "annual"


def parse_salary(text: Optional[str]) -> SalaryInfo:
    """Extract min/max/currency/period from a free-text salary.

    Handles forms like "$80k-$120k", "$80,000 - $120,000", "€50.000",
    "$30-$35/hour", "up to £60k" and "$150k+". Returns an empty ``SalaryInfo``
    for anything it cannot read with confidence ("competitive", "DOE", a
    reversed range).
    """
    if not text or not text.strip():
        return SalaryInfo()

    amounts: List[Tuple[float, Optional[str], int]] = []
    for m in _AMOUNT_RE.finditer(text):
        try:
            value = _to_number(m.group("num"))
        except ValueError:
            continue
        amounts.append((value, m.group("mult"), m.end()))
        if len(amounts) == 2:
            break

    if not amounts:
        return SalaryInfo()

    values: List[float] = []
    for i, (value, mult, _) in enumerate(amounts):
        # "$80-120k": the second amount's multiplier also applies to the first
        if i == 0 and mult is None and len(amounts) > 1 and amounts[1][1] and value < 1000:
            mult = amounts[1][1]
        values.append(value * _multiplier(mult))

    if not all(_plausible(v) for v in values):
        logger.warning("Ignoring implausible salary %r", text[:80])
        return SalaryInfo()

    lowered = text.lower()
    currency = detect_currency(text)
    period = detect_period(text)

    if len(values) >= 2:
        low, high = int(round(values[0])), int(round(values[1]))
        if low > high:
            logger.warning("Ignoring reversed salary range %r", text)
            return SalaryInfo()
        return SalaryInfo(low, high, currency, period)

    value = int(round(values[0]))
    first_end = amounts[0][2]
    if _UP_TO_RE.search(lowered):
        return SalaryInfo(None, value, currency, period)
    if _FROM_RE.search(lowered) or text[first_end:first_end + 2].strip().startswith("+"):
        return SalaryInfo(value, None, currency, period)
    return SalaryInfo(value, value, currency, period)


def salary_from_record(record: IntermediateRecord) -> SalaryInfo:
    """Structured salary fields take precedence over the free-text one."""
    if record.salary_min is not None or record.salary_max is not None:
        structured = [v for v in (record.salary_min, record.salary_max) if v is not None]
        if not all(_plausible(v) for v in structured):
            logger.warning("Ignoring implausible structured salary %s-%s", record.salary_min, record.salary_max)
            return SalaryInfo()
        low = int(round(record.salary_min)) if record.salary_min is not None else None
        high = int(round(record.salary_max)) if record.salary_max is not None else None
        if low is not None and high is not None and low > high:
            logger.warning("Ignoring reversed structured salary %s-%s", low, high)
            return SalaryInfo()
        currency = clean_text(record.salary_currency)
        period = detect_period(record.salary_text) if record.salary_text else None
        return SalaryInfo(low, high, currency.upper() if currency else None, period)

    info = parse_salary(record.salary_text)
    if record.salary_text and info.min is None and info.max is None:
        logger.warning("Unparseable salary %r left empty", record.salary_text)
    return info


# --- Remote & dates -----------------------------------------------------------


def infer_remote(explicit: Optional[bool], title: Optional[str], location: Optional[str]) -> bool:
    """Explicit provider flag first, otherwise look for "remote" in title or location."""
    if explicit:
        return True
    blob = f"{title or ''} {location or ''}".lower()
    return "remote" in blob


def _from_epoch(ts: float) -> Optional[datetime]:
    # Some providers return epoch in ms; convert if so.
    if ts > 1e12:
        ts /= 1000.0
    if ts <= 0:
        return None
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def normalize_date(value: Union[str, int, float, datetime, None]) -> Optional[datetime]:
    """Normalize a provider date (epoch, ISO 8601, RFC 2822) to an aware UTC datetime.

    Returns None when the value cannot be parsed; never substitutes "now".
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return _as_utc(value)

    if isinstance(value, (int, float)):
        return _from_epoch(float(value))

    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        if re.fullmatch(r"\d+(?:\.\d+)?", s):
            return _from_epoch(float(s))
        try:
            return _as_utc(datetime.fromisoformat(s.replace("Z", "+00:00")))
        except ValueError:
            pass
        try:
            parsed = parsedate_to_datetime(s)
        except (TypeError, ValueError, IndexError):
            parsed = None
        if parsed is not None:
            return _as_utc(parsed)

    logger.warning("Unparseable posting date %r stored as null", value)
    return None


# --- Requirements -------------------------------------------------------------


REQ_BULLET_RE = re.compile(
    r"(?:^|\n)\s*(?:[-*•]|\d+\.)\s+(.+?)(?=\n\s*(?:[-*•]|\d+\.)\s+|\n\s*\n|\Z)",
    flags=re.DOTALL,
)


def extract_requirements(description: Optional[str], max_items: int = 12) -> List[str]:
    """Extract bullet-like lines from a description as a naive requirements list.

    This works reasonably well for many job posts that include bullet lists.
    It is the fallback when the provider does not ship tags.
    """
    if not description:
        return []

    cleaned = re.sub(r"\r", "", description).strip()
    items = [m.group(1).strip() for m in REQ_BULLET_RE.finditer(cleaned)]
    # Keep items short and readable
    items = [re.sub(r"\s+", " ", it) for it in items]
    items = [it for it in items if 3 <= len(it) <= 220]
    return uniq_preserve_order(items)[:max_items]


# --- Record -> Job ------------------------------------------------------------


def job_id(source: str, source_id: Optional[str], title: str, company: str, url: str) -> str:
    if source_id:
        return stable_id(source, source_id)
    return stable_id(title, company, url)


def normalize(
    record: IntermediateRecord,
    source: SourceName,
    fetched_at: Optional[datetime] = None,
) -> Job:
    """Map one source record to a canonical ``Job``.

    Given the same record this always yields the same Job, apart from
    ``fetched_at`` which defaults to the call time. The record must carry a
    URL; sources drop records without one.
    """
    url = clean_text(record.url)
    if url is None:
        raise ValueError(f"{source} record {record.source_id!r} has no URL")

    title = clean_text(record.title)
    company = clean_text(record.company)
    if title is None or company is None:
        logger.warning(
            "%s record %s missing %s; using placeholder",
            source,
            record.source_id or url,
            "title" if title is None else "company",
        )
    title = title or UNKNOWN
    company = company or UNKNOWN

    location = clean_text(record.location)
    description = clean_text(record.description)
    source_id = clean_text(record.source_id)

    requirements = uniq_preserve_order(record.tags) or extract_requirements(description)
    salary = salary_from_record(record)

    return Job(
        id=job_id(source, source_id, title, company, url),
        source=source,
        source_id=source_id,
        title=title,
        company=company,
        location=location,
        description=description,
        requirements=requirements,
        salary_min=salary.min,
        salary_max=salary.max,
        salary_currency=salary.currency,
        salary_period=salary.period,
        source_url=url,
        posted_date=normalize_date(record.posted_raw),
        fetched_at=fetched_at or utcnow(),
        is_remote=infer_remote(record.remote, title, location),
    )
