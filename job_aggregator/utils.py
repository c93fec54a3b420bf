"""Utility helpers shared across the engine."""

from __future__ import annotations

import hashlib
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Union

from bs4 import BeautifulSoup


def stable_id(*parts: Optional[str]) -> str:
    """Create a deterministic identifier from a set of string parts."""
    joined = "|".join(p.strip() for p in parts if p is not None)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def uniq_preserve_order(items: Iterable[str]) -> List[str]:
    """Deduplicate while preserving first-seen order."""
    seen = set()
    out: List[str] = []
    for it in items:
        if not it:
            continue
        key = it.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(it.strip())
    return out


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clean_text(value: Optional[str]) -> Optional[str]:
    """Strip a string and turn blanks into None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


_BLOCK_TAGS = ["div", "ul", "ol", "tr", "h1", "h2", "h3", "h4", "h5", "h6"]
_BLANK_LINES_RE = re.compile(r"\n{3,}")
_SPACES_RE = re.compile(r"[ \t\xa0]+")


def clean_html(text: Optional[str], keep_links: bool = False) -> str:
    """Turn an HTML fragment from a job feed into readable plain text.

    Block elements become newlines, list items become "• " bullets and
    entities are decoded. With ``keep_links`` anchors are rendered as
    ``label (href)`` so URLs in free-text posts survive.
    """
    if not text:
        return ""

    soup = BeautifulSoup(text.replace("\r", ""), "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    if keep_links:
        for a in soup.find_all("a", href=True):
            label = a.get_text().strip()
            href = a["href"]
            a.replace_with(href if not label or label == href else f"{label} ({href})")

    for br in soup.find_all("br"):
        br.replace_with("\n")
    for p in soup.find_all("p"):
        p.insert_before("\n\n")
        p.insert_after("\n\n")
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")
    for li in soup.find_all("li"):
        li.insert_before("\n• ")

    # no separator: inline tags like <b> must not split words
    result = soup.get_text()
    lines = [_SPACES_RE.sub(" ", line).strip() for line in result.split("\n")]
    result = _BLANK_LINES_RE.sub("\n\n", "\n".join(lines))
    return result.strip()


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def configure_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Install a single stream handler on the package logger."""
    logger = logging.getLogger("job_aggregator")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)
    if isinstance(level, str):
        level = level.upper()
    logger.setLevel(level)
    return logger
