"""Fetch result reporting."""

from __future__ import annotations

from typing import List, Sequence

from .models import FetchResult, Job, SourceOutcome


def build_fetch_result(jobs: Sequence[Job], outcomes: Sequence[SourceOutcome], saved: int) -> FetchResult:
    """Sum per-source counts into a ``FetchResult``."""
    fetched = sum(o.count or 0 for o in outcomes if o.ok)
    return FetchResult(fetched=fetched, unique=len(jobs), saved=saved, per_source=list(outcomes))


def format_report(result: FetchResult) -> str:
    """Human-readable summary, one line per source."""
    lines: List[str] = [
        f"Fetched {result.fetched} jobs ({result.unique} unique), saved {result.saved}."
    ]
    for o in result.per_source:
        if o.ok:
            lines.append(f"  {o.source:<18} ok      {o.count:>5} jobs  {o.elapsed_s:6.2f}s")
        else:
            lines.append(f"  {o.source:<18} FAILED  {o.error}")
    return "\n".join(lines)
