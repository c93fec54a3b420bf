"""Source connectors, one per external job provider."""

from __future__ import annotations

from typing import Dict, List, Optional, Type

import httpx

from ..config import Settings
from ..rate_limit import RateLimitState
from .arbeitnow import ArbeitnowSource
from .base import JobSource
from .hn_who_is_hiring import HNWhoIsHiringSource
from .remotive import RemotiveSource

SOURCE_TYPES: Dict[str, Type[JobSource]] = {
    RemotiveSource.name: RemotiveSource,
    ArbeitnowSource.name: ArbeitnowSource,
    HNWhoIsHiringSource.name: HNWhoIsHiringSource,
}


def build_sources(
    settings: Settings,
    rate_limits: Optional[Dict[str, RateLimitState]] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> List[JobSource]:
    """Instantiate every enabled source in ``settings.source_order``.

    ``rate_limits`` lets a long-lived caller keep one state object per source
    across rebuilds; missing entries are created from the configured policy.
    """
    rate_limits = rate_limits if rate_limits is not None else {}
    sources: List[JobSource] = []
    for name in settings.source_order:
        source_settings = settings.source_settings(name)
        if not source_settings.enabled:
            continue
        state = rate_limits.setdefault(name, RateLimitState(name, source_settings.rate_limit))
        sources.append(
            SOURCE_TYPES[name](
                source_settings,
                rate_limit=state,
                client=client,
                user_agent=settings.user_agent,
            )
        )
    return sources


__all__ = [
    "ArbeitnowSource",
    "HNWhoIsHiringSource",
    "JobSource",
    "RemotiveSource",
    "SOURCE_TYPES",
    "build_sources",
]
