"""Per-source rate limiting.

Each source gets its own ``RateLimitState`` injected at construction time.
The state starts empty (never called) and records one entry per admitted
call. Check-and-reserve happens under a lock, so two concurrent calls to the
same provider cannot both pass a stale check.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Literal, NamedTuple, Optional

from pydantic import BaseModel, Field

from .errors import RateLimitExceeded


class RateLimitPolicy(BaseModel):
    """At most ``max_calls`` calls in any ``period_s`` window.

    ``on_limit`` decides what happens to an over-cadence call: ``reject``
    raises ``RateLimitExceeded``, ``delay`` waits for the next free slot.
    """

    max_calls: int = Field(default=60, ge=1)
    period_s: float = Field(default=60.0, ge=0.0)
    on_limit: Literal["reject", "delay"] = "delay"


class Reservation(NamedTuple):
    """An admitted call: its booked ``slot`` on the clock and the ``delay`` until it."""

    slot: float
    delay: float


class RateLimitState:
    """Sliding-window call log for one source."""

    def __init__(
        self,
        source: str,
        policy: Optional[RateLimitPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.policy = policy or RateLimitPolicy()
        self._clock = clock
        self._calls: Deque[float] = deque()
        self._lock = threading.Lock()

    @property
    def last_called_at(self) -> Optional[float]:
        with self._lock:
            return self._calls[-1] if self._calls else None

    def reserve(self) -> Reservation:
        """Admit one call and book its slot.

        The returned ``delay`` is how long the caller must wait before making
        the call. Raises ``RateLimitExceeded`` when the policy rejects
        over-cadence calls.
        """
        policy = self.policy
        with self._lock:
            now = self._clock()
            while self._calls and self._calls[0] <= now - policy.period_s:
                self._calls.popleft()

            if len(self._calls) < policy.max_calls:
                slot = now
            else:
                slot = max(now, self._calls[-policy.max_calls] + policy.period_s)
                if slot > now and policy.on_limit == "reject":
                    raise RateLimitExceeded(self.source, slot - now)

            self._calls.append(slot)
            return Reservation(slot, slot - now)

    def release(self, reservation: Reservation) -> None:
        """Give back a slot whose call never happened (e.g. cancelled while waiting)."""
        with self._lock:
            # a slot that already slid out of the window has nothing to give back
            if reservation.slot in self._calls:
                self._calls.remove(reservation.slot)

    def reset(self) -> None:
        with self._lock:
            self._calls.clear()
