"""In-process fixed-window throttle keyed by client address.

Counters live in this process only: with several workers each one enforces
its own window.
"""

from __future__ import annotations

import math
import threading
import time
from typing import Callable

from gateway.adapters.rate_limit.base import AbstractClientThrottle, ThrottleDecision


class FixedWindowClientThrottle(AbstractClientThrottle):
    """Allow ``limit`` requests per client in each ``window_seconds`` window.

    Windows are aligned to multiples of ``window_seconds`` since the epoch.
    Counters of finished windows are pruned whenever the window rolls over.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self._limit = limit
        self._window = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._window_start: int | None = None
        self._counts: dict[str, int] = {}

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> int:
        return self._window

    def hit(self, client: str) -> ThrottleDecision:
        if not client:
            raise ValueError("client must be a non-empty string")

        now = self._clock()
        window_start = int(now // self._window) * self._window
        reset_at = window_start + self._window

        with self._lock:
            if window_start != self._window_start:
                self._window_start = window_start
                self._counts.clear()

            used = self._counts.get(client, 0)
            if used >= self._limit:
                return ThrottleDecision(
                    allowed=False,
                    limit=self._limit,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after_seconds=max(0, math.ceil(reset_at - now)),
                )

            self._counts[client] = used + 1

        return ThrottleDecision(
            allowed=True,
            limit=self._limit,
            remaining=self._limit - used - 1,
            reset_at=reset_at,
        )

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()
            self._window_start = None
