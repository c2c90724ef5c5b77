"""Per-client throttle interface.

The throttle is a coarse abuse guard keyed by client address. It is
independent of the per-account hourly quota enforced by
``services/quota_controller.py``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ThrottleDecision:
    """Outcome of counting one request.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Requests allowed per window.
        remaining: Requests left in the current window.
        reset_at: UNIX epoch seconds at which the window rolls over.
        retry_after_seconds: Seconds to wait when blocked, else None.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None = None

    def headers(self) -> dict[str, str]:
        values = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if self.retry_after_seconds is not None:
            values["Retry-After"] = str(self.retry_after_seconds)
        return values


class AbstractClientThrottle(ABC):
    @abstractmethod
    def hit(self, client: str) -> ThrottleDecision:
        """Count one request from ``client`` and decide whether it may pass."""
        raise NotImplementedError

    def reset(self) -> None:
        """Forget all counters."""
        return None
