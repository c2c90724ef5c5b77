"""Per-client request throttling (coarse, per process)."""

from gateway.adapters.rate_limit.base import AbstractClientThrottle, ThrottleDecision
from gateway.adapters.rate_limit.in_memory import FixedWindowClientThrottle

__all__ = ["AbstractClientThrottle", "FixedWindowClientThrottle", "ThrottleDecision"]
