"""AuditEvent dataclass and the audit actions emitted by the gateway.

Audit events are recorded fire-and-forget; see services/audit_recorder.py.
``details`` must never contain raw credentials (passwords, tokens, API keys);
use ``gateway.core.logging.fingerprint`` when a key must be referenced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

AuditAction = Literal[
    "api_request",
    "user_registered",
    "user_login",
    "profile_updated",
    "api_key_regenerated",
    "quota_updated",
    "account_deactivated",
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AuditEvent:
    """One audit trail entry.

    For ``api_request`` events ``endpoint`` and ``method`` describe the
    admitted request; account lifecycle events carry their context in
    ``details`` instead.
    """

    account_id: int | None
    action: AuditAction
    timestamp: datetime = field(default_factory=utcnow)
    endpoint: str | None = None
    method: str | None = None
    source_address: str | None = None
    user_agent: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def details_payload(self) -> dict[str, Any]:
        """JSON document persisted in ``audit_log.details``."""

        payload: dict[str, Any] = dict(self.details)
        if self.endpoint is not None:
            payload["endpoint"] = self.endpoint
        if self.method is not None:
            payload["method"] = self.method
        payload["timestamp"] = self.timestamp.isoformat()
        return payload
