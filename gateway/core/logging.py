"""Structured JSON logging for the gateway.

What this module provides:
- Request context (request id, authenticated account id) kept in contextvars
  and stamped on every record emitted while a request is in flight
- Redaction of credential fields by key (passwords, tokens, API keys),
  recursively through nested mappings and sequences
- Scrubbing of credential-shaped values (API keys, JWTs, bearer headers)
  that end up inside free-form strings or messages
- ``fingerprint`` for secrets that must be correlated across lines
- stdout or rotating-file handlers selected by ``LogSettings``
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from gateway.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_account_id_var: ContextVar[int | None] = ContextVar("account_id", default=None)

# Structured fields whose values are never written out
SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "password",
        "password_hash",
        "token",
        "access_token",
        "authorization",
        "api_key",
        "new_api_key",
        "x-api-key",
        "jwt_secret",
        "secret",
        "cookie",
        "set-cookie",
    }
)

# Credential shapes scrubbed from free text: API keys, JWTs, bearer headers
_SECRET_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b[A-Za-z]{2,8}_[0-9a-f]{32}\b"),
    re.compile(r"\beyJ[\w-]+\.[\w-]+\.[\w-]+"),
    re.compile(r"(?i)\bbearer\s+[\w.~+/-]+=*"),
)

# Attributes every LogRecord carries; anything else arrived through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


# ── Request context ───────────────────────────────────────────────────────


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def set_account_id(account_id: int | None) -> None:
    """Bind the authenticated account to the rest of the request's log lines."""

    _account_id_var.set(account_id)


def get_account_id() -> int | None:
    return _account_id_var.get()


def clear_request_context() -> None:
    """Forget the request id and account bound to the current context."""

    _request_id_var.set(None)
    _account_id_var.set(None)


# ── Redaction ─────────────────────────────────────────────────────────────


def fingerprint(secret: str | None) -> str | None:
    """Return a short, non-reversible fingerprint of a secret for log correlation."""

    if not secret:
        return None
    return hashlib.sha256(secret.encode()).hexdigest()[:16]


def scrub_text(text: str) -> str:
    """Replace credential-shaped substrings of ``text`` with a placeholder."""

    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(REDACTED, text)
    return text


def _redact(value: Any, sensitive_keys: frozenset[str]) -> Any:
    if isinstance(value, Mapping):
        return {
            key: REDACTED if str(key).lower() in sensitive_keys else _redact(item, sensitive_keys)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(item, sensitive_keys) for item in value)
    if isinstance(value, str):
        return scrub_text(value)
    return value


def _extras(record: LogRecord, sensitive_keys: frozenset[str]) -> dict[str, Any]:
    """Fields passed through ``extra=``, redacted."""

    fields: dict[str, Any] = {}
    for key, value in vars(record).items():
        if key in _RECORD_ATTRS or key.startswith("_"):
            continue
        fields[key] = REDACTED if key.lower() in sensitive_keys else _redact(value, sensitive_keys)
    return fields


class RequestContextFilter(logging.Filter):
    """Stamp ``request_id`` and ``account_id`` from the request context."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        if getattr(record, "account_id", None) is None:
            account_id = get_account_id()
            if account_id is not None:
                record.account_id = account_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact credential fields on the record before any formatter sees it."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in _extras(record, self.sensitive_keys).items():
            setattr(record, key, value)
        if isinstance(record.msg, str):
            record.msg = scrub_text(record.msg)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, extras."""

    def __init__(
        self,
        *,
        sensitive_keys: Iterable[str] | None = None,
        ensure_ascii: bool = True,
    ) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        line: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": scrub_text(record.getMessage()),
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            line["request_id"] = request_id

        line.update(_extras(record, self.sensitive_keys))

        if record.exc_info:
            line["exception"] = scrub_text(self.formatException(record.exc_info))

        return json.dumps(line, default=str, ensure_ascii=self.ensure_ascii)


# ── Setup ─────────────────────────────────────────────────────────────────


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output == "file":
        file_path = Path(log_settings.file_path or "logs/gateway.log")
        file_path.parent.mkdir(parents=True, exist_ok=True)
        if log_settings.max_bytes:
            return RotatingFileHandler(
                file_path,
                maxBytes=log_settings.max_bytes,
                backupCount=log_settings.backup_count,
                encoding="utf-8",
            )
        return logging.FileHandler(file_path, encoding="utf-8")

    return logging.StreamHandler(sys.stdout)


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install a single redacting handler on the root logger.

    Args:
        log_settings: Optional log settings; defaults to the global settings.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(RequestContextFilter())
    handler.addFilter(SensitiveDataFilter())
    if cfg.format == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    # uvicorn installs its own handlers; keep its lines from being emitted twice
    for name in ("uvicorn", "uvicorn.access"):
        logging.getLogger(name).propagate = False
    # SQL echo is controlled by DatabaseSettings.echo, not by the root level
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
