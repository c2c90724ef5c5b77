"""Async database access for the identity store.

The core consumes the store through a narrow contract:
``query(sql, params) -> rows`` and ``execute(sql, params) -> ExecuteResult``,
where ``sql`` is a string or a prepared ``text()`` clause with typed binds.

Rules enforced:
  • The engine is created lazily on first use and disposed by ``close()``;
    the composition root owns both calls.
  • ``pool_pre_ping`` drops stale connections before reuse, so a torn-down
    connection is re-established on demand.
  • Connection-level failures surface as ``DependencyUnavailableError``;
    constraint violations (``IntegrityError``) propagate unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.sql.expression import TextClause

from gateway.adapters.identity_store.tables import metadata
from gateway.core.errors import DependencyUnavailableError

logger = logging.getLogger(__name__)

Row = dict[str, Any]

_CONNECTION_ERRORS = (OperationalError, InterfaceError, OSError)


def _statement(sql: str | TextClause) -> TextClause:
    return text(sql) if isinstance(sql, str) else sql


@dataclass(frozen=True, slots=True)
class ExecuteResult:
    """Outcome of a write statement."""

    rowcount: int
    lastrowid: int | None


def _connect_args(url: str, timeout_seconds: int) -> dict[str, Any]:
    """Translate the connect timeout into the driver-specific keyword."""

    backend = make_url(url).get_backend_name()
    if backend == "sqlite":
        return {"timeout": timeout_seconds}
    if backend == "mysql":
        return {"connect_timeout": timeout_seconds}
    if backend == "postgresql":
        return {"timeout": timeout_seconds}
    return {}


class Database:
    """Owner of the async engine used by the identity store."""

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        connect_timeout_seconds: int = 10,
    ) -> None:
        self._url = url
        self._echo = echo
        self._connect_timeout = connect_timeout_seconds
        self._engine: AsyncEngine | None = None

    @property
    def backend(self) -> str:
        return make_url(self._url).get_backend_name()

    def _get_engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(
                self._url,
                echo=self._echo,
                pool_pre_ping=True,
                connect_args=_connect_args(self._url, self._connect_timeout),
            )
        return self._engine

    async def connect(self) -> None:
        """Create the engine and verify the store answers."""

        await self.query("SELECT 1")
        logger.info("identity_store.connected", extra={"backend": self.backend})

    async def close(self) -> None:
        if self._engine is not None:
            engine, self._engine = self._engine, None
            await engine.dispose()
            logger.info("identity_store.closed", extra={"backend": self.backend})

    async def create_schema(self) -> None:
        """Create missing tables (idempotent)."""

        try:
            async with self._get_engine().begin() as conn:
                await conn.run_sync(metadata.create_all)
        except _CONNECTION_ERRORS as exc:
            raise self._unavailable(exc) from exc

    async def ping(self) -> bool:
        try:
            await self.query("SELECT 1")
        except DependencyUnavailableError:
            return False
        return True

    def _unavailable(self, exc: Exception) -> DependencyUnavailableError:
        logger.error(
            "identity_store.query_failed",
            extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
        )
        return DependencyUnavailableError("identity_store", "Identity store is unavailable")

    async def query(self, sql: str | TextClause, params: Mapping[str, Any] | None = None) -> list[Row]:
        """Run a read statement and return rows as dictionaries."""

        try:
            async with self._get_engine().connect() as conn:
                result = await conn.execute(_statement(sql), dict(params or {}))
                return [dict(row._mapping) for row in result]
        except IntegrityError:
            raise
        except _CONNECTION_ERRORS as exc:
            raise self._unavailable(exc) from exc

    async def execute(self, sql: str | TextClause, params: Mapping[str, Any] | None = None) -> ExecuteResult:
        """Run a write statement in its own transaction."""

        try:
            async with self._get_engine().begin() as conn:
                result = await conn.execute(_statement(sql), dict(params or {}))
                return ExecuteResult(
                    rowcount=result.rowcount,
                    lastrowid=getattr(result, "lastrowid", None),
                )
        except IntegrityError:
            raise
        except _CONNECTION_ERRORS as exc:
            raise self._unavailable(exc) from exc
