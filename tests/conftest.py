"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any ``gateway`` import so the settings
module never reads a developer's ``.env`` values for these keys.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret-not-for-production")
os.environ.setdefault("AUTH_BCRYPT_ROUNDS", "4")
os.environ.setdefault("APP_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Iterator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from gateway.adapters.cache import AbstractCache, InMemoryCache
from gateway.adapters.identity_store import AccountRepository, Database
from gateway.core.app_factory import create_app
from gateway.core.config import (
    AppSettings,
    AuthSettings,
    CacheSettings,
    DatabaseSettings,
    LogSettings,
    QuotaSettings,
    Settings,
)
from gateway.core.errors import DependencyUnavailableError
from gateway.core.security import SessionTokenCodec, generate_api_key, hash_password
from gateway.schemas.audit import AuditEvent
from gateway.schemas.identity import AccountRecord
from gateway.services.audit_recorder import AuditRecorder
from gateway.services.credential_verifier import CredentialVerifier

TEST_SECRET = "unit-test-secret"
TEST_PASSWORD = "s3cret-pass"


class FrozenClock:
    """Mutable UTC clock for quota and usage tests."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class UnavailableCache(AbstractCache):
    """Cache whose every operation fails as if the server were down."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def _fail(self, operation: str):
        self.calls.append(operation)
        raise DependencyUnavailableError("cache", f"cache {operation} failed: connection refused")

    async def get(self, key):
        self._fail("get")

    async def set(self, key, value, ttl_seconds=None):
        self._fail("set")

    async def delete(self, key):
        self._fail("delete")

    async def exists(self, key):
        self._fail("exists")

    async def incr(self, key, ttl_seconds=None):
        self._fail("incr")

    async def decr(self, key):
        self._fail("decr")


class RecordingSink:
    """AuditSink keeping events in memory."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def write(self, event: AuditEvent) -> None:
        self.events.append(event)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 5, 1, 10, 15, 0, tzinfo=timezone.utc))


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'gateway-test.db'}"


@pytest_asyncio.fixture
async def database(database_url: str) -> AsyncIterator[Database]:
    db = Database(database_url)
    await db.create_schema()
    yield db
    await db.close()


@pytest.fixture
def repository(database: Database) -> AccountRepository:
    return AccountRepository(database)


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache(max_entries=1000)


@pytest.fixture
def unavailable_cache() -> UnavailableCache:
    return UnavailableCache()


@pytest.fixture
def token_codec() -> SessionTokenCodec:
    return SessionTokenCodec(TEST_SECRET, ttl=timedelta(hours=24))


@pytest.fixture
def audit_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def audit_recorder(audit_sink: RecordingSink) -> AuditRecorder:
    return AuditRecorder(audit_sink, queue_size=100)


@pytest.fixture
def verifier(repository: AccountRepository, cache: InMemoryCache, token_codec: SessionTokenCodec) -> CredentialVerifier:
    return CredentialVerifier(repository=repository, cache=cache, token_codec=token_codec)


@pytest.fixture
def create_account(repository: AccountRepository):
    """Factory inserting an account row and returning the stored record."""

    counter = {"n": 0}

    async def _create(
        *,
        username: str | None = None,
        email: str | None = None,
        hourly_quota: int = 100,
        api_key: str | None = None,
    ) -> AccountRecord:
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        account_id = await repository.create(
            username=username,
            email=email or f"{username}@example.com",
            password_hash=hash_password(TEST_PASSWORD, rounds=4),
            api_key=api_key or generate_api_key(),
            hourly_quota=hourly_quota,
        )
        account = await repository.get_by_id(account_id)
        assert account is not None
        return account

    return _create


@pytest.fixture
def test_settings(database_url: str) -> Settings:
    return Settings(
        app_env="testing",
        app=AppSettings(rate_limit_enabled=False),
        database=DatabaseSettings(url=database_url),
        cache=CacheSettings(backend="memory"),
        auth=AuthSettings(jwt_secret=TEST_SECRET, bcrypt_rounds=4),
        quota=QuotaSettings(default_hourly_quota=100),
        log=LogSettings(level="WARNING"),
    )


@pytest.fixture
def client(test_settings: Settings) -> Iterator[TestClient]:
    with TestClient(create_app(test_settings)) as test_client:
        yield test_client


def register(client: TestClient, username: str = "alice", **overrides) -> dict:
    """Register an account through the API and return the response body."""

    payload = {"username": username, "email": f"{username}@example.com", "password": TEST_PASSWORD}
    payload.update(overrides)
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
