"""Tests for password hashing, API key generation and session tokens."""

import re
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from gateway.core.errors import InvalidTokenError
from gateway.core.security import (
    SessionTokenCodec,
    generate_api_key,
    hash_password,
    verify_password,
)


def test_password_hash_round_trip() -> None:
    hashed = hash_password("correct horse", rounds=4)

    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed) is True
    assert verify_password("wrong horse", hashed) is False


@pytest.mark.parametrize("stored", [None, "", "not-a-bcrypt-hash"])
def test_verify_password_rejects_missing_or_malformed_hash(stored) -> None:
    assert verify_password("anything", stored) is False


def test_api_keys_are_prefixed_and_unique() -> None:
    keys = {generate_api_key() for _ in range(50)}

    assert len(keys) == 50
    assert all(re.fullmatch(r"mcp_[0-9a-f]{32}", key) for key in keys)
    assert generate_api_key("gw_").startswith("gw_")


class TestSessionTokenCodec:
    def test_issue_and_verify(self) -> None:
        codec = SessionTokenCodec("secret", ttl=timedelta(hours=2))
        now = datetime.now(timezone.utc)

        issued = codec.issue(account_id=12, email="a@example.com", username="alice", now=now)
        claims = codec.verify(issued.token)

        assert claims.account_id == 12
        assert claims.email == "a@example.com"
        assert claims.username == "alice"
        assert claims.expires_at == issued.expires_at
        assert claims.expires_at - claims.issued_at == timedelta(hours=2)

    def test_expired_token(self) -> None:
        codec = SessionTokenCodec("secret", ttl=timedelta(minutes=1))
        issued = codec.issue(
            account_id=1,
            email="a@example.com",
            username="a",
            now=datetime.now(timezone.utc) - timedelta(minutes=5),
        )

        with pytest.raises(InvalidTokenError) as exc_info:
            codec.verify(issued.token)
        assert exc_info.value.message == "Token has expired"

    def test_wrong_secret(self) -> None:
        issued = SessionTokenCodec("one").issue(account_id=1, email="a@example.com", username="a")

        with pytest.raises(InvalidTokenError):
            SessionTokenCodec("two").verify(issued.token)

    def test_missing_subject_claim(self) -> None:
        now = int(datetime.now(timezone.utc).timestamp())
        token = jwt.encode({"iat": now, "exp": now + 60}, "secret", algorithm="HS256")

        with pytest.raises(InvalidTokenError) as exc_info:
            SessionTokenCodec("secret").verify(token)
        assert exc_info.value.message == "Token is missing required claims"

    def test_non_numeric_subject(self) -> None:
        now = int(datetime.now(timezone.utc).timestamp())
        token = jwt.encode({"sub": "alice", "iat": now, "exp": now + 60}, "secret", algorithm="HS256")

        with pytest.raises(InvalidTokenError):
            SessionTokenCodec("secret").verify(token)

    @pytest.mark.parametrize("token", ["", "abc", "a.b.c"])
    def test_malformed_tokens(self, token: str) -> None:
        with pytest.raises(InvalidTokenError):
            SessionTokenCodec("secret").verify(token)

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            SessionTokenCodec("")
