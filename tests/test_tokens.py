"""Unit tests for auth/tokens.py -- JWT issuance and verification.

Covers:
- issue/verify round trip preserves the claims snapshot
- the wire payload is the flat sub/name/email/role/iat/exp mapping
- zero and negative lifetimes never verify
- any single-character change to a token fails verification
- wrong secret, wrong algorithm, and missing exp are rejected
- leeway only applies when configured
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.errors import InvalidToken
from auth.models import PublicUser, Role
from auth.tokens import TokenService

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789abcdef"


@pytest.fixture
def user():
    return PublicUser(
        id=7,
        name="Admin User",
        email="admin@example.com",
        role=Role.admin,
        created_at="2024-01-01T00:00:00+00:00",
        updated_at="2024-01-01T00:00:00+00:00",
    )


def test_round_trip(tokens, user):
    claims = tokens.claims_for(user)
    verified = tokens.verify(tokens.issue(claims))
    assert verified == claims
    assert verified.subject == 7
    assert verified.role is Role.admin
    assert verified.expires_at - verified.issued_at == timedelta(seconds=3600)


def test_wire_payload_is_flat(tokens, user):
    token = tokens.issue(tokens.claims_for(user))
    payload = jwt.get_unverified_claims(token)
    assert set(payload) == {"sub", "name", "email", "role", "iat", "exp"}
    assert payload["sub"] == "7"
    assert "password" not in payload


@pytest.mark.parametrize("lifetime", [0, -1, -3600])
def test_non_positive_lifetime_never_verifies(user, lifetime):
    service = TokenService(TEST_SECRET, expire_seconds=lifetime)
    token = service.issue(service.claims_for(user))
    with pytest.raises(InvalidToken) as exc_info:
        service.verify(token)
    assert exc_info.value.reason == "expired"


def test_any_changed_character_fails(tokens, user):
    token = tokens.issue(tokens.claims_for(user))
    for i, ch in enumerate(token):
        replacement = "A" if ch != "A" else "B"
        tampered = token[:i] + replacement + token[i + 1 :]
        with pytest.raises(InvalidToken):
            tokens.verify(tampered)


def test_wrong_secret_fails(tokens, user):
    other = TokenService("another-secret-key-0123456789abcdef0123456789", expire_seconds=3600)
    token = other.issue(other.claims_for(user))
    with pytest.raises(InvalidToken) as exc_info:
        tokens.verify(token)
    assert exc_info.value.reason == "signature"


def test_disallowed_algorithm_fails(tokens):
    now = int(datetime.now(timezone.utc).timestamp())
    token = jwt.encode(
        {"sub": "1", "name": "x", "email": "x@example.com", "role": "admin", "iat": now, "exp": now + 60},
        TEST_SECRET,
        algorithm="HS512",
    )
    with pytest.raises(InvalidToken):
        tokens.verify(token)


def test_missing_exp_fails(tokens):
    now = int(datetime.now(timezone.utc).timestamp())
    token = jwt.encode({"sub": "1", "name": "x", "role": "user", "iat": now}, TEST_SECRET, algorithm="HS256")
    with pytest.raises(InvalidToken):
        tokens.verify(token)


@pytest.mark.parametrize("garbage", ["", "abc", "a.b", "a.b.c", "a.b.c.d", None])
def test_malformed_tokens_fail(tokens, garbage):
    with pytest.raises(InvalidToken):
        tokens.verify(garbage)


def test_verify_rejects_incomplete_claims(tokens):
    now = int(datetime.now(timezone.utc).timestamp())
    token = jwt.encode({"role": "user", "iat": now, "exp": now + 60}, TEST_SECRET, algorithm="HS256")
    assert tokens.decode(token)["role"] == "user"
    with pytest.raises(InvalidToken) as exc_info:
        tokens.verify(token)
    assert exc_info.value.reason == "claims"


def test_leeway_accepts_recently_expired_token(user):
    strict = TokenService(TEST_SECRET, expire_seconds=-5)
    lenient = TokenService(TEST_SECRET, expire_seconds=-5, leeway_seconds=60)
    token = strict.issue(strict.claims_for(user))
    with pytest.raises(InvalidToken):
        strict.verify(token)
    assert lenient.verify(token).subject == user.id


def test_empty_secret_rejected():
    with pytest.raises(ValueError):
        TokenService("")
