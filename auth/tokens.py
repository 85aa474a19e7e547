"""
auth/tokens.py -- JWT issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry a
       flat payload: sub (user id as a string), name, email, role, iat, exp.
       name/email/role are a snapshot at issue time; there is no revocation,
       so a demoted admin keeps the old role until the token expires.

  Expiry: exp is required and checked strictly -- a token whose exp is at or
       before "now" is rejected, so a zero-second lifetime never verifies.
       Clock-skew leeway is 0 unless TOKEN_LEEWAY_SECONDS is set.

  Signature encoding: base64url tolerates non-canonical trailing bits, which
       means two different signature strings can decode to the same bytes.
       verify() rejects any signature segment that is not the canonical
       encoding of its own bytes, so every character of a token is covered.

  Failures raise InvalidToken with a ``reason`` ("expired", "signature",
       "malformed", "claims"). AuthService logs the reason and turns it into
       InvalidCredentials for the caller.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import base64
import binascii
import calendar
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError

from auth.errors import InvalidToken
from auth.models import Role, TokenClaims

if TYPE_CHECKING:
    from auth.models import PublicUser, User
    from core.config import Settings

logger = logging.getLogger("keystone.auth")

_ALGORITHM = "HS256"

_DECODE_OPTIONS = {
    "require_exp": True,
    "require_iat": True,
    "require_sub": False,  # missing sub is a Forbidden condition, judged by AuthService
}


class TokenService:
    """Signs and verifies access tokens with a process-wide secret.

    Usage:
        tokens = TokenService(secret_key, expire_seconds=3600)
        token = tokens.issue(tokens.claims_for(user))
        claims = tokens.verify(token)
    """

    def __init__(self, secret_key: str, expire_seconds: int = 3600, leeway_seconds: int = 0) -> None:
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds
        self.leeway_seconds = max(leeway_seconds, 0)

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenService:
        return cls(
            settings.secret_key,
            expire_seconds=settings.token_expire_seconds,
            leeway_seconds=settings.token_leeway_seconds,
        )

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def claims_for(self, user: User | PublicUser) -> TokenClaims:
        """Snapshot a user's identity into claims valid for the configured window."""
        now = datetime.now(timezone.utc).replace(microsecond=0)
        return TokenClaims(
            subject=user.id,
            name=user.name,
            email=user.email,
            role=Role(user.role),
            issued_at=now,
            expires_at=now + timedelta(seconds=self.expire_seconds),
        )

    def issue(self, claims: TokenClaims) -> str:
        """Encode and sign claims as a compact JWT."""
        payload = {
            "sub": str(claims.subject),
            "name": claims.name,
            "email": claims.email,
            "role": Role(claims.role).value,
            "iat": _epoch(claims.issued_at),
            "exp": _epoch(claims.expires_at),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def decode(self, token: str) -> dict:
        """Verify signature and expiry and return the raw payload.

        The payload is cryptographically trusted but not checked for
        completeness; use verify() for a typed TokenClaims.
        """
        if not isinstance(token, str) or token.count(".") != 2:
            raise InvalidToken("malformed")
        _check_canonical_signature(token)
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={**_DECODE_OPTIONS, "leeway": self.leeway_seconds},
            )
        except ExpiredSignatureError as exc:
            raise InvalidToken("expired") from exc
        except JWTClaimsError as exc:
            raise InvalidToken("claims") from exc
        except JWTError as exc:
            # python-jose reports bad signatures and unparseable segments alike.
            reason = "signature" if "signature" in str(exc).lower() else "malformed"
            raise InvalidToken(reason) from exc

        if not isinstance(payload, dict):
            raise InvalidToken("malformed")
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            raise InvalidToken("claims")
        # jose accepts exp == now; a token must expire strictly after now.
        if exp + self.leeway_seconds <= _epoch(datetime.now(timezone.utc)):
            raise InvalidToken("expired")
        return payload

    def verify(self, token: str) -> TokenClaims:
        """Verify a token and return its claims. Raises InvalidToken on any fault."""
        payload = self.decode(token)
        try:
            return TokenClaims(
                subject=int(payload["sub"]),
                name=payload["name"],
                email=payload.get("email", ""),
                role=Role(payload["role"]),
                issued_at=datetime.fromtimestamp(payload["iat"], timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidToken("claims") from exc


def _epoch(moment: datetime) -> int:
    return calendar.timegm(moment.utctimetuple())


def _check_canonical_signature(token: str) -> None:
    signature = token.rsplit(".", 1)[1]
    try:
        raw = base64.urlsafe_b64decode(signature + "=" * (-len(signature) % 4))
    except (binascii.Error, ValueError) as exc:
        raise InvalidToken("malformed") from exc
    if base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii") != signature:
        raise InvalidToken("malformed")
