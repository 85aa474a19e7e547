"""
auth/service.py -- Login and token verification (the auth orchestrator).

A login attempt moves through LookupUser -> VerifyPassword -> IssueToken.
check_credentials() runs the first two steps and returns an explicit
LoginOutcome so the reason for a failure stays visible to logs and tests.
login() is the boundary: every non-SUCCESS outcome becomes the same
InvalidCredentials error, so callers cannot tell "no such email" from
"wrong password".

Timing equalization: an unknown email still runs one bcrypt verification
against a dummy hash computed at construction, so response time does not
reveal whether the email exists.

authenticate() is the path used by the request authenticator. Token faults
(signature, expiry, structure) become InvalidCredentials; a token that
verifies but lacks sub or name is Forbidden.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from auth.errors import CorruptCredential, Forbidden, InvalidCredentials, InvalidToken, NotFound
from auth.hashing import CredentialHasher
from auth.models import Identity, LoginOutcome, LoginResult, PublicUser, Role, TokenClaims, User
from auth.store import UserStore
from auth.tokens import TokenService

logger = logging.getLogger("keystone.auth")


class AuthService:
    """Composes the registry, hasher and token service.

    Usage:
        service = AuthService(store, hasher, tokens)
        result = service.login("admin@example.com", "password")
        identity = service.authenticate(result.token)
    """

    def __init__(self, store: UserStore, hasher: CredentialHasher, tokens: TokenService) -> None:
        self.store = store
        self.hasher = hasher
        self.tokens = tokens
        self._dummy_hash = hasher.hash("keystone_timing_dummy")

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def check_credentials(self, email: str, password: str) -> tuple[LoginOutcome, User | None]:
        """Look up the user and verify the password without raising on failure."""
        try:
            user = self.store.find_by_email(email)
        except NotFound:
            # Equalize timing -- do NOT return before running bcrypt.
            self.hasher.verify(password, self._dummy_hash)
            return LoginOutcome.USER_NOT_FOUND, None

        try:
            matched = self.hasher.verify(password, user.password_hash)
        except CorruptCredential:
            return LoginOutcome.CORRUPT_CREDENTIAL, user
        if not matched:
            return LoginOutcome.PASSWORD_MISMATCH, user
        return LoginOutcome.SUCCESS, user

    def login(self, email: str, password: str) -> LoginResult:
        """Authenticate an email/password pair and issue an access token.

        Raises InvalidCredentials for every failure, whatever the cause.
        """
        outcome, user = self.check_credentials(email, password)
        if outcome is LoginOutcome.CORRUPT_CREDENTIAL:
            logger.error("Stored password hash for user id=%s is malformed", user.id)
        elif outcome is not LoginOutcome.SUCCESS:
            logger.info("Login failed for %s (%s)", email, outcome.value)
        if outcome is not LoginOutcome.SUCCESS:
            raise InvalidCredentials("Invalid credentials")

        token = self.tokens.issue(self.tokens.claims_for(user))
        logger.info("Login succeeded for user id=%s", user.id)
        return LoginResult(
            token=token,
            user=PublicUser.from_user(user),
            expires_in=max(self.tokens.expire_seconds, 0),
        )

    # ------------------------------------------------------------------
    # Token verification
    # ------------------------------------------------------------------

    def verify_token(self, token: str) -> TokenClaims:
        """Return the claims of a valid token. Raises InvalidCredentials otherwise."""
        try:
            return self.tokens.verify(token)
        except InvalidToken as exc:
            logger.info("Token rejected (%s)", exc.reason)
            raise InvalidCredentials("Invalid token") from exc

    def authenticate(self, bearer_token: str) -> Identity:
        """Resolve a bearer token to the identity it was issued for.

        Raises InvalidCredentials when the token does not verify, Forbidden
        when it verifies but its payload is incomplete.
        """
        try:
            payload = self.tokens.decode(bearer_token)
        except InvalidToken as exc:
            logger.info("Token rejected (%s)", exc.reason)
            raise InvalidCredentials("Invalid token") from exc

        if not payload.get("sub") or not payload.get("name"):
            logger.warning("Token with incomplete payload rejected")
            raise Forbidden("Invalid token payload")
        try:
            return Identity(
                id=int(payload["sub"]),
                name=payload["name"],
                email=payload.get("email", ""),
                role=Role(payload.get("role")),
            )
        except (TypeError, ValueError) as exc:
            logger.warning("Token with malformed payload rejected")
            raise Forbidden("Invalid token payload") from exc
