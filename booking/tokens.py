"""Issue and verify signed, time-bounded identity tokens.

Tokens are compact JWS strings (``header.payload.signature``) signed with a
symmetric HMAC key that is fixed for the lifetime of the process. The payload
carries three claims used by the service:

``email``
    The subject's email address at the time of login.
``uid``
    The subject's numeric user identifier.
``exp``
    Absolute expiry as an integer UNIX timestamp.

Every rejection surfaces as :class:`~booking.errors.InvalidTokenError` with a
generic message; the specific :class:`~booking.errors.TokenFailure` reason is
only logged.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import jwt

from .config import HMAC_ALGORITHMS, Settings
from .errors import InvalidTokenError, TokenFailure

logger = logging.getLogger("booking.tokens")

DEFAULT_TOKEN_TTL = timedelta(hours=1)
LEGACY_EXPIRY_GRACE = timedelta(hours=1)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenClaims:
    """Claims recovered from a verified token."""

    email: str
    user_id: int
    expires_at: datetime


class TokenService:
    """Mint and check bearer tokens for authenticated users.

    ``expiry_grace`` widens the accepted window past the nominal expiry. With
    the default of zero a token is valid only while its expiry lies strictly in
    the future; :data:`LEGACY_EXPIRY_GRACE` reproduces the older behaviour of
    accepting tokens until one hour after they expire.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        ttl: timedelta = DEFAULT_TOKEN_TTL,
        expiry_grace: timedelta = timedelta(0),
        clock: Optional[Clock] = None,
    ) -> None:
        if not secret:
            raise ValueError("Token signing secret must not be empty")
        if algorithm not in HMAC_ALGORITHMS:
            raise ValueError(f"Token algorithm must be an HMAC algorithm, not '{algorithm}'")
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = ttl
        self._expiry_grace = expiry_grace
        self._clock: Clock = clock or _utcnow

    @classmethod
    def from_settings(cls, settings: Settings, *, clock: Optional[Clock] = None) -> "TokenService":
        return cls(
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            ttl=settings.token_ttl,
            expiry_grace=settings.expiry_grace,
            clock=clock,
        )

    @property
    def expiry_grace(self) -> timedelta:
        return self._expiry_grace

    def issue(self, email: str, user_id: int) -> str:
        now = self._clock()
        payload: Dict[str, Any] = {
            "email": email,
            "uid": int(user_id),
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenClaims:
        """Return the claims of ``token`` or raise :class:`InvalidTokenError`."""
        try:
            return self._verify(token)
        except InvalidTokenError as exc:
            logger.warning("Rejected token (%s): %s", exc.reason.value, exc.detail)
            raise

    def verify_subject(self, token: str) -> int:
        return self.verify(token).user_id

    def _verify(self, token: str) -> TokenClaims:
        if not token or token.count(".") != 2:
            raise InvalidTokenError(TokenFailure.MALFORMED, "token must have three segments")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.DecodeError as exc:
            raise InvalidTokenError(TokenFailure.MALFORMED, f"unreadable header: {exc}") from exc

        algorithm = header.get("alg")
        if not isinstance(algorithm, str) or algorithm not in HMAC_ALGORITHMS:
            raise InvalidTokenError(TokenFailure.ALGORITHM, f"unexpected algorithm {algorithm!r}")
        if algorithm != self._algorithm:
            raise InvalidTokenError(TokenFailure.ALGORITHM, f"algorithm {algorithm} is not {self._algorithm}")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": ["exp", "uid"],
                },
            )
        except jwt.InvalidSignatureError as exc:
            raise InvalidTokenError(TokenFailure.SIGNATURE, "signature mismatch") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenError(TokenFailure.MALFORMED, str(exc)) from exc

        expiry = payload["exp"]
        user_id = payload["uid"]
        if isinstance(expiry, bool) or not isinstance(expiry, (int, float)):
            raise InvalidTokenError(TokenFailure.MALFORMED, "exp claim is not a timestamp")
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            raise InvalidTokenError(TokenFailure.MALFORMED, "uid claim is not an integer")

        expires_at = datetime.fromtimestamp(int(expiry), tz=timezone.utc)
        if expires_at <= self._clock() - self._expiry_grace:
            raise InvalidTokenError(TokenFailure.EXPIRED, f"expired at {expires_at.isoformat()}")

        email = payload.get("email")
        return TokenClaims(
            email=email if isinstance(email, str) else "",
            user_id=user_id,
            expires_at=expires_at,
        )


__all__ = [
    "DEFAULT_TOKEN_TTL",
    "LEGACY_EXPIRY_GRACE",
    "TokenClaims",
    "TokenService",
]
