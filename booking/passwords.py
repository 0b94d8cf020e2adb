"""Adaptive, salted password hashing backed by passlib's bcrypt handler."""
from __future__ import annotations

import logging

from passlib.context import CryptContext
from passlib.exc import PasswordValueError

from .errors import PasswordHashingError

logger = logging.getLogger("booking.passwords")

DEFAULT_ROUNDS = 14
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Hash and verify passwords without ever recovering the plaintext.

    Each call to :meth:`hash` embeds a fresh random salt, so hashing the same
    password twice yields two different strings that both verify. Passwords
    bcrypt would silently truncate are refused instead.
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
            bcrypt__truncate_error=True,
        )
        self._rounds = rounds

    @property
    def rounds(self) -> int:
        return self._rounds

    def hash(self, password: str) -> str:
        """Return a bcrypt hash of ``password``.

        Unusable input (empty, longer than 72 UTF-8 bytes, or containing NUL)
        raises :class:`ValueError`. Backend failures raise
        :class:`~booking.errors.PasswordHashingError`.
        """
        if not password:
            raise ValueError("Password must not be empty")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must not exceed {MAX_PASSWORD_BYTES} bytes")
        try:
            return self._context.hash(password)
        except PasswordValueError as exc:
            raise ValueError(f"Password cannot be used: {exc}") from exc
        except (ValueError, TypeError, MemoryError, RuntimeError) as exc:
            logger.error("Password hashing failed: %s", type(exc).__name__)
            raise PasswordHashingError("Could not hash the password") from exc

    def verify(self, password: str, hashed: str) -> bool:
        if not password or not hashed:
            return False
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            return False
        try:
            return self._context.verify(password, hashed)
        except (ValueError, TypeError):
            # passlib rejects hashes it cannot identify, and NUL bytes
            return False

    def dummy_verify(self) -> None:
        """Spend roughly one verification's worth of time for unknown accounts."""
        self._context.dummy_verify()


__all__ = ["DEFAULT_ROUNDS", "MAX_PASSWORD_BYTES", "PasswordHasher"]
