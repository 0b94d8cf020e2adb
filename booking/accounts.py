"""User signup and login."""
from __future__ import annotations

import logging
from typing import List, Tuple

from .database import Database
from .errors import InvalidCredentialsError
from .models import User
from .passwords import PasswordHasher
from .tokens import TokenService

logger = logging.getLogger("booking.accounts")


class AccountService:
    """Create accounts and exchange credentials for bearer tokens."""

    def __init__(self, database: Database, hasher: PasswordHasher, tokens: TokenService) -> None:
        self._database = database
        self._hasher = hasher
        self._tokens = tokens

    def signup(self, email: str, password: str) -> User:
        """Hash ``password`` and store a new user.

        The hash is computed before anything is written, so a hashing failure
        leaves the store untouched. A duplicate email raises
        :class:`~booking.errors.DuplicateEmailError` and keeps the existing row.
        """
        email = email.strip()
        if not email:
            raise ValueError("Email must not be empty")
        if not password:
            raise ValueError("Password must not be empty")

        password_hash = self._hasher.hash(password)
        user = self._database.create_user(email, password_hash)
        logger.info("Created user %s", user.id)
        return user

    def login(self, email: str, password: str) -> Tuple[User, str]:
        record = self._database.get_credentials(email.strip())
        if record is None:
            self._hasher.dummy_verify()
            logger.warning("Failed login attempt for unknown account")
            raise InvalidCredentialsError()

        user, password_hash = record
        if not self._hasher.verify(password, password_hash):
            logger.warning("Failed login attempt for user %s", user.id)
            raise InvalidCredentialsError()

        token = self._tokens.issue(user.email, user.id)
        logger.info("User %s logged in", user.id)
        return user, token

    def list_users(self) -> List[User]:
        return self._database.list_users()


__all__ = ["AccountService"]
