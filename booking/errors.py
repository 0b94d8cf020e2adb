"""Exception types shared by the booking service layers."""
from __future__ import annotations

from enum import Enum


class BookingError(Exception):
    """Base class for errors raised by the booking core."""


class DuplicateEmailError(BookingError, ValueError):
    """Raised when a signup reuses an email address that is already stored."""

    def __init__(self, email: str) -> None:
        super().__init__("A user with that email already exists")
        self.email = email


class InvalidCredentialsError(BookingError):
    """Raised when a login attempt does not match a stored account."""

    def __init__(self) -> None:
        super().__init__("Invalid credentials")


class PasswordHashingError(BookingError, RuntimeError):
    """Raised when the password hashing backend fails."""


class TokenFailure(str, Enum):
    """Internal reason a token was rejected. Never exposed to callers."""

    MALFORMED = "malformed"
    ALGORITHM = "algorithm"
    SIGNATURE = "signature"
    EXPIRED = "expired"


class InvalidTokenError(BookingError):
    """Raised for every token rejection; the reason is kept for diagnostics only."""

    def __init__(self, reason: TokenFailure, detail: str = "") -> None:
        super().__init__("Invalid token")
        self.reason = reason
        self.detail = detail


class EventNotFoundError(BookingError, LookupError):
    def __init__(self, event_id: int) -> None:
        super().__init__(f"Event {event_id} not found")
        self.event_id = event_id


class NotEventOwnerError(BookingError, PermissionError):
    def __init__(self, event_id: int, user_id: int) -> None:
        super().__init__("Only the event owner may modify this event")
        self.event_id = event_id
        self.user_id = user_id


class DuplicateRegistrationError(BookingError, ValueError):
    def __init__(self, event_id: int, user_id: int) -> None:
        super().__init__("Already registered for this event")
        self.event_id = event_id
        self.user_id = user_id


class StoreError(BookingError, RuntimeError):
    """Raised when the relational store fails or cannot hand out a connection."""


__all__ = [
    "BookingError",
    "DuplicateEmailError",
    "DuplicateRegistrationError",
    "EventNotFoundError",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "NotEventOwnerError",
    "PasswordHashingError",
    "StoreError",
    "TokenFailure",
]
