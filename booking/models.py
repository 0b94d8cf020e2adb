"""Domain models for users, events and registrations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the booking database.

    The password hash is deliberately not part of this model; it only leaves
    the store through :meth:`booking.database.Database.get_credentials`.
    """

    id: int
    email: str
    created_at: datetime


@dataclass(frozen=True)
class Event:
    """An event owned by exactly one user."""

    id: int
    name: str
    description: str
    starts_at: datetime
    location: str
    user_id: int


@dataclass(frozen=True)
class EventDraft:
    """Mutable fields supplied when creating or updating an event."""

    name: str
    description: str
    starts_at: datetime
    location: str


@dataclass(frozen=True)
class Identity:
    """The authenticated caller of a request, as proven by a verified token."""

    user_id: int
    email: str


@dataclass(frozen=True)
class Registration:
    """A user's intent to attend an event."""

    id: int
    user_id: int
    event_id: int


__all__ = ["Event", "EventDraft", "Identity", "Registration", "User"]
