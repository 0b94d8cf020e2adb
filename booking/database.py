"""SQLite-backed persistence for users, events and registrations."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine, RowMapping
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.pool import QueuePool

from .config import resolve_database_path
from .errors import (
    DuplicateEmailError,
    DuplicateRegistrationError,
    EventNotFoundError,
    StoreError,
)
from .models import Event, EventDraft, Registration, User

logger = logging.getLogger("booking.database")

DEFAULT_MAX_CONNECTIONS = 10
DEFAULT_MAX_IDLE = 5
DEFAULT_POOL_TIMEOUT = 30.0

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT NOT NULL,
        starts_at TEXT NOT NULL,
        location TEXT NOT NULL,
        user_id INTEGER NOT NULL REFERENCES users(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS registrations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        event_id INTEGER NOT NULL REFERENCES events(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_events_user_id ON events(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_registrations_event_id ON registrations(event_id)",
)


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _enable_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


def create_store_engine(
    path: Path,
    *,
    max_connections: int = DEFAULT_MAX_CONNECTIONS,
    max_idle: int = DEFAULT_MAX_IDLE,
    timeout: float = DEFAULT_POOL_TIMEOUT,
) -> Engine:
    """Build a pooled engine for the SQLite file at ``path``.

    At most ``max_connections`` connections are checked out at once and
    callers beyond that wait up to ``timeout`` seconds. ``max_idle`` released
    connections stay open for reuse; the overflow is closed on return.
    """

    if max_connections < 1:
        raise ValueError("max_connections must be at least 1")
    if not 1 <= max_idle <= max_connections:
        raise ValueError("max_idle must be between 1 and max_connections")

    engine = create_engine(
        f"sqlite:///{path}",
        poolclass=QueuePool,
        pool_size=max_idle,
        max_overflow=max_connections - max_idle,
        pool_timeout=timeout,
        connect_args={"check_same_thread": False, "timeout": timeout},
    )
    event.listen(engine, "connect", _enable_foreign_keys)
    return engine


class Database:
    """Store adapter that mediates every read and write of the booking domain."""

    def __init__(
        self,
        path: Path,
        *,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        max_idle: int = DEFAULT_MAX_IDLE,
        timeout: float = DEFAULT_POOL_TIMEOUT,
    ) -> None:
        _ensure_directory(path)
        self._path = path
        self._engine = create_store_engine(
            path,
            max_connections=max_connections,
            max_idle=max_idle,
            timeout=timeout,
        )

    @property
    def path(self) -> Path:
        return self._path

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        """Yield a pooled connection wrapped in a transaction."""

        try:
            with self._engine.begin() as conn:
                yield conn
        except PoolTimeoutError as exc:
            raise StoreError("Timed out waiting for a database connection") from exc
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def initialize(self, *, allow_duplicate_registrations: bool = False) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            for statement in _SCHEMA:
                conn.execute(text(statement))
            if allow_duplicate_registrations:
                conn.execute(text("DROP INDEX IF EXISTS idx_registrations_user_event"))
            else:
                conn.execute(
                    text(
                        """
                        CREATE UNIQUE INDEX IF NOT EXISTS idx_registrations_user_event
                            ON registrations(user_id, event_id)
                        """
                    )
                )
        logger.debug("Schema ready at %s", self._path)

    def close(self) -> None:
        self._engine.dispose()

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(self, email: str, password_hash: str) -> User:
        """Insert a user whose password has already been hashed."""

        if not password_hash:
            raise ValueError("Password hash must not be empty")

        created_at = _current_timestamp()
        with self._connect() as conn:
            try:
                result = conn.execute(
                    text(
                        "INSERT INTO users (email, password_hash, created_at) "
                        "VALUES (:email, :password_hash, :created_at)"
                    ),
                    {
                        "email": email,
                        "password_hash": password_hash,
                        "created_at": _serialize_datetime(created_at),
                    },
                )
            except IntegrityError as exc:
                raise DuplicateEmailError(email) from exc
            user_id = result.lastrowid

        return User(id=int(user_id), email=email, created_at=created_at)

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                text("SELECT * FROM users WHERE id = :id"), {"id": user_id}
            ).mappings().fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_credentials(self, email: str) -> Optional[Tuple[User, str]]:
        """Return the user and stored password hash for ``email``, if present."""

        with self._connect() as conn:
            row = conn.execute(
                text("SELECT * FROM users WHERE email = :email"), {"email": email}
            ).mappings().fetchone()
        if row is None:
            return None
        return self._row_to_user(row), str(row["password_hash"])

    def list_users(self) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute(text("SELECT * FROM users ORDER BY id")).mappings().fetchall()
        return [self._row_to_user(row) for row in rows]

    # ------------------------------------------------------------------
    # Event management
    # ------------------------------------------------------------------
    def create_event(self, user_id: int, draft: EventDraft) -> Event:
        with self._connect() as conn:
            result = conn.execute(
                text(
                    """
                    INSERT INTO events (name, description, starts_at, location, user_id)
                    VALUES (:name, :description, :starts_at, :location, :user_id)
                    """
                ),
                {
                    "name": draft.name,
                    "description": draft.description,
                    "starts_at": _serialize_datetime(draft.starts_at),
                    "location": draft.location,
                    "user_id": user_id,
                },
            )
            event_id = result.lastrowid

        return Event(
            id=int(event_id),
            name=draft.name,
            description=draft.description,
            starts_at=draft.starts_at,
            location=draft.location,
            user_id=user_id,
        )

    def get_event(self, event_id: int) -> Optional[Event]:
        with self._connect() as conn:
            row = conn.execute(
                text("SELECT * FROM events WHERE id = :id"), {"id": event_id}
            ).mappings().fetchone()
        if row is None:
            return None
        return self._row_to_event(row)

    def list_events(self) -> List[Event]:
        with self._connect() as conn:
            rows = conn.execute(text("SELECT * FROM events ORDER BY id")).mappings().fetchall()
        return [self._row_to_event(row) for row in rows]

    def update_event(self, event_id: int, draft: EventDraft) -> Optional[Event]:
        """Overwrite the mutable fields of an event. The owner never changes."""

        with self._connect() as conn:
            result = conn.execute(
                text(
                    """
                    UPDATE events
                       SET name = :name, description = :description,
                           location = :location, starts_at = :starts_at
                     WHERE id = :id
                    """
                ),
                {
                    "name": draft.name,
                    "description": draft.description,
                    "location": draft.location,
                    "starts_at": _serialize_datetime(draft.starts_at),
                    "id": event_id,
                },
            )
            if result.rowcount == 0:
                return None

        return self.get_event(event_id)

    def delete_event(self, event_id: int) -> bool:
        with self._connect() as conn:
            result = conn.execute(text("DELETE FROM events WHERE id = :id"), {"id": event_id})
            return result.rowcount > 0

    # ------------------------------------------------------------------
    # Registrations
    # ------------------------------------------------------------------
    def create_registration(self, event_id: int, user_id: int) -> Registration:
        """Insert a registration.

        Raises :class:`~booking.errors.DuplicateRegistrationError` when the pair
        already exists and :class:`~booking.errors.EventNotFoundError` when the
        event is gone, including one deleted after the caller looked it up.
        """

        params = {"event_id": event_id, "user_id": user_id}
        with self._connect() as conn:
            try:
                result = conn.execute(
                    text("INSERT INTO registrations (event_id, user_id) VALUES (:event_id, :user_id)"),
                    params,
                )
            except IntegrityError as exc:
                existing = conn.execute(
                    text(
                        "SELECT 1 FROM registrations "
                        "WHERE event_id = :event_id AND user_id = :user_id"
                    ),
                    params,
                ).fetchone()
                if existing is not None:
                    raise DuplicateRegistrationError(event_id, user_id) from exc
                event_row = conn.execute(
                    text("SELECT 1 FROM events WHERE id = :event_id"), params
                ).fetchone()
                if event_row is None:
                    raise EventNotFoundError(event_id) from exc
                raise
            registration_id = result.lastrowid

        return Registration(id=int(registration_id), user_id=user_id, event_id=event_id)

    def delete_registration(self, event_id: int, user_id: int) -> bool:
        with self._connect() as conn:
            result = conn.execute(
                text("DELETE FROM registrations WHERE event_id = :event_id AND user_id = :user_id"),
                {"event_id": event_id, "user_id": user_id},
            )
            return result.rowcount > 0

    def list_registrations(self) -> List[Registration]:
        with self._connect() as conn:
            rows = conn.execute(
                text("SELECT * FROM registrations ORDER BY id")
            ).mappings().fetchall()
        return [self._row_to_registration(row) for row in rows]

    def list_registrations_for_event(self, event_id: int) -> List[Registration]:
        with self._connect() as conn:
            rows = conn.execute(
                text("SELECT * FROM registrations WHERE event_id = :event_id ORDER BY id"),
                {"event_id": event_id},
            ).mappings().fetchall()
        return [self._row_to_registration(row) for row in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: RowMapping) -> User:
        return User(
            id=int(row["id"]),
            email=str(row["email"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_event(self, row: RowMapping) -> Event:
        return Event(
            id=int(row["id"]),
            name=str(row["name"]),
            description=str(row["description"]),
            starts_at=_parse_datetime(str(row["starts_at"])),
            location=str(row["location"]),
            user_id=int(row["user_id"]),
        )

    def _row_to_registration(self, row: RowMapping) -> Registration:
        return Registration(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            event_id=int(row["event_id"]),
        )


__all__ = ["Database", "create_store_engine", "resolve_database_path"]
