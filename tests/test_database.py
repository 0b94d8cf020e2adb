from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

from booking.database import Database
from booking.errors import (
    DuplicateEmailError,
    DuplicateRegistrationError,
    EventNotFoundError,
    StoreError,
)
from booking.models import EventDraft


def _draft(name: str = "Go meetup") -> EventDraft:
    return EventDraft(
        name=name,
        description="Monthly meetup",
        starts_at=datetime(2025, 1, 15, 18, 30, tzinfo=timezone.utc),
        location="Community hall",
    )


def test_create_user_and_fetch_credentials(database: Database) -> None:
    user = database.create_user("owner@example.com", "$2b$04$stored-hash")

    assert user.id > 0
    record = database.get_credentials("owner@example.com")
    assert record is not None
    fetched, password_hash = record
    assert fetched.id == user.id
    assert password_hash == "$2b$04$stored-hash"
    assert database.get_credentials("Owner@example.com") is None
    assert database.get_user(user.id) == fetched


def test_duplicate_email_keeps_existing_record(database: Database) -> None:
    database.create_user("owner@example.com", "first-hash")

    with pytest.raises(DuplicateEmailError):
        database.create_user("owner@example.com", "second-hash")

    record = database.get_credentials("owner@example.com")
    assert record is not None
    assert record[1] == "first-hash"
    assert len(database.list_users()) == 1


def test_empty_password_hash_is_never_stored(database: Database) -> None:
    with pytest.raises(ValueError):
        database.create_user("owner@example.com", "")
    assert database.list_users() == []


def test_event_crud(database: Database) -> None:
    owner = database.create_user("owner@example.com", "hash")
    event = database.create_event(owner.id, _draft())

    assert database.get_event(event.id) == event
    assert database.list_events() == [event]

    updated = database.update_event(event.id, _draft("Renamed meetup"))
    assert updated is not None
    assert updated.name == "Renamed meetup"
    assert updated.user_id == owner.id
    assert updated.starts_at == event.starts_at

    assert database.update_event(9999, _draft()) is None
    assert database.delete_event(event.id) is True
    assert database.delete_event(event.id) is False
    assert database.get_event(event.id) is None


def test_deleting_event_removes_its_registrations(database: Database) -> None:
    owner = database.create_user("owner@example.com", "hash")
    guest = database.create_user("guest@example.com", "hash")
    event = database.create_event(owner.id, _draft())
    other = database.create_event(owner.id, _draft("Other"))
    database.create_registration(event.id, guest.id)
    kept = database.create_registration(other.id, guest.id)

    database.delete_event(event.id)

    assert database.list_registrations() == [kept]


def test_duplicate_registration_is_rejected(database: Database) -> None:
    owner = database.create_user("owner@example.com", "hash")
    event = database.create_event(owner.id, _draft())
    database.create_registration(event.id, owner.id)

    with pytest.raises(DuplicateRegistrationError):
        database.create_registration(event.id, owner.id)

    assert len(database.list_registrations_for_event(event.id)) == 1


def test_duplicate_registrations_allowed_when_configured(tmp_path: Path) -> None:
    db = Database(tmp_path / "dupes.sqlite3")
    db.initialize(allow_duplicate_registrations=True)
    owner = db.create_user("owner@example.com", "hash")
    event = db.create_event(owner.id, _draft())

    first = db.create_registration(event.id, owner.id)
    second = db.create_registration(event.id, owner.id)

    assert first.id != second.id
    assert len(db.list_registrations_for_event(event.id)) == 2
    db.close()


def test_registration_for_missing_event_is_not_found(database: Database) -> None:
    user = database.create_user("owner@example.com", "hash")

    with pytest.raises(EventNotFoundError):
        database.create_registration(12345, user.id)
    assert database.list_registrations() == []


def test_registration_for_missing_user_is_a_store_error(database: Database) -> None:
    owner = database.create_user("owner@example.com", "hash")
    event = database.create_event(owner.id, _draft())

    with pytest.raises(StoreError):
        database.create_registration(event.id, 9999)


def test_foreign_keys_are_enforced_on_every_connection(database: Database) -> None:
    with database.engine.connect() as conn:
        assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1


def test_delete_missing_registration_is_a_no_op(database: Database) -> None:
    assert database.delete_registration(1, 1) is False


def test_initialize_is_idempotent(database: Database) -> None:
    database.create_user("owner@example.com", "hash")
    database.initialize()
    assert len(database.list_users()) == 1


def test_pool_keeps_at_most_max_idle_connections(tmp_path: Path) -> None:
    db = Database(tmp_path / "pool.sqlite3", max_connections=3, max_idle=1)

    with db.engine.connect() as first, db.engine.connect() as second:
        assert first.connection.dbapi_connection is not second.connection.dbapi_connection
        assert db.engine.pool.checkedout() == 2

    assert db.engine.pool.checkedout() == 0
    assert db.engine.pool.checkedin() == 1
    db.close()


def test_pool_times_out_when_exhausted(tmp_path: Path) -> None:
    db = Database(tmp_path / "pool.sqlite3", max_connections=1, max_idle=1, timeout=0.05)
    db.initialize()

    with db.engine.connect():
        with pytest.raises(StoreError):
            db.list_users()

    assert db.list_users() == []
    db.close()


def test_waiting_caller_gets_connection_once_released(tmp_path: Path) -> None:
    db = Database(tmp_path / "pool.sqlite3", max_connections=1, max_idle=1, timeout=5)
    db.initialize()
    held = threading.Event()

    def hold_only_connection() -> None:
        with db.engine.connect():
            held.set()
            time.sleep(0.3)

    worker = threading.Thread(target=hold_only_connection)
    worker.start()
    assert held.wait(timeout=2)

    started = time.monotonic()
    users = db.list_users()
    waited = time.monotonic() - started
    worker.join()

    assert users == []
    assert waited >= 0.1
    db.close()


def test_pool_rejects_invalid_bounds(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        Database(tmp_path / "pool.sqlite3", max_connections=0)
    with pytest.raises(ValueError):
        Database(tmp_path / "pool.sqlite3", max_connections=2, max_idle=3)
    with pytest.raises(ValueError):
        Database(tmp_path / "pool.sqlite3", max_connections=2, max_idle=0)
