from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from booking.config import Settings
from booking.database import Database
from booking.passwords import PasswordHasher
from booking.tokens import TokenService

SECRET = "tests-signing-secret-0123456789abcdef"
FAST_ROUNDS = 4


class FrozenClock:
    """Callable clock whose current instant can be moved by tests."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        jwt_secret=SECRET,
        database_path=tmp_path / "events.sqlite3",
        bcrypt_rounds=FAST_ROUNDS,
    )


@pytest.fixture()
def database(settings: Settings) -> Database:
    db = Database(settings.database_path)
    db.initialize()
    yield db
    db.close()


@pytest.fixture()
def hasher() -> PasswordHasher:
    return PasswordHasher(FAST_ROUNDS)


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def tokens(clock: FrozenClock) -> TokenService:
    return TokenService(SECRET, clock=clock)
