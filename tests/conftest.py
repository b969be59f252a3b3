"""Shared fixtures: in-memory database, fixed clock and a registered user."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from storage import Database
from users import UserStore

UTC = ZoneInfo("UTC")
# A Monday, noon UTC.
NOW = datetime(2025, 10, 6, 12, 0, 0, tzinfo=UTC)


class MutableClock:
    """Clock whose time tests can move."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def users(db, clock) -> UserStore:
    return UserStore(db, clock)


@pytest.fixture
def user(users):
    return users.get_or_create(1001, username="ada", first_name="Ada")
