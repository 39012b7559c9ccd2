"""Shared fixtures: temp-file board database with a controllable clock."""

import pytest

from taskboard.store import BoardStore

BASE_TIME = 1_730_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = BASE_TIME):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1000) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "board.db")


@pytest.fixture
def store(db_path, clock):
    return BoardStore(db_path, clock=clock)
