from datetime import datetime, timedelta

import pytest

from feedback_rewards.infrastructure.persistence import init_database


class FakeClock:
    """Settable wall clock for day-boundary tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def db(tmp_path):
    return init_database(str(tmp_path / "test.db"))


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 14, 12, 0, 0))
