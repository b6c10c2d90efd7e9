from datetime import datetime, timezone

import pytest

from form_persistence.storage.bundle import FormStorage


class FakeClock:
    """A settable clock for expiry and timestamp tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def storage():
    return FormStorage.in_memory()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc))
