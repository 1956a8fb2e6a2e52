"""Pytest configuration and fixtures for estatetoken tests."""

import pytest


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Awaitable sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class InMemoryRowStore:
    """Row store double collecting inserted rows per table."""

    def __init__(self, fail: bool = False):
        self.rows: dict[str, list[dict]] = {}
        self.fail = fail

    async def insert(self, table: str, row: dict) -> dict:
        if self.fail:
            raise RuntimeError("database unavailable")
        self.rows.setdefault(table, []).append(row)
        return row


@pytest.fixture(autouse=True)
def use_test_environment(monkeypatch):
    """Ensure all tests use test environment variables."""
    monkeypatch.setenv("ESTATETOKEN_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("ESTATETOKEN_METRICS_ENABLED", "false")


@pytest.fixture
def clock():
    """Manually advanced clock."""
    return ManualClock()


@pytest.fixture
def recording_sleep():
    """Sleep replacement that records requested delays."""
    return RecordingSleep()


@pytest.fixture
def row_store():
    """In-memory row store."""
    return InMemoryRowStore()


@pytest.fixture
def failing_row_store():
    """Row store whose inserts always fail."""
    return InMemoryRowStore(fail=True)
