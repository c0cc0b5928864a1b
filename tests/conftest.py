"""Shared fakes for psycopg async connections."""

from unittest.mock import AsyncMock, MagicMock

import pytest


class FakeTransaction:
    """Mimics psycopg's async transaction context manager (savepoint)."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False  # don't suppress exceptions


class FakeCursor:
    """Mimics psycopg's async cursor context manager."""

    def __init__(self, rows=None, one=None):
        self.execute = AsyncMock()
        self.executemany = AsyncMock()
        self.fetchall = AsyncMock(return_value=rows or [])
        self.fetchone = AsyncMock(return_value=one)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


def make_mock_conn(rows=None, one=None):
    """Async connection whose cursors return ``rows`` / ``one``."""
    conn = AsyncMock()
    conn.transaction = MagicMock(return_value=FakeTransaction())
    conn.execute = AsyncMock()
    fake_cursor = FakeCursor(rows=rows, one=one)
    conn.cursor = MagicMock(return_value=fake_cursor)
    conn._fake_cursor = fake_cursor  # exposed for assertions
    return conn


@pytest.fixture
def mock_conn():
    return make_mock_conn()
