"""
Pytest configuration for recordmap.

Provides fixtures for:
- Settings isolated from the developer's environment
- An in-memory SQLite `users` table and a mapper bound to it
- A dict-backed cache client
- PostgreSQL connection management for integration tests
"""

from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterator, List, Optional, Tuple

import psycopg
import pytest

from recordmap.config import Settings, get_settings
from recordmap.domain.models import Mapping
from recordmap.mapper import ColumnCatalog, RecordMapper
from recordmap.query import SQLITE

FIXED_NOW = "2024-05-01 12:00:00"

USERS_DDL = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT,
    age INTEGER,
    score REAL,
    active TEXT,
    secret TEXT,
    created_at TEXT,
    updated_at TEXT
)
"""


class FakeCacheClient:
    """Dict-backed stand-in for a Redis client."""

    def __init__(self) -> None:
        self.store: Dict[str, bytes] = {}
        self.expiries: Dict[str, Optional[int]] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self.store.get(key)

    def set(self, key: str, value: Any, ex: Optional[int] = None) -> bool:
        self.store[key] = value
        self.expiries[key] = ex
        return True

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.expiries.pop(key, None)
        return removed


class Clock:
    """Settable clock for audit timestamps."""

    def __init__(self, now: str = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> str:
        return self.now


@pytest.fixture(autouse=True)
def _fresh_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "recordmap"),
        log_level="DEBUG",
    )


@pytest.fixture
def users_mapping() -> Mapping:
    return Mapping(
        table="users",
        columns={
            "id": "int",
            "name": "string",
            "age": "int",
            "score": "float",
            "active": "bool",
            "secret": {"type": "string", "json": False},
        },
    )


@pytest.fixture
def sqlite_conn() -> Generator[sqlite3.Connection, None, None]:
    conn = sqlite3.connect(":memory:")
    conn.execute(USERS_DDL)
    try:
        yield conn
    finally:
        conn.close()


class CountingProvider:
    """Connection provider that hands out one connection and counts borrows."""

    def __init__(self, conn: Any) -> None:
        self.conn = conn
        self.borrows = 0

    @contextmanager
    def __call__(self) -> Iterator[Any]:
        self.borrows += 1
        yield self.conn


@pytest.fixture
def provider(sqlite_conn: sqlite3.Connection) -> CountingProvider:
    return CountingProvider(sqlite_conn)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def cache_client() -> FakeCacheClient:
    return FakeCacheClient()


@pytest.fixture
def users(
    users_mapping: Mapping,
    provider: CountingProvider,
    clock: Clock,
) -> RecordMapper:
    return RecordMapper(
        users_mapping,
        dialect=SQLITE,
        connection_provider=provider,
        clock=clock,
        catalog=ColumnCatalog(),
    )


@pytest.fixture
def seeded_users(sqlite_conn: sqlite3.Connection) -> List[Tuple[Any, ...]]:
    """
    Insert five users directly and return the inserted tuples.
    """
    rows = [
        ("alice", 20, 1.5, "1", "s1"),
        ("bob", 30, 2.0, "0", "s2"),
        ("carol", 20, None, "1", None),
        ("dave", 40, 3.25, None, "s4"),
        ("erin", 30, 0.5, "1", "s5"),
    ]
    sqlite_conn.executemany(
        "INSERT INTO users (name, age, score, active, secret) VALUES (?, ?, ?, ?, ?)", rows
    )
    sqlite_conn.commit()
    return rows


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for integration tests.
    """
    return test_settings.dsn


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a database connection whose work is rolled back after the test.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.rollback()
        conn.close()
