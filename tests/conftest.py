"""
Pytest configuration for litemap.

Provides fixtures for:
- Settings isolation and cache resets
- Database connection details for integration tests
"""

from __future__ import annotations

import os

import psycopg
import pytest

from litemap.config import Settings, get_settings
from litemap.query import purge_query_cache


@pytest.fixture(autouse=True)
def _fresh_caches():
    """
    Start every test with empty settings/statement/plan caches.
    """
    get_settings.cache_clear()
    purge_query_cache()
    yield
    get_settings.cache_clear()
    purge_query_cache()


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
        db_name=os.getenv("DB_NAME", "litemap"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to skip integration tests when no database is available.
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
def require_db(db_connection_available: bool) -> None:
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")
