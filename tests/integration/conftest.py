"""
Shared fixtures for integration tests.

Requires PostgreSQL at DATABASE_URL. Tests are
skipped when the database cannot be reached.
"""

from collections.abc import Generator

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from src.adapters.repository.postgres import ensure_schema
from src.config.settings import get_settings


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for integration tests and apply the schema."""
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=10,
        open=True,
    )
    try:
        pool.wait(timeout=3.0)
    except PoolTimeout:
        pool.close()
        pytest.skip("PostgreSQL is not reachable")
    ensure_schema(pool)
    yield pool
    pool.close()


@pytest.fixture(autouse=True)
def clean_database(request: pytest.FixtureRequest) -> Generator[None, None, None]:
    """Empty all tables before each test that uses the database."""
    if "pool" in request.fixturenames:
        pool: ConnectionPool = request.getfixturevalue("pool")
        with pool.connection() as conn:
            conn.execute("DELETE FROM business_trials")
            conn.execute("DELETE FROM rate_limit_attempts")
            conn.execute("DELETE FROM csrf_tokens")
            conn.commit()
    yield
