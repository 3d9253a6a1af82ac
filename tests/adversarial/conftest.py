"""
Shared fixtures for adversarial tests.

Provides common test infrastructure for race condition and flooding
tests. Tests are skipped when PostgreSQL cannot be reached.
"""

from collections.abc import Callable, Generator

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from src.adapters.repository.postgres import (
    PostgresCsrfTokenStore,
    PostgresRateLimitStore,
    PostgresTrialRepository,
    ensure_schema,
)
from src.config.settings import get_settings
from src.domain.models import SignupContext, SignupOutcome
from src.domain.policy import TrialPolicy
from src.domain.trial_signup import TrialSignupService

# Module-level marker for all adversarial tests
pytestmark = pytest.mark.adversarial


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for adversarial tests."""
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=20,
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
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty all tables before each test."""
    with pool.connection() as conn:
        conn.execute("DELETE FROM business_trials")
        conn.execute("DELETE FROM rate_limit_attempts")
        conn.execute("DELETE FROM csrf_tokens")
        conn.commit()
    yield


@pytest.fixture
def service(pool: ConnectionPool) -> TrialSignupService:
    """Signup service wired to the PostgreSQL stores."""
    return TrialSignupService.create(
        repository=PostgresTrialRepository(pool),
        rate_limit_store=PostgresRateLimitStore(pool),
        csrf_store=PostgresCsrfTokenStore(pool),
        policy=TrialPolicy(),
    )


@pytest.fixture
def attempt_signup() -> Callable[..., SignupOutcome]:
    """Helper to run one complete signup with a freshly issued CSRF token."""

    def attempt(
        service: TrialSignupService, owner_id: str, phone_number: str, session_id: str
    ) -> SignupOutcome:
        token = service.issue_csrf_token(session_id)
        payload = {
            "business_name": "Acme Plumbing",
            "phone_number": phone_number,
            "subscription_tier": "free",
            "csrf_token": token,
        }
        context = SignupContext(owner_id=owner_id, session_id=session_id)
        return service.submit_trial_signup(payload, context)

    return attempt
