"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock for window and expiry arithmetic
- In-memory stores
- A fully wired TrialSignupService over the in-memory stores
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.adapters.memory import InMemoryCsrfTokenStore, InMemoryRateLimitStore, InMemoryTrialRepository
from src.domain.policy import TrialPolicy
from src.domain.trial_signup import TrialSignupService

START = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


class MutableClock:
    """Clock callable whose time only moves when a test says so."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(START)


@pytest.fixture
def trial_repository() -> InMemoryTrialRepository:
    return InMemoryTrialRepository()


@pytest.fixture
def rate_limit_store() -> InMemoryRateLimitStore:
    return InMemoryRateLimitStore()


@pytest.fixture
def csrf_store() -> InMemoryCsrfTokenStore:
    return InMemoryCsrfTokenStore()


@pytest.fixture
def policy() -> TrialPolicy:
    return TrialPolicy()


@pytest.fixture
def service(
    trial_repository: InMemoryTrialRepository,
    rate_limit_store: InMemoryRateLimitStore,
    csrf_store: InMemoryCsrfTokenStore,
    policy: TrialPolicy,
    clock: MutableClock,
) -> TrialSignupService:
    return TrialSignupService.create(
        repository=trial_repository,
        rate_limit_store=rate_limit_store,
        csrf_store=csrf_store,
        policy=policy,
        clock=clock,
    )
