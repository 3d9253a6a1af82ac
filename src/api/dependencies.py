"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request, status
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import (
    PostgresCsrfTokenStore,
    PostgresRateLimitStore,
    PostgresTrialRepository,
)
from src.config.settings import Settings, get_settings
from src.domain.trial_signup import TrialSignupService

SESSION_COOKIE = "trial_session"


@dataclass(frozen=True)
class OwnerIdentity:
    """Identity asserted by the authenticating gateway."""

    owner_id: str
    email: str | None = None


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_trial_service(
    request: Request, settings: Settings = Depends(get_settings)
) -> TrialSignupService:
    """
    Create trial signup service with injected dependencies.

    Wires the PostgreSQL stores and the TrialPolicy built from settings.
    """
    pool = get_pool(request)
    timeout = settings.store_timeout_seconds
    return TrialSignupService.create(
        repository=PostgresTrialRepository(pool, timeout),
        rate_limit_store=PostgresRateLimitStore(pool, timeout),
        csrf_store=PostgresCsrfTokenStore(pool, timeout),
        policy=settings.to_policy(),
    )


def get_owner_identity(
    owner_id: str | None = Header(None, alias="X-Owner-Id"),
    owner_email: str | None = Header(None, alias="X-Owner-Email"),
) -> OwnerIdentity:
    """
    Read the authenticated owner from gateway headers.

    The gateway in front of this service verifies the session and sets
    these headers; they are trusted as-is. Missing owner id -> 401.
    """
    if owner_id is None or not owner_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    email = owner_email.strip().lower() if owner_email else None
    return OwnerIdentity(owner_id=owner_id.strip(), email=email)


def get_session_id(request: Request) -> str | None:
    """Session id from the CSRF session cookie, if the client has one."""
    return request.cookies.get(SESSION_COOKIE)
