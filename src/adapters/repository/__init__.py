"""Repository adapters - Database implementations."""

from .postgres import (
    PostgresCsrfTokenStore,
    PostgresRateLimitStore,
    PostgresTrialRepository,
    ensure_schema,
)

__all__ = [
    "PostgresCsrfTokenStore",
    "PostgresRateLimitStore",
    "PostgresTrialRepository",
    "ensure_schema",
]
