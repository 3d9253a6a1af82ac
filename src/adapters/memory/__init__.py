"""In-memory adapters - Process-local store implementations."""

from .stores import InMemoryCsrfTokenStore, InMemoryRateLimitStore, InMemoryTrialRepository

__all__ = ["InMemoryCsrfTokenStore", "InMemoryRateLimitStore", "InMemoryTrialRepository"]
