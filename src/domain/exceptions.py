"""
Domain exceptions - Semantic error types for trial signup.

This module defines domain-specific exceptions that adapters raise to
communicate infrastructure failures without leaking driver details.
Business-rule rejections are returned as values, not raised.
"""


class TrialError(Exception):
    """Base class for trial signup domain errors."""

    pass


class TrialStoreError(TrialError):
    """Trial-history store read or write failed (including timeouts)."""

    pass


class TrialAlreadyClaimed(TrialStoreError):
    """Insert rejected by the store's uniqueness constraint on active trials."""

    pass


class CounterStoreError(TrialError):
    """Rate-limit counter store read or write failed."""

    pass


class CsrfStoreError(TrialError):
    """CSRF token store read or write failed."""

    pass
