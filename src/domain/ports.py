"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.
"""

from datetime import datetime, timedelta
from typing import Protocol

from .models import BusinessTrialRecord, NewBusinessTrial


class TrialHistoryRepository(Protocol):
    """Port interface for business trial persistence."""

    def list_owner_trials(self, owner_id: str) -> list[BusinessTrialRecord]:
        """
        Return every trial record owned by owner_id, active or not.

        Raises:
            TrialStoreError: If the store cannot be read
        """
        ...

    def list_phone_trials(
        self, phone_number: str, active_only: bool = True
    ) -> list[BusinessTrialRecord]:
        """
        Return trial records registered with phone_number.

        Args:
            phone_number: E.164 phone number, exact match
            active_only: Only return records with trial_active set

        Raises:
            TrialStoreError: If the store cannot be read
        """
        ...

    def create_trial(self, trial: NewBusinessTrial) -> BusinessTrialRecord:
        """
        Insert a new trial record and return it with its generated id.

        Raises:
            TrialAlreadyClaimed: If a uniqueness constraint rejects the insert
            TrialStoreError: If the store cannot be written
        """
        ...


class RateLimitStore(Protocol):
    """Port interface for rate-limit attempt counters."""

    def record_attempt(
        self, key: str, now: datetime, window: timedelta, ceiling: int
    ) -> tuple[bool, list[datetime]]:
        """
        Atomically prune, count and conditionally record one attempt.

        Timestamps older than `window` relative to `now` are dropped. If
        fewer than `ceiling` remain, `now` is appended. Concurrent calls
        for the same key are serialized.

        Returns:
            (allowed, kept) where kept is the retained timestamps, oldest
            first, including `now` when allowed

        Raises:
            CounterStoreError: If the store cannot be read or written
        """
        ...

    def clear(self, key: str) -> None:
        """Remove all attempts for key. Clearing a missing key is a no-op."""
        ...


class CsrfTokenStore(Protocol):
    """Port interface for per-session CSRF tokens."""

    def save_token(self, session_id: str, token: str, issued_at: datetime) -> None:
        """Store token for session_id, replacing any previous one."""
        ...

    def load_token(self, session_id: str) -> tuple[str, datetime] | None:
        """Return (token, issued_at) for session_id, or None if none was issued."""
        ...

    def delete_token(self, session_id: str) -> None:
        """Forget the token for session_id."""
        ...
