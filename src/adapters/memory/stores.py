"""
In-memory adapters - Implement the storage ports without a database.

For local development and tests. State lives in process memory and is
guarded by a lock per store; nothing survives a restart.
"""

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timedelta

from src.domain.exceptions import TrialAlreadyClaimed
from src.domain.models import BusinessTrialRecord, NewBusinessTrial

logger = logging.getLogger(__name__)


class InMemoryTrialRepository:
    """
    Implements TrialHistoryRepository protocol with a list of records.

    Enforces the same uniqueness as the PostgreSQL schema: at most one
    active trial per phone number and per owner.
    """

    def __init__(self, records: list[BusinessTrialRecord] | None = None) -> None:
        self._records: list[BusinessTrialRecord] = list(records or [])
        self._lock = threading.Lock()

    def list_owner_trials(self, owner_id: str) -> list[BusinessTrialRecord]:
        with self._lock:
            return [r for r in self._records if r.owner_id == owner_id]

    def list_phone_trials(
        self, phone_number: str, active_only: bool = True
    ) -> list[BusinessTrialRecord]:
        with self._lock:
            return [
                r
                for r in self._records
                if r.phone_number == phone_number and (r.trial_active or not active_only)
            ]

    def create_trial(self, trial: NewBusinessTrial) -> BusinessTrialRecord:
        with self._lock:
            if trial.trial_active and any(
                r.trial_active
                and (r.phone_number == trial.phone_number or r.owner_id == trial.owner_id)
                for r in self._records
            ):
                raise TrialAlreadyClaimed(trial.phone_number)

            record = BusinessTrialRecord(
                id=str(uuid.uuid4()),
                owner_id=trial.owner_id,
                name=trial.name,
                phone_number=trial.phone_number,
                subscription_tier=trial.subscription_tier,
                trial_active=trial.trial_active,
                trial_expires_at=trial.trial_expires_at,
                created_at=trial.created_at,
            )
            self._records.append(record)
            logger.debug("Stored trial %s for owner %s", record.id, record.owner_id)
            return record

    def deactivate(self, record_id: str) -> None:
        """Clear trial_active on a record, as billing does when a trial ends."""
        with self._lock:
            self._records = [
                replace(r, trial_active=False) if r.id == record_id else r
                for r in self._records
            ]


class InMemoryRateLimitStore:
    """Implements RateLimitStore protocol with a dict of timestamp lists."""

    def __init__(self) -> None:
        self._attempts: dict[str, list[datetime]] = {}
        self._lock = threading.Lock()

    def record_attempt(
        self, key: str, now: datetime, window: timedelta, ceiling: int
    ) -> tuple[bool, list[datetime]]:
        with self._lock:
            kept = sorted(ts for ts in self._attempts.get(key, []) if now - ts < window)
            allowed = len(kept) < ceiling
            if allowed:
                kept = sorted([*kept, now])
            self._attempts[key] = kept
            return allowed, list(kept)

    def clear(self, key: str) -> None:
        with self._lock:
            self._attempts.pop(key, None)


class InMemoryCsrfTokenStore:
    """Implements CsrfTokenStore protocol with a dict keyed by session id."""

    def __init__(self) -> None:
        self._tokens: dict[str, tuple[str, datetime]] = {}
        self._lock = threading.Lock()

    def save_token(self, session_id: str, token: str, issued_at: datetime) -> None:
        with self._lock:
            self._tokens[session_id] = (token, issued_at)

    def load_token(self, session_id: str) -> tuple[str, datetime] | None:
        with self._lock:
            return self._tokens.get(session_id)

    def delete_token(self, session_id: str) -> None:
        with self._lock:
            self._tokens.pop(session_id, None)
