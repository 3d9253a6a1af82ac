"""
PostgreSQL adapters - Implement the domain's storage ports.

This module provides the PostgreSQL implementations of the trial
history repository, the rate-limit counter store and the CSRF token
store, using psycopg3 with raw SQL.

Bounded operations:
------------------
Every operation checks a connection out of the pool with a timeout and
sets a transaction-local statement_timeout, so no call blocks for longer
than `timeout` seconds on either the pool or the server.

Error translation:
-----------------
psycopg and psycopg_pool exceptions never cross into the domain. They
are re-raised as TrialStoreError, CounterStoreError or CsrfStoreError,
and the domain applies its fail-open or fail-closed policy per store.

Race closure:
------------
business_trials carries partial unique indexes on phone_number and
owner_id WHERE trial_active (see sql/schema.sql). A concurrent signup
that slipped past the eligibility checks fails the insert with a
UniqueViolation, surfaced as TrialAlreadyClaimed.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path

import psycopg
from psycopg import errors
from psycopg_pool import ConnectionPool, PoolTimeout

from src.domain.exceptions import (
    CounterStoreError,
    CsrfStoreError,
    TrialAlreadyClaimed,
    TrialError,
    TrialStoreError,
)
from src.domain.models import BusinessTrialRecord, NewBusinessTrial, SubscriptionTier

logger = logging.getLogger(__name__)

SCHEMA_FILE = Path(__file__).parent.parent.parent.parent / "sql" / "schema.sql"

_TRIAL_COLUMNS = """
    id::text, owner_id, name, phone_number, subscription_tier,
    trial_active, trial_expires_at, created_at
"""


def _row_to_record(row: tuple) -> BusinessTrialRecord:
    return BusinessTrialRecord(
        id=row[0],
        owner_id=row[1],
        name=row[2],
        phone_number=row[3],
        subscription_tier=SubscriptionTier(row[4]),
        trial_active=row[5],
        trial_expires_at=row[6],
        created_at=row[7],
    )


class _PostgresStore:
    """Shared pool access with bounded waits and error translation."""

    error_type: type[TrialError] = TrialError

    def __init__(self, pool: ConnectionPool, timeout: float = 5.0) -> None:
        """
        Initialize store with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
            timeout: Seconds to wait for a connection and for each statement
        """
        self._pool = pool
        self._timeout = timeout

    @contextmanager
    def _cursor(self) -> Iterator[psycopg.Cursor]:
        try:
            with self._pool.connection(timeout=self._timeout) as conn, conn.cursor() as cursor:
                cursor.execute(
                    "SELECT set_config('statement_timeout', %s, true)",
                    (str(int(self._timeout * 1000)),),
                )
                yield cursor
                conn.commit()
        except PoolTimeout as e:
            raise self.error_type(f"Timed out waiting for a database connection: {e}") from e
        except psycopg.Error as e:
            raise self.error_type(f"Database error: {e}") from e


class PostgresTrialRepository(_PostgresStore):
    """
    Implements TrialHistoryRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    error_type = TrialStoreError

    def list_owner_trials(self, owner_id: str) -> list[BusinessTrialRecord]:
        sql = f"""
            SELECT {_TRIAL_COLUMNS}
            FROM business_trials
            WHERE owner_id = %s
            ORDER BY created_at
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (owner_id,))
            return [_row_to_record(row) for row in cursor.fetchall()]

    def list_phone_trials(
        self, phone_number: str, active_only: bool = True
    ) -> list[BusinessTrialRecord]:
        sql = f"""
            SELECT {_TRIAL_COLUMNS}
            FROM business_trials
            WHERE phone_number = %s
              AND (trial_active OR NOT %s)
            ORDER BY created_at
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (phone_number, active_only))
            return [_row_to_record(row) for row in cursor.fetchall()]

    def create_trial(self, trial: NewBusinessTrial) -> BusinessTrialRecord:
        """
        Insert a trial record.

        created_at comes from the domain clock rather than NOW() so the
        stored expiry is exactly created_at + trial length.

        Raises:
            TrialAlreadyClaimed: Active trial already exists for the phone or owner
            TrialStoreError: Any other database failure
        """
        sql = f"""
            INSERT INTO business_trials
                (owner_id, name, phone_number, subscription_tier,
                 trial_active, trial_expires_at, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {_TRIAL_COLUMNS}
        """
        params = (
            trial.owner_id,
            trial.name,
            trial.phone_number,
            trial.subscription_tier.value,
            trial.trial_active,
            trial.trial_expires_at,
            trial.created_at,
        )
        try:
            with self._cursor() as cursor:
                cursor.execute(sql, params)
                row = cursor.fetchone()
        except TrialStoreError as e:
            if isinstance(e.__cause__, errors.UniqueViolation):
                raise TrialAlreadyClaimed(trial.phone_number) from e.__cause__
            raise

        if row is None:
            raise TrialStoreError("Insert returned no row")
        return _row_to_record(row)


class PostgresRateLimitStore(_PostgresStore):
    """Implements RateLimitStore protocol with one timestamp array per key."""

    error_type = CounterStoreError

    def record_attempt(
        self, key: str, now: datetime, window: timedelta, ceiling: int
    ) -> tuple[bool, list[datetime]]:
        """
        Prune, count and append inside one transaction.

        The key row is created first if missing, then locked with
        SELECT FOR UPDATE, so concurrent attempts on the same key queue
        behind each other and each one sees the previous one's append.
        """
        # SQL to make sure there is a row to lock
        ensure_sql = """
            INSERT INTO rate_limit_attempts (key)
            VALUES (%s)
            ON CONFLICT (key) DO NOTHING
        """

        # SQL to fetch and lock the attempt list
        select_sql = """
            SELECT attempts
            FROM rate_limit_attempts
            WHERE key = %s
            FOR UPDATE
        """

        update_sql = """
            UPDATE rate_limit_attempts
            SET attempts = %s::timestamptz[], updated_at = NOW()
            WHERE key = %s
        """

        with self._cursor() as cursor:
            cursor.execute(ensure_sql, (key,))
            cursor.execute(select_sql, (key,))
            row = cursor.fetchone()
            stored = row[0] if row is not None else []

            kept = sorted(ts for ts in stored if now - ts < window)
            allowed = len(kept) < ceiling
            if allowed:
                kept = sorted([*kept, now])
            cursor.execute(update_sql, (kept, key))

        return allowed, kept

    def clear(self, key: str) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM rate_limit_attempts WHERE key = %s", (key,))


class PostgresCsrfTokenStore(_PostgresStore):
    """Implements CsrfTokenStore protocol, one token per session."""

    error_type = CsrfStoreError

    def save_token(self, session_id: str, token: str, issued_at: datetime) -> None:
        sql = """
            INSERT INTO csrf_tokens (session_id, token, issued_at)
            VALUES (%s, %s, %s)
            ON CONFLICT (session_id) DO UPDATE
            SET token = EXCLUDED.token,
                issued_at = EXCLUDED.issued_at
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (session_id, token, issued_at))

    def load_token(self, session_id: str) -> tuple[str, datetime] | None:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT token, issued_at FROM csrf_tokens WHERE session_id = %s",
                (session_id,),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return row[0], row[1]

    def delete_token(self, session_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM csrf_tokens WHERE session_id = %s", (session_id,))


def ensure_schema(pool: ConnectionPool) -> None:
    """
    Apply the idempotent bootstrap schema (sql/schema.sql).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    if not SCHEMA_FILE.exists():
        logger.warning(f"Schema file not found: {SCHEMA_FILE}")
        return

    logger.info(f"Applying schema: {SCHEMA_FILE.name}")
    try:
        sql_content = SCHEMA_FILE.read_text()
        with pool.connection() as conn:
            conn.execute(sql_content)
            conn.commit()
    except psycopg.Error as e:
        logger.error(f"Schema setup failed: {SCHEMA_FILE.name} - {e}")
        raise RuntimeError(f"Database schema setup failed: {SCHEMA_FILE.name}") from e
    logger.info("Schema ready")
