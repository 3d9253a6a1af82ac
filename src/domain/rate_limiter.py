"""
Sliding-window rate limiter for form submissions.

Each (form_id, identity) pair keeps an ordered list of attempt
timestamps in a RateLimitStore. Only attempts inside the trailing
window count against the ceiling. The store prunes, counts and appends
in one atomic step, so parallel attempts cannot all slip under the
ceiling.

Failure policy: if the counter store cannot be read or written the
check fails open (allowed, marked degraded) and the caller logs the
anomaly.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from .exceptions import CounterStoreError
from .models import Clock, RateLimitResult, utc_now
from .ports import RateLimitStore
from .security_log import SecurityEventLog

logger = logging.getLogger(__name__)


def rate_limit_key(form_id: str, identity: str | None) -> str:
    return f"form_rate_limit:{form_id}:{identity or 'anonymous'}"


@dataclass
class RateLimiter:
    """Bounds submissions per (form, identity) within a rolling window."""

    store: RateLimitStore
    max_submissions: int = 5
    window: timedelta = timedelta(minutes=15)
    clock: Clock = utc_now
    security_log: SecurityEventLog = field(default_factory=SecurityEventLog)

    def check_rate_limit(self, form_id: str, identity: str | None) -> RateLimitResult:
        """
        Check and record one submission attempt.

        Allowed attempts are recorded immediately; rejected attempts are
        not, so waiting until reset_time always frees a slot.

        Returns:
            RateLimitResult with remaining capacity after this attempt,
            or reset_time when the ceiling has been reached
        """
        key = rate_limit_key(form_id, identity)
        now = self.clock()

        try:
            allowed, attempts = self.store.record_attempt(
                key, now, self.window, self.max_submissions
            )
        except CounterStoreError as e:
            logger.error("Rate limit store failed for %s, allowing attempt: %s", key, e)
            self.security_log.error(
                "form_rate_limit_error", formId=form_id, userId=identity, error=str(e)
            )
            return RateLimitResult(
                allowed=True, remaining=self.max_submissions, degraded=True
            )

        if not allowed:
            # A zero ceiling rejects with nothing recorded
            oldest = min(attempts) if attempts else now
            reset_time = oldest + self.window
            self.security_log.warning(
                "form_rate_limit_exceeded",
                formId=form_id,
                userId=identity,
                submissions=len(attempts),
                resetTime=reset_time.isoformat(),
            )
            return RateLimitResult(allowed=False, remaining=0, reset_time=reset_time)

        remaining = max(self.max_submissions - len(attempts), 0)
        self.security_log.emit(
            "form_submission_tracked",
            formId=form_id,
            userId=identity,
            submissions=len(attempts),
            remaining=remaining,
        )
        return RateLimitResult(allowed=True, remaining=remaining)

    def reset_rate_limit(self, form_id: str, identity: str | None) -> None:
        """
        Forget every recorded attempt for (form_id, identity).

        Raises:
            CounterStoreError: If the store cannot be cleared
        """
        self.store.clear(rate_limit_key(form_id, identity))
        self.security_log.emit("form_rate_limit_reset", formId=form_id, userId=identity)
