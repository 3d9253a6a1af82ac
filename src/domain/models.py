"""
Domain models - Value types shared by the trial signup gates.

Everything here is plain data: enums and dataclasses with no behavior
beyond small derived properties. Persisted records are produced by
repository adapters; everything else is computed per signup attempt.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class SubscriptionTier(str, Enum):
    """Subscription tiers a business trial may be opened on."""

    FREE = "free"
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class SignupState(str, Enum):
    """
    Trial signup state machine states.

    Transitions (forward-only, one per gate):
    - RECEIVED -> VALIDATED -> RATE_CHECKED -> PATTERN_CHECKED
      -> ELIGIBILITY_CHECKED -> CREATED
    - any gate -> REJECTED

    CREATED and REJECTED are terminal. No gate is ever retried.
    """

    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    RATE_CHECKED = "RATE_CHECKED"
    PATTERN_CHECKED = "PATTERN_CHECKED"
    ELIGIBILITY_CHECKED = "ELIGIBILITY_CHECKED"
    CREATED = "CREATED"
    REJECTED = "REJECTED"


class RejectionKind(str, Enum):
    """
    Why a signup attempt was rejected.

    Each kind maps onto a conventional HTTP status class at the API layer.
    """

    BAD_REQUEST = "bad_request"
    TOO_MANY_REQUESTS = "too_many_requests"
    CONFLICT = "conflict"
    SERVER_ERROR = "server_error"


class CsrfCheck(Enum):
    """Result of checking a submitted CSRF token against the issued one."""

    VALID = "valid"
    MISSING = "missing"
    NOT_ISSUED = "not_issued"
    EXPIRED = "expired"
    MISMATCH = "mismatch"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class TrialSignupRequest:
    """Sanitized signup payload, only ever built from a valid submission."""

    business_name: str
    phone_number: str
    subscription_tier: SubscriptionTier
    csrf_token: str | None = None


@dataclass(frozen=True)
class NewBusinessTrial:
    """Values for a trial record that has not been persisted yet."""

    owner_id: str
    name: str
    phone_number: str
    subscription_tier: SubscriptionTier
    trial_active: bool
    trial_expires_at: datetime
    created_at: datetime


@dataclass(frozen=True)
class BusinessTrialRecord:
    """A persisted business trial. One per successful signup."""

    id: str
    owner_id: str
    name: str
    phone_number: str
    subscription_tier: SubscriptionTier
    trial_active: bool
    trial_expires_at: datetime
    created_at: datetime

    def is_running(self, now: datetime) -> bool:
        """Active flag set and expiry still in the future."""
        return self.trial_active and self.trial_expires_at > now


@dataclass(frozen=True)
class EligibilityDecision:
    """Outcome of the eligibility rules for one signup attempt."""

    eligible: bool
    reason: str | None = None
    code: str | None = None
    details: dict[str, Any] | None = None
    recommendations: list[str] | None = None


@dataclass(frozen=True)
class RateLimitResult:
    """
    Outcome of a rate-limit check.

    degraded is True when the counter store failed and the check
    was allowed without consulting it.
    """

    allowed: bool
    remaining: int
    reset_time: datetime | None = None
    degraded: bool = False


@dataclass(frozen=True)
class ValidationResult:
    """Field-level validation outcome; sanitized is set iff valid."""

    valid: bool
    errors: dict[str, list[str]]
    sanitized: TrialSignupRequest | None = None


@dataclass(frozen=True)
class PatternAssessment:
    suspicious: bool
    reason: str | None = None


@dataclass(frozen=True)
class InteractionSignals:
    """
    Client-reported form interaction counters.

    Times are epoch milliseconds as reported by the browser. Any counter
    left as None is not evaluated.
    """

    submission_time: int
    form_load_time: int | None = None
    mouse_movements: int | None = None
    keyboard_events: int | None = None
    field_focus_events: int | None = None


@dataclass(frozen=True)
class InteractionAssessment:
    suspicious: bool
    reasons: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SignupContext:
    """
    Request context supplied by the caller alongside the payload.

    owner_id and email come from the identity provider and are trusted
    as already verified.
    """

    owner_id: str
    email: str | None = None
    session_id: str | None = None
    user_agent: str | None = None
    source_address: str | None = None
    interaction: InteractionSignals | None = None


@dataclass(frozen=True)
class Rejection:
    kind: RejectionKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SignupOutcome:
    """Final result of one signup attempt. Exactly one of record/rejection is set."""

    state: SignupState
    record: BusinessTrialRecord | None = None
    rejection: Rejection | None = None

    @property
    def created(self) -> bool:
        return self.state == SignupState.CREATED
