"""
Domain layer - Pure business logic with zero framework imports.

This package contains the trial signup gates (sanitizer, validator,
rate limiter, pattern monitor, eligibility engine) and the service that
sequences them. It defines its own port interfaces for infrastructure
abstraction, ensuring true hexagonal architecture decoupling.
"""

from .eligibility import EligibilityEngine
from .exceptions import (
    CounterStoreError,
    CsrfStoreError,
    TrialAlreadyClaimed,
    TrialError,
    TrialStoreError,
)
from .models import (
    BusinessTrialRecord,
    EligibilityDecision,
    RejectionKind,
    SignupContext,
    SignupOutcome,
    SignupState,
    SubscriptionTier,
)
from .pattern_monitor import PatternMonitor
from .policy import TrialPolicy
from .ports import CsrfTokenStore, RateLimitStore, TrialHistoryRepository
from .rate_limiter import RateLimiter
from .trial_signup import TrialSignupService
from .validator import TrialSignupValidator

__all__ = [
    "BusinessTrialRecord",
    "CounterStoreError",
    "CsrfStoreError",
    "CsrfTokenStore",
    "EligibilityDecision",
    "EligibilityEngine",
    "PatternMonitor",
    "RateLimitStore",
    "RateLimiter",
    "RejectionKind",
    "SignupContext",
    "SignupOutcome",
    "SignupState",
    "SubscriptionTier",
    "TrialAlreadyClaimed",
    "TrialError",
    "TrialHistoryRepository",
    "TrialPolicy",
    "TrialSignupService",
    "TrialSignupValidator",
    "TrialStoreError",
]
