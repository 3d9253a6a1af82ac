"""
Trial eligibility engine - Business rules gating new business trials.

Rules are small predicate objects evaluated in a fixed order. Each
returns RulePassed or RuleFailed; the engine stops at the first
failure, so rule order is also the precedence of the reason shown to
the user:

1. ActiveTrialRule          - owner already has a running trial
2. PhoneRecentlyUsedRule    - another owner used this phone recently
3. LifetimeTrialCapRule     - owner reached the lifetime trial cap
4. RecentTrialCooldownRule  - owner created a trial recently

Failure policy: any TrialStoreError while reading history fails
closed (ineligible), the opposite of the rate limiter.

Note: checks are read-then-decide. Concurrent attempts are resolved by
the store's uniqueness constraints at insert time, not here.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import cached_property
from typing import Any, Protocol

from .exceptions import TrialStoreError
from .models import BusinessTrialRecord, Clock, EligibilityDecision, utc_now
from .policy import TrialPolicy
from .ports import TrialHistoryRepository
from .security_log import SecurityEventLog, mask_phone

logger = logging.getLogger(__name__)

SYSTEM_ERROR_CODE = "system_error"


@dataclass(frozen=True)
class RulePassed:
    pass


@dataclass(frozen=True)
class RuleFailed:
    code: str
    reason: str
    details: dict[str, Any]
    recommendations: list[str] = field(default_factory=list)


PASSED = RulePassed()
RuleOutcome = RulePassed | RuleFailed


class TrialHistory:
    """
    Lazily loaded trial history for one eligibility check.

    Each query runs at most once, and only if a rule asks for it.
    """

    def __init__(self, repository: TrialHistoryRepository, owner_id: str, phone_number: str):
        self._repository = repository
        self._owner_id = owner_id
        self._phone_number = phone_number

    @cached_property
    def owner_trials(self) -> list[BusinessTrialRecord]:
        return self._repository.list_owner_trials(self._owner_id)

    @cached_property
    def active_phone_trials(self) -> list[BusinessTrialRecord]:
        return self._repository.list_phone_trials(self._phone_number, active_only=True)


@dataclass(frozen=True)
class EligibilityContext:
    owner_id: str
    phone_number: str
    email: str | None
    now: datetime
    history: TrialHistory


class EligibilityRule(Protocol):
    """A single eligibility predicate."""

    code: str

    def evaluate(self, context: EligibilityContext) -> RuleOutcome:
        ...


@dataclass(frozen=True)
class ActiveTrialRule:
    code: str = "active_trial_exists"

    def evaluate(self, context: EligibilityContext) -> RuleOutcome:
        active = [t for t in context.history.owner_trials if t.is_running(context.now)]
        if not active:
            return PASSED
        return RuleFailed(
            code=self.code,
            reason="You already have an active trial",
            details={"activeTrials": len(active)},
            recommendations=["Complete your current trial", "Contact support for assistance"],
        )


@dataclass(frozen=True)
class PhoneRecentlyUsedRule:
    """Ignores records owned by the requester; ActiveTrialRule covers those."""

    window: timedelta = timedelta(days=30)
    code: str = "phone_recently_used"

    def evaluate(self, context: EligibilityContext) -> RuleOutcome:
        since = context.now - self.window
        recent = [
            t
            for t in context.history.active_phone_trials
            if t.created_at > since and t.owner_id != context.owner_id
        ]
        if not recent:
            return PASSED
        days = self.window.days
        return RuleFailed(
            code=self.code,
            reason="This phone number was recently used for a trial",
            details={"recentUsage": len(recent)},
            recommendations=[
                "Use a different phone number",
                f"Wait {days} days before trying again",
            ],
        )


@dataclass(frozen=True)
class LifetimeTrialCapRule:
    max_trials: int = 3
    code: str = "max_trials_exceeded"

    def evaluate(self, context: EligibilityContext) -> RuleOutcome:
        total = len(context.history.owner_trials)
        if total < self.max_trials:
            return PASSED
        return RuleFailed(
            code=self.code,
            reason=f"You have reached the maximum number of trials ({self.max_trials})",
            details={"totalTrials": total, "maxAllowed": self.max_trials},
            recommendations=["Contact support for assistance", "Consider upgrading to a paid plan"],
        )


@dataclass(frozen=True)
class RecentTrialCooldownRule:
    window: timedelta = timedelta(days=30)
    code: str = "recent_trial_created"

    def evaluate(self, context: EligibilityContext) -> RuleOutcome:
        since = context.now - self.window
        recent = [t for t in context.history.owner_trials if t.created_at > since]
        if not recent:
            return PASSED
        return RuleFailed(
            code=self.code,
            reason="You recently created a trial. Please wait before creating another.",
            details={"recentTrials": len(recent)},
            recommendations=[
                f"Wait {self.window.days} days before creating a new trial",
                "Contact support if needed",
            ],
        )


def default_rules(policy: TrialPolicy) -> tuple[EligibilityRule, ...]:
    """The standard rule chain, in precedence order."""
    return (
        ActiveTrialRule(),
        PhoneRecentlyUsedRule(window=policy.phone_reuse_window),
        LifetimeTrialCapRule(max_trials=policy.max_trials_per_user),
        RecentTrialCooldownRule(window=policy.trial_cooldown),
    )


@dataclass
class EligibilityEngine:
    """
    Decides whether an owner may open a new business trial.

    The rule chain is injectable so new rules can be added without
    touching the engine or the signup orchestration.
    """

    repository: TrialHistoryRepository
    rules: Sequence[EligibilityRule] = field(default_factory=lambda: default_rules(TrialPolicy()))
    clock: Clock = utc_now
    security_log: SecurityEventLog = field(default_factory=SecurityEventLog)

    def check_eligibility(
        self, owner_id: str, phone_number: str, email: str | None = None
    ) -> EligibilityDecision:
        """
        Evaluate the rule chain for a prospective trial.

        Args:
            owner_id: Authenticated owner identity
            phone_number: Sanitized E.164 phone number for the trial
            email: Owner email, if the identity provider supplied one

        Returns:
            EligibilityDecision; never raises for store failures
        """
        self.security_log.emit(
            "trial_eligibility_check", userId=owner_id, phoneNumber=mask_phone(phone_number)
        )
        context = EligibilityContext(
            owner_id=owner_id,
            phone_number=phone_number,
            email=email,
            now=self.clock(),
            history=TrialHistory(self.repository, owner_id, phone_number),
        )

        try:
            for rule in self.rules:
                outcome = rule.evaluate(context)
                if isinstance(outcome, RuleFailed):
                    self.security_log.warning(
                        "trial_eligibility_denied",
                        reason=outcome.code,
                        userId=owner_id,
                        phoneNumber=mask_phone(phone_number),
                        details=dict(outcome.details),
                    )
                    return EligibilityDecision(
                        eligible=False,
                        reason=outcome.reason,
                        code=outcome.code,
                        details=outcome.details,
                        recommendations=outcome.recommendations,
                    )
        except TrialStoreError as e:
            logger.exception("Trial history lookup failed for owner %s", owner_id)
            self.security_log.error("trial_eligibility_error", userId=owner_id, error=str(e))
            return EligibilityDecision(
                eligible=False,
                reason="Unable to verify trial eligibility. Please try again later.",
                code=SYSTEM_ERROR_CODE,
                details={"error": SYSTEM_ERROR_CODE},
                recommendations=["Try again in a few minutes", "Contact support if problem persists"],
            )

        self.security_log.emit(
            "trial_eligibility_approved", userId=owner_id, phoneNumber=mask_phone(phone_number)
        )
        return EligibilityDecision(eligible=True)

    @classmethod
    def from_policy(
        cls,
        repository: TrialHistoryRepository,
        policy: TrialPolicy,
        clock: Clock = utc_now,
        security_log: SecurityEventLog | None = None,
    ) -> "EligibilityEngine":
        return cls(
            repository=repository,
            rules=default_rules(policy),
            clock=clock,
            security_log=security_log or SecurityEventLog(enabled=policy.security_logging_enabled),
        )
