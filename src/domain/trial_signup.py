"""
Trial signup domain service - Gate sequencing for new business trials.

Signup State Machine (Forward-Only Transitions)
===============================================

    RECEIVED
      -> VALIDATED            (TrialSignupValidator)
      -> RATE_CHECKED         (RateLimiter, keyed by form id + owner id)
      -> PATTERN_CHECKED      (PatternMonitor, advisory only)
      -> ELIGIBILITY_CHECKED  (EligibilityEngine, on the sanitized phone)
      -> CREATED              (record inserted)

Any gate may move the attempt to REJECTED instead:

    Validation failure          -> bad_request
    Rate limit exceeded         -> too_many_requests
    Eligibility denied          -> conflict
    Uniqueness violation        -> conflict
    Store or unexpected failure -> server_error

Every rejection is terminal for the attempt. Nothing is retried here;
retry policy belongs to the caller. Gates run strictly in order because
each one consumes the previous gate's sanitized output.
"""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .csrf import CsrfTokenManager
from .eligibility import SYSTEM_ERROR_CODE, EligibilityEngine
from .exceptions import TrialAlreadyClaimed, TrialStoreError
from .models import (
    Clock,
    NewBusinessTrial,
    Rejection,
    RejectionKind,
    SignupContext,
    SignupOutcome,
    SignupState,
    utc_now,
)
from .pattern_monitor import PatternMonitor
from .policy import TrialPolicy
from .ports import CsrfTokenStore, RateLimitStore, TrialHistoryRepository
from .rate_limiter import RateLimiter
from .security_log import SecurityEventLog, mask_phone
from .validator import TrialSignupValidator

logger = logging.getLogger(__name__)

GENERIC_SYSTEM_ERROR = "An unexpected error occurred while creating the trial"


@dataclass
class TrialSignupService:
    """
    Domain service for business trial signup.

    Orchestrates the signup gates and persists the trial record once
    every gate has passed. Use TrialSignupService.create() to wire the
    gates from a TrialPolicy.
    """

    repository: TrialHistoryRepository
    validator: TrialSignupValidator
    rate_limiter: RateLimiter
    pattern_monitor: PatternMonitor
    eligibility: EligibilityEngine
    csrf: CsrfTokenManager
    policy: TrialPolicy = field(default_factory=TrialPolicy)
    clock: Clock = utc_now
    security_log: SecurityEventLog = field(default_factory=SecurityEventLog)

    @classmethod
    def create(
        cls,
        repository: TrialHistoryRepository,
        rate_limit_store: RateLimitStore,
        csrf_store: CsrfTokenStore,
        policy: TrialPolicy,
        clock: Clock = utc_now,
    ) -> "TrialSignupService":
        """Build the service and all of its gates from one policy."""
        security_log = SecurityEventLog(enabled=policy.security_logging_enabled, clock=clock)
        csrf = CsrfTokenManager(
            store=csrf_store,
            lifetime=policy.csrf_token_lifetime,
            clock=clock,
            security_log=security_log,
        )
        return cls(
            repository=repository,
            validator=TrialSignupValidator(
                csrf=csrf,
                blocked_phone_prefixes=policy.blocked_phone_prefixes,
                security_log=security_log,
            ),
            rate_limiter=RateLimiter(
                store=rate_limit_store,
                max_submissions=policy.rate_limit_max_submissions,
                window=policy.rate_limit_window,
                clock=clock,
                security_log=security_log,
            ),
            pattern_monitor=PatternMonitor(
                bot_patterns=policy.bot_user_agent_patterns,
                security_log=security_log,
            ),
            eligibility=EligibilityEngine.from_policy(
                repository, policy, clock=clock, security_log=security_log
            ),
            csrf=csrf,
            policy=policy,
            clock=clock,
            security_log=security_log,
        )

    def issue_csrf_token(self, session_id: str) -> str:
        """
        Issue a CSRF token for the trial activation form.

        Raises:
            CsrfStoreError: If the token cannot be stored
        """
        return self.csrf.issue_token(session_id)

    def submit_trial_signup(
        self, payload: Mapping[str, Any], context: SignupContext
    ) -> SignupOutcome:
        """
        Run one signup attempt through every gate.

        Args:
            payload: Raw form fields (business_name, phone_number,
                subscription_tier, csrf_token)
            context: Authenticated owner and request metadata

        Returns:
            SignupOutcome in state CREATED (with record) or REJECTED
            (with rejection)
        """
        owner_id = context.owner_id
        self._transition(SignupState.RECEIVED, owner_id)

        validation = self.validator.validate(payload, context.session_id)
        if not validation.valid or validation.sanitized is None:
            return self._reject(
                owner_id,
                SignupState.RECEIVED,
                RejectionKind.BAD_REQUEST,
                "Invalid trial signup data",
                {"errors": validation.errors},
            )
        request = validation.sanitized
        self._transition(SignupState.VALIDATED, owner_id)

        rate = self.rate_limiter.check_rate_limit(self.policy.trial_form_id, owner_id)
        if rate.degraded:
            logger.warning("Rate limiting unavailable, admitted signup attempt for %s", owner_id)
        if not rate.allowed:
            details: dict[str, Any] = {"remaining": rate.remaining}
            if rate.reset_time is not None:
                wait = (rate.reset_time - self.clock()).total_seconds()
                details["resetTime"] = rate.reset_time.isoformat()
                details["retryAfterSeconds"] = max(1, math.ceil(wait))
            return self._reject(
                owner_id,
                SignupState.VALIDATED,
                RejectionKind.TOO_MANY_REQUESTS,
                "Too many trial signup attempts. Please try again later.",
                details,
            )
        self._transition(SignupState.RATE_CHECKED, owner_id, remaining=rate.remaining)

        pattern = self.pattern_monitor.assess_pattern(
            owner_id, context.user_agent, context.source_address
        )
        interaction_suspicious = False
        if context.interaction is not None:
            interaction_suspicious = self.pattern_monitor.assess_interaction(
                context.interaction
            ).suspicious
        if pattern.suspicious or interaction_suspicious:
            logger.info(
                "Suspicious signup pattern for %s (user agent: %s, interaction: %s)",
                owner_id,
                pattern.reason,
                interaction_suspicious,
            )
        self._transition(
            SignupState.PATTERN_CHECKED,
            owner_id,
            suspicious=pattern.suspicious or interaction_suspicious,
        )

        decision = self.eligibility.check_eligibility(
            owner_id, request.phone_number, context.email
        )
        if not decision.eligible:
            kind = (
                RejectionKind.SERVER_ERROR
                if decision.code == SYSTEM_ERROR_CODE
                else RejectionKind.CONFLICT
            )
            return self._reject(
                owner_id,
                SignupState.PATTERN_CHECKED,
                kind,
                decision.reason or "Not eligible for a trial",
                {
                    "code": decision.code,
                    "details": decision.details or {},
                    "recommendations": decision.recommendations or [],
                },
            )
        self._transition(SignupState.ELIGIBILITY_CHECKED, owner_id)

        now = self.clock()
        trial = NewBusinessTrial(
            owner_id=owner_id,
            name=request.business_name,
            phone_number=request.phone_number,
            subscription_tier=request.subscription_tier,
            trial_active=True,
            trial_expires_at=now + self.policy.trial_length,
            created_at=now,
        )
        try:
            record = self.repository.create_trial(trial)
        except TrialAlreadyClaimed:
            return self._reject(
                owner_id,
                SignupState.ELIGIBILITY_CHECKED,
                RejectionKind.CONFLICT,
                "A trial is already active for this account or phone number",
                {"code": "trial_already_claimed", "details": {}, "recommendations": []},
            )
        except TrialStoreError:
            logger.exception("Failed to create trial for owner %s", owner_id)
            return self._reject(
                owner_id,
                SignupState.ELIGIBILITY_CHECKED,
                RejectionKind.SERVER_ERROR,
                GENERIC_SYSTEM_ERROR,
                {},
            )
        except Exception:
            logger.exception("Unexpected error creating trial for owner %s", owner_id)
            return self._reject(
                owner_id,
                SignupState.ELIGIBILITY_CHECKED,
                RejectionKind.SERVER_ERROR,
                GENERIC_SYSTEM_ERROR,
                {},
            )

        self._transition(
            SignupState.CREATED,
            owner_id,
            businessId=record.id,
            phoneNumber=mask_phone(record.phone_number),
            trialExpiresAt=record.trial_expires_at.isoformat(),
        )
        return SignupOutcome(state=SignupState.CREATED, record=record)

    def _transition(self, state: SignupState, owner_id: str, **data: Any) -> None:
        self.security_log.emit("trial_signup_transition", state=state.value, userId=owner_id, **data)

    def _reject(
        self,
        owner_id: str,
        from_state: SignupState,
        kind: RejectionKind,
        message: str,
        details: dict[str, Any],
    ) -> SignupOutcome:
        level = logging.ERROR if kind == RejectionKind.SERVER_ERROR else logging.WARNING
        self.security_log.emit(
            "trial_signup_rejected",
            level,
            userId=owner_id,
            fromState=from_state.value,
            kind=kind.value,
        )
        return SignupOutcome(
            state=SignupState.REJECTED,
            rejection=Rejection(kind=kind, message=message, details=details),
        )
