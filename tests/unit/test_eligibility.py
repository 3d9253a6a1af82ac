"""
Unit tests for EligibilityEngine and its rules.

Tests verify each rule in isolation, rule precedence, phone reuse
scoping, lazy history loading and fail-closed behavior.
"""

import logging
from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest

from src.adapters.memory import InMemoryTrialRepository
from src.domain.eligibility import (
    SYSTEM_ERROR_CODE,
    ActiveTrialRule,
    EligibilityEngine,
    PhoneRecentlyUsedRule,
    RuleFailed,
    default_rules,
)
from src.domain.exceptions import TrialStoreError
from src.domain.models import BusinessTrialRecord, SubscriptionTier
from src.domain.policy import TrialPolicy
from src.domain.security_log import SecurityEventLog

PHONE = "+18186519003"


def make_record(
    owner_id: str,
    created_at: datetime,
    phone_number: str = PHONE,
    trial_active: bool = True,
    trial_days: int = 14,
    record_id: str | None = None,
) -> BusinessTrialRecord:
    return BusinessTrialRecord(
        id=record_id or f"{owner_id}-{created_at.isoformat()}-{phone_number}",
        owner_id=owner_id,
        name="Acme Plumbing",
        phone_number=phone_number,
        subscription_tier=SubscriptionTier.FREE,
        trial_active=trial_active,
        trial_expires_at=created_at + timedelta(days=trial_days),
        created_at=created_at,
    )


def engine_for(records: list[BusinessTrialRecord], clock) -> EligibilityEngine:
    return EligibilityEngine.from_policy(InMemoryTrialRepository(records), TrialPolicy(), clock=clock)


class TestEligible:
    """Tests for approvals."""

    def test_empty_history_is_eligible(self, clock) -> None:
        decision = engine_for([], clock).check_eligibility("owner-1", PHONE)
        assert decision.eligible is True
        assert decision.reason is None
        assert decision.details is None

    def test_old_inactive_trial_is_eligible(self, clock) -> None:
        old = make_record("owner-1", clock.now - timedelta(days=60), trial_active=False)
        decision = engine_for([old], clock).check_eligibility("owner-1", PHONE)
        assert decision.eligible is True

    def test_phone_used_long_ago_by_other_owner_is_eligible(self, clock) -> None:
        old = make_record("owner-2", clock.now - timedelta(days=31))
        decision = engine_for([old], clock).check_eligibility("owner-1", PHONE)
        assert decision.eligible is True


class TestActiveTrialRule:
    """Tests for rule 1."""

    def test_running_trial_denies(self, clock) -> None:
        running = make_record("owner-1", clock.now - timedelta(days=2))
        decision = engine_for([running], clock).check_eligibility("owner-1", "+14155550100")

        assert decision.eligible is False
        assert decision.code == "active_trial_exists"
        assert decision.reason == "You already have an active trial"
        assert decision.details == {"activeTrials": 1}
        assert decision.recommendations

    def test_expired_but_flagged_active_is_not_running(self, clock) -> None:
        lapsed = make_record("owner-1", clock.now - timedelta(days=20))
        assert lapsed.is_running(clock.now) is False

        decision = engine_for([lapsed], clock).check_eligibility("owner-1", "+14155550100")

        # Lapsed trial is still inside the 30-day cooldown
        assert decision.code == "recent_trial_created"

    def test_rule_passes_without_history(self, clock) -> None:
        engine = EligibilityEngine(
            repository=InMemoryTrialRepository(), rules=(ActiveTrialRule(),), clock=clock
        )
        assert engine.check_eligibility("owner-1", PHONE).eligible is True


class TestPhoneRecentlyUsedRule:
    """Tests for rule 2."""

    def test_other_owner_recent_phone_denies(self, clock) -> None:
        other = make_record("owner-1", clock.now - timedelta(days=10))
        decision = engine_for([other], clock).check_eligibility("owner-2", PHONE)

        assert decision.eligible is False
        assert decision.code == "phone_recently_used"
        assert decision.details == {"recentUsage": 1}

    def test_same_owner_hits_active_trial_first(self, clock) -> None:
        own = make_record("owner-1", clock.now - timedelta(days=10))
        decision = engine_for([own], clock).check_eligibility("owner-1", PHONE)
        assert decision.code == "active_trial_exists"

    def test_same_owner_never_triggers_phone_rule(self, clock) -> None:
        own = make_record("owner-1", clock.now - timedelta(days=10))
        engine = EligibilityEngine(
            repository=InMemoryTrialRepository([own]),
            rules=(PhoneRecentlyUsedRule(),),
            clock=clock,
        )
        assert engine.check_eligibility("owner-1", PHONE).eligible is True

    def test_inactive_phone_trial_ignored(self, clock) -> None:
        other = make_record("owner-1", clock.now - timedelta(days=10), trial_active=False)
        decision = engine_for([other], clock).check_eligibility("owner-2", PHONE)
        assert decision.eligible is True


class TestLifetimeTrialCapRule:
    """Tests for rule 3."""

    def test_cap_reached_denies(self, clock) -> None:
        history = [
            make_record(
                "owner-1",
                clock.now - timedelta(days=days),
                phone_number=f"+1415555010{i}",
                trial_active=False,
            )
            for i, days in enumerate((100, 200, 300))
        ]
        decision = engine_for(history, clock).check_eligibility("owner-1", PHONE)

        assert decision.code == "max_trials_exceeded"
        assert decision.details == {"totalTrials": 3, "maxAllowed": 3}
        assert "(3)" in decision.reason

    def test_below_cap_allowed(self, clock) -> None:
        history = [
            make_record("owner-1", clock.now - timedelta(days=100), trial_active=False),
            make_record("owner-1", clock.now - timedelta(days=200), trial_active=False),
        ]
        assert engine_for(history, clock).check_eligibility("owner-1", PHONE).eligible is True

    def test_cap_configurable(self, clock) -> None:
        history = [make_record("owner-1", clock.now - timedelta(days=100), trial_active=False)]
        engine = EligibilityEngine.from_policy(
            InMemoryTrialRepository(history), TrialPolicy(max_trials_per_user=1), clock=clock
        )
        assert engine.check_eligibility("owner-1", PHONE).code == "max_trials_exceeded"


class TestRecentTrialCooldownRule:
    """Tests for rule 4."""

    def test_recent_inactive_trial_denies(self, clock) -> None:
        recent = make_record("owner-1", clock.now - timedelta(days=5), trial_active=False)
        decision = engine_for([recent], clock).check_eligibility("owner-1", PHONE)

        assert decision.code == "recent_trial_created"
        assert decision.details == {"recentTrials": 1}

    def test_cooldown_boundary(self, clock) -> None:
        at_edge = make_record("owner-1", clock.now - timedelta(days=30), trial_active=False)
        assert engine_for([at_edge], clock).check_eligibility("owner-1", PHONE).eligible is True


class TestPrecedence:
    """Tests for rule ordering."""

    def test_active_trial_wins_over_lifetime_cap(self, clock) -> None:
        history = [
            make_record("owner-1", clock.now - timedelta(days=1)),
            make_record("owner-1", clock.now - timedelta(days=100), trial_active=False),
            make_record("owner-1", clock.now - timedelta(days=200), trial_active=False),
        ]
        decision = engine_for(history, clock).check_eligibility("owner-1", PHONE)
        assert decision.code == "active_trial_exists"

    def test_phone_rule_wins_over_lifetime_cap(self, clock) -> None:
        history = [
            make_record("owner-2", clock.now - timedelta(days=3)),
            *[
                make_record(
                    "owner-1",
                    clock.now - timedelta(days=100 * n),
                    phone_number="+14155550100",
                    trial_active=False,
                )
                for n in (1, 2, 3)
            ],
        ]
        decision = engine_for(history, clock).check_eligibility("owner-1", PHONE)
        assert decision.code == "phone_recently_used"

    def test_default_rule_order(self) -> None:
        codes = [rule.code for rule in default_rules(TrialPolicy())]
        assert codes == [
            "active_trial_exists",
            "phone_recently_used",
            "max_trials_exceeded",
            "recent_trial_created",
        ]

    def test_custom_rule_appended(self, clock) -> None:
        class DenyEveryone:
            code = "closed"

            def evaluate(self, context):
                return RuleFailed(code=self.code, reason="Trials are paused", details={})

        engine = EligibilityEngine(
            repository=InMemoryTrialRepository(),
            rules=(*default_rules(TrialPolicy()), DenyEveryone()),
            clock=clock,
        )
        decision = engine.check_eligibility("owner-1", PHONE)
        assert decision.code == "closed"
        assert decision.reason == "Trials are paused"

    def test_custom_rule_details_logged_nested(self, clock, caplog) -> None:
        """Rule details may reuse event field names without clobbering them."""

        class DenyWithContext:
            code = "region_closed"

            def evaluate(self, context):
                details = {"reason": "region", "userId": "someone-else", "phoneNumber": "raw"}
                return RuleFailed(code=self.code, reason="Region closed", details=details)

        engine = EligibilityEngine(
            repository=InMemoryTrialRepository(),
            rules=(DenyWithContext(),),
            clock=clock,
            security_log=SecurityEventLog(enabled=True, clock=clock),
        )

        with caplog.at_level(logging.WARNING, logger="src.security"):
            decision = engine.check_eligibility("owner-1", PHONE)

        assert decision.code == "region_closed"
        assert decision.details["userId"] == "someone-else"
        (event,) = [
            r.security_event
            for r in caplog.records
            if r.name == "src.security" and r.security_event["event"] == "trial_eligibility_denied"
        ]
        assert event["reason"] == "region_closed"
        assert event["userId"] == "owner-1"
        assert event["details"]["phoneNumber"] == "raw"


class TestHistoryLoading:
    """Tests for lazy history reads."""

    def test_owner_history_read_once(self, clock) -> None:
        repo = Mock()
        repo.list_owner_trials.return_value = []
        repo.list_phone_trials.return_value = []
        engine = EligibilityEngine(repository=repo, clock=clock)

        engine.check_eligibility("owner-1", PHONE)

        repo.list_owner_trials.assert_called_once_with("owner-1")
        repo.list_phone_trials.assert_called_once_with(PHONE, active_only=True)

    def test_phone_history_not_read_when_rule_one_fails(self, clock) -> None:
        repo = Mock()
        repo.list_owner_trials.return_value = [make_record("owner-1", clock.now)]
        engine = EligibilityEngine(repository=repo, clock=clock)

        engine.check_eligibility("owner-1", PHONE)

        repo.list_phone_trials.assert_not_called()


class TestFailClosed:
    """Tests for store failures."""

    @pytest.mark.parametrize("failing", ["list_owner_trials", "list_phone_trials"])
    def test_store_error_denies(self, clock, failing: str) -> None:
        repo = Mock()
        repo.list_owner_trials.return_value = []
        repo.list_phone_trials.return_value = []
        getattr(repo, failing).side_effect = TrialStoreError("timeout")
        engine = EligibilityEngine(repository=repo, clock=clock)

        decision = engine.check_eligibility("owner-1", PHONE)

        assert decision.eligible is False
        assert decision.code == SYSTEM_ERROR_CODE
        assert decision.reason == "Unable to verify trial eligibility. Please try again later."
        assert "timeout" not in str(decision.details)
