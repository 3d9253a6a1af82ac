"""
Signup pattern monitor - Advisory bot heuristics.

Nothing here blocks a signup. Results are logged by the orchestrator
and are available to anyone reviewing security events.
"""

from dataclasses import dataclass, field

from .models import InteractionAssessment, InteractionSignals, PatternAssessment
from .policy import DEFAULT_BOT_PATTERNS
from .security_log import SecurityEventLog, mask_address

MIN_FILL_TIME_MS = 3000
MIN_MOUSE_MOVEMENTS = 3
MIN_KEYBOARD_EVENTS = 5
MIN_FIELD_FOCUS_EVENTS = 2
MIN_INTERACTION_REASONS = 2


@dataclass
class PatternMonitor:
    bot_patterns: tuple[str, ...] = DEFAULT_BOT_PATTERNS
    security_log: SecurityEventLog = field(default_factory=SecurityEventLog)

    def assess_pattern(
        self,
        owner_id: str,
        user_agent: str | None = None,
        source_address: str | None = None,
    ) -> PatternAssessment:
        """Flag bot, crawler or automation user agents (case-insensitive substring match)."""
        self.security_log.emit(
            "trial_pattern_monitoring",
            userId=owner_id,
            userAgent=user_agent[:50] if user_agent else None,
            ipAddress=mask_address(source_address),
        )

        if user_agent:
            lowered = user_agent.lower()
            if any(pattern.lower() in lowered for pattern in self.bot_patterns):
                self.security_log.warning(
                    "suspicious_user_agent", userAgent=user_agent[:50], userId=owner_id
                )
                return PatternAssessment(
                    suspicious=True, reason="Automated/bot user agent detected"
                )

        return PatternAssessment(suspicious=False)

    def assess_interaction(self, signals: InteractionSignals) -> InteractionAssessment:
        """
        Judge client-reported form interaction counters.

        A single weak signal is common for real users (autofill, paste),
        so at least two are required before flagging.
        """
        reasons: list[str] = []

        if signals.form_load_time is not None:
            if signals.submission_time - signals.form_load_time < MIN_FILL_TIME_MS:
                reasons.append("Form submitted too quickly")

        if signals.mouse_movements is not None and signals.mouse_movements < MIN_MOUSE_MOVEMENTS:
            reasons.append("Insufficient mouse interaction")

        if signals.keyboard_events is not None and signals.keyboard_events < MIN_KEYBOARD_EVENTS:
            reasons.append("Insufficient keyboard interaction")

        if (
            signals.field_focus_events is not None
            and signals.field_focus_events < MIN_FIELD_FOCUS_EVENTS
        ):
            reasons.append("Insufficient field interaction")

        suspicious = len(reasons) >= MIN_INTERACTION_REASONS
        if suspicious:
            self.security_log.warning("suspicious_form_submission", reasons=reasons)
        return InteractionAssessment(suspicious=suspicious, reasons=reasons)
