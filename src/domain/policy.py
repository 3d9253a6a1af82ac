"""
Trial policy - Explicit configuration for the signup gates.

Built once at startup (see Settings.to_policy) and passed into the
domain services. Domain code never reads the environment itself.
"""

from dataclasses import dataclass
from datetime import timedelta

DEFAULT_BOT_PATTERNS = ("bot", "crawler", "spider", "scraper", "automated")
DEFAULT_BLOCKED_PHONE_PREFIXES = ("+1900", "+1976")


@dataclass(frozen=True)
class TrialPolicy:
    """Tunable limits for trial signup."""

    trial_days: int = 14
    max_trials_per_user: int = 3
    phone_reuse_days: int = 30
    trial_cooldown_days: int = 30

    rate_limit_max_submissions: int = 5
    rate_limit_window_seconds: int = 15 * 60
    trial_form_id: str = "trial_activation"

    csrf_token_lifetime_seconds: int = 30 * 60

    blocked_phone_prefixes: tuple[str, ...] = DEFAULT_BLOCKED_PHONE_PREFIXES
    bot_user_agent_patterns: tuple[str, ...] = DEFAULT_BOT_PATTERNS

    security_logging_enabled: bool = False

    @property
    def trial_length(self) -> timedelta:
        return timedelta(days=self.trial_days)

    @property
    def phone_reuse_window(self) -> timedelta:
        return timedelta(days=self.phone_reuse_days)

    @property
    def trial_cooldown(self) -> timedelta:
        return timedelta(days=self.trial_cooldown_days)

    @property
    def rate_limit_window(self) -> timedelta:
        return timedelta(seconds=self.rate_limit_window_seconds)

    @property
    def csrf_token_lifetime(self) -> timedelta:
        return timedelta(seconds=self.csrf_token_lifetime_seconds)
