"""
Trial signup validator - Field-level checks for a trial activation form.

Every rule runs on every submission and errors accumulate per field,
so the caller can show all problems at once. The validator checks the
sanitizer's output; it never reformats a value into validity.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .csrf import CsrfTokenManager
from .models import CsrfCheck, SubscriptionTier, TrialSignupRequest, ValidationResult
from .policy import DEFAULT_BLOCKED_PHONE_PREFIXES
from .sanitizer import sanitize_name, sanitize_phone
from .security_log import SecurityEventLog

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$", re.ASCII)
NAME_MIN_LENGTH = 2

FIELD_CSRF = "csrf"
FIELD_BUSINESS_NAME = "business_name"
FIELD_PHONE_NUMBER = "phone_number"
FIELD_SUBSCRIPTION_TIER = "subscription_tier"

CSRF_MESSAGES = {
    CsrfCheck.MISSING: "Security token missing. Please refresh and try again.",
    CsrfCheck.NOT_ISSUED: "No security token was issued for this session. Please refresh and try again.",
    CsrfCheck.EXPIRED: "Security token expired. Please refresh and try again.",
    CsrfCheck.MISMATCH: "Invalid security token. Please refresh and try again.",
    CsrfCheck.UNAVAILABLE: "Security token could not be verified. Please try again later.",
}

_TIERS = {tier.value: tier for tier in SubscriptionTier}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    text = value if isinstance(value, str) else str(value)
    return not text.strip()


@dataclass
class TrialSignupValidator:
    """
    Validates raw trial signup payloads.

    Payload keys: business_name, phone_number, subscription_tier,
    csrf_token. Anything that is not a mapping is validated as an
    empty payload.
    """

    csrf: CsrfTokenManager
    blocked_phone_prefixes: tuple[str, ...] = DEFAULT_BLOCKED_PHONE_PREFIXES
    security_log: SecurityEventLog = field(default_factory=SecurityEventLog)

    def validate(self, payload: Any, session_id: str | None = None) -> ValidationResult:
        data: Mapping[str, Any] = payload if isinstance(payload, Mapping) else {}
        errors: dict[str, list[str]] = {}

        csrf_token = data.get("csrf_token")
        if not isinstance(csrf_token, str):
            csrf_token = None
        csrf_result = self.csrf.check_token(session_id, csrf_token)
        if csrf_result != CsrfCheck.VALID:
            errors[FIELD_CSRF] = [CSRF_MESSAGES[csrf_result]]

        name, name_errors = self._check_name(data.get("business_name"))
        if name_errors:
            errors[FIELD_BUSINESS_NAME] = name_errors

        phone, phone_errors = self._check_phone(data.get("phone_number"))
        if phone_errors:
            errors[FIELD_PHONE_NUMBER] = phone_errors

        tier = self._check_tier(data.get("subscription_tier"))
        if tier is None:
            errors[FIELD_SUBSCRIPTION_TIER] = ["Invalid subscription tier"]

        if errors:
            self.security_log.emit(
                "form_validation_failed",
                errorFields=sorted(errors),
                errorCount=sum(len(messages) for messages in errors.values()),
            )
            return ValidationResult(valid=False, errors=errors)

        sanitized = TrialSignupRequest(
            business_name=name,
            phone_number=phone,
            subscription_tier=tier,
            csrf_token=csrf_token,
        )
        return ValidationResult(valid=True, errors={}, sanitized=sanitized)

    def _check_name(self, raw: Any) -> tuple[str, list[str]]:
        if _is_blank(raw):
            return "", ["Business name is required"]

        name, issues = sanitize_name(raw)
        errors = list(issues)
        if len(name) < NAME_MIN_LENGTH:
            errors.append(f"Business name must be at least {NAME_MIN_LENGTH} characters")
        return name, errors

    def _check_phone(self, raw: Any) -> tuple[str, list[str]]:
        if _is_blank(raw):
            return "", ["Phone number is required"]

        phone, issues = sanitize_phone(raw)
        errors = list(issues)
        if not E164_PATTERN.match(phone):
            errors.append("Phone number must be in valid international format")
        elif phone.startswith(self.blocked_phone_prefixes):
            errors.append("Phone number not allowed for trials")
            self.security_log.warning(
                "suspicious_phone_number", phonePrefix=phone[:5], reason="premium_number"
            )
        return phone, errors

    def _check_tier(self, raw: Any) -> SubscriptionTier | None:
        if not isinstance(raw, str):
            return None
        return _TIERS.get(raw.strip().lower())
