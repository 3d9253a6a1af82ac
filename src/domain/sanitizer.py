"""
Input sanitizer - Cleans user-submitted business names and phone numbers.

Both sanitizers are pure and total: they accept anything, never raise,
and report each transformation that actually changed the value as an
informational issue tag. Callers decide whether issues are fatal.
"""

import re
from typing import Any

NAME_MAX_LENGTH = 100
PHONE_MAX_LENGTH = 16  # "+" followed by at most 15 digits (E.164)

_HTML_TAG = re.compile(r"<[^>]*>")
_SCRIPT_PATTERNS = (
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"expression\s*\(", re.IGNORECASE),
)
_DANGEROUS_CHARS = re.compile(r"[<>'\"&]")
_WHITESPACE = re.compile(r"\s+")
_NOT_PHONE_CHAR = re.compile(r"[^0-9+]")

ISSUE_HTML = "HTML tags removed"
ISSUE_SCRIPT = "Script-like content removed"
ISSUE_DANGEROUS = "Dangerous characters removed"
ISSUE_TRUNCATED = f"Input truncated to {NAME_MAX_LENGTH} characters"

ISSUE_NON_DIGIT = "Non-digit characters removed"
ISSUE_MULTIPLE_PLUS = "Multiple + signs normalized"
ISSUE_PLUS_MOVED = "Plus sign moved to beginning"
ISSUE_PHONE_TRUNCATED = "Phone number truncated"


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _note(issues: list[str], issue: str) -> None:
    if issue not in issues:
        issues.append(issue)


def _clean_name_once(value: str, issues: list[str]) -> str:
    if _HTML_TAG.search(value):
        _note(issues, ISSUE_HTML)
        value = _HTML_TAG.sub("", value)

    for pattern in _SCRIPT_PATTERNS:
        if pattern.search(value):
            _note(issues, ISSUE_SCRIPT)
            value = pattern.sub("", value)

    if _DANGEROUS_CHARS.search(value):
        _note(issues, ISSUE_DANGEROUS)
        value = _DANGEROUS_CHARS.sub("", value)

    value = _WHITESPACE.sub(" ", value).strip()

    if len(value) > NAME_MAX_LENGTH:
        _note(issues, ISSUE_TRUNCATED)
        value = value[:NAME_MAX_LENGTH].rstrip()

    return value


def sanitize_name(value: Any) -> tuple[str, list[str]]:
    """
    Sanitize a business name.

    Removes tag-like markup, script triggers and HTML-significant
    characters, normalizes whitespace and caps the length.

    A removal can expose a new pattern ("java&script:" becomes
    "javascript:" once "&" is stripped), so the pass is repeated until
    the value stops changing. Each pass can only shorten the string.

    Returns:
        Tuple of (sanitized name, issue tags in first-seen order)
    """
    issues: list[str] = []
    current = _as_text(value)
    while True:
        cleaned = _clean_name_once(current, issues)
        if cleaned == current:
            return cleaned, issues
        current = cleaned


def sanitize_phone(value: Any) -> tuple[str, list[str]]:
    """
    Sanitize a phone number towards E.164 shape.

    Keeps ASCII digits and "+", collapses any "+" signs into a single
    leading one and truncates to the E.164 maximum length. Does not
    check that the result is a valid number.

    Returns:
        Tuple of (sanitized phone number, issue tags)
    """
    issues: list[str] = []
    text = _as_text(value)

    cleaned = _NOT_PHONE_CHAR.sub("", text)
    if len(cleaned) != len(text):
        issues.append(ISSUE_NON_DIGIT)

    plus_count = cleaned.count("+")
    if plus_count > 1:
        issues.append(ISSUE_MULTIPLE_PLUS)
        cleaned = "+" + cleaned.replace("+", "")
    elif plus_count == 1 and not cleaned.startswith("+"):
        issues.append(ISSUE_PLUS_MOVED)
        cleaned = "+" + cleaned.replace("+", "")

    if len(cleaned) > PHONE_MAX_LENGTH:
        issues.append(ISSUE_PHONE_TRUNCATED)
        cleaned = cleaned[:PHONE_MAX_LENGTH]

    return cleaned, issues


def format_to_e164(phone_number: str) -> str | None:
    """
    Best-effort formatting of a locally written number into E.164.

    10-digit numbers are assumed to be US numbers and get "+1";
    11-digit numbers starting with 1 get "+". Numbers that already
    carry a "+" are returned cleaned when their length is plausible.

    Returns:
        The formatted number, or None if it cannot be formatted
    """
    cleaned = _NOT_PHONE_CHAR.sub("", phone_number)

    if not cleaned.startswith("+"):
        if len(cleaned) == 10:
            return f"+1{cleaned}"
        if len(cleaned) == 11 and cleaned.startswith("1"):
            return f"+{cleaned}"

    if cleaned.startswith("+") and 8 <= len(cleaned) <= 15:
        return cleaned

    return None
