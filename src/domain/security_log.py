"""
Security event logging for the trial signup gates.

Events are emitted through the standard logging module as
"[SECURITY] <event>" records carrying the event payload in `extra`,
so any handler or formatter can pick the structured fields up.
Personal data is masked before it reaches the payload.
"""

import logging
from dataclasses import dataclass
from typing import Any

from .models import Clock, utc_now

logger = logging.getLogger("src.security")


def mask_phone(phone_number: str | None) -> str | None:
    """Keep the first four characters (country code) and hide the rest."""
    if not phone_number:
        return phone_number
    return phone_number[:4] + "****"


def mask_address(address: str | None) -> str | None:
    if not address:
        return address
    return address[:10] + "***"


def mask_token(token: str | None) -> str | None:
    if not token:
        return token
    return token[:8] + "***"


@dataclass
class SecurityEventLog:
    """
    Emits structured security events when enabled.

    Disabled logs drop events silently; they are observability only
    and never influence a signup decision.
    """

    enabled: bool = False
    clock: Clock = utc_now

    def emit(self, event: str, level: int = logging.INFO, **data: Any) -> None:
        if not self.enabled:
            return
        payload = {"event": event, "timestamp": self.clock().isoformat(), **data}
        logger.log(level, "[SECURITY] %s", event, extra={"security_event": payload})

    def warning(self, event: str, **data: Any) -> None:
        self.emit(event, logging.WARNING, **data)

    def error(self, event: str, **data: Any) -> None:
        self.emit(event, logging.ERROR, **data)
