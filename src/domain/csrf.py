"""
CSRF token manager - Issues and checks per-session form tokens.

Tokens are generated server-side, stored with their issue time in a
CsrfTokenStore, and compared in constant time on submission.
"""

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import timedelta

from .exceptions import CsrfStoreError
from .models import Clock, CsrfCheck, utc_now
from .ports import CsrfTokenStore
from .security_log import SecurityEventLog, mask_token

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 32
_TOKEN_ALPHABET = string.ascii_letters + string.digits


@dataclass
class CsrfTokenManager:
    """Issues CSRF tokens and checks submitted ones against the session's token."""

    store: CsrfTokenStore
    lifetime: timedelta = timedelta(minutes=30)
    clock: Clock = utc_now
    security_log: SecurityEventLog = field(default_factory=SecurityEventLog)

    def issue_token(self, session_id: str) -> str:
        """
        Generate and store a fresh token for session_id.

        Raises:
            CsrfStoreError: If the token cannot be stored
        """
        token = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))
        self.store.save_token(session_id, token, self.clock())
        self.security_log.emit("csrf_token_generated", tokenId=mask_token(token))
        return token

    def check_token(self, session_id: str | None, submitted: str | None) -> CsrfCheck:
        """
        Compare a submitted token with the one issued for session_id.

        Expired tokens are deleted from the store. Store failures are
        reported as UNAVAILABLE rather than raised.
        """
        if not submitted:
            self.security_log.warning("csrf_validation_failed", reason="no_submitted_token")
            return CsrfCheck.MISSING

        if not session_id:
            self.security_log.warning("csrf_validation_failed", reason="no_session")
            return CsrfCheck.NOT_ISSUED

        try:
            stored = self.store.load_token(session_id)
        except CsrfStoreError:
            logger.exception("CSRF token store unavailable")
            return CsrfCheck.UNAVAILABLE

        if stored is None:
            self.security_log.warning("csrf_validation_failed", reason="no_stored_token")
            return CsrfCheck.NOT_ISSUED

        token, issued_at = stored
        age = self.clock() - issued_at
        if age > self.lifetime:
            try:
                self.store.delete_token(session_id)
            except CsrfStoreError:
                logger.exception("Failed to delete expired CSRF token")
            self.security_log.warning("csrf_token_expired", ageSeconds=int(age.total_seconds()))
            return CsrfCheck.EXPIRED

        if not secrets.compare_digest(token.encode(), submitted.encode()):
            # Logged regardless of security_logging_enabled
            logger.warning("CSRF token mismatch for session")
            self.security_log.warning(
                "csrf_validation_failed",
                reason="token_mismatch",
                submittedId=mask_token(submitted),
                storedId=mask_token(token),
            )
            return CsrfCheck.MISMATCH

        self.security_log.emit("csrf_validation_success", tokenId=mask_token(submitted))
        return CsrfCheck.VALID
