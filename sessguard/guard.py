"""
sessguard - Policy enforcement.

SessionGuard wraps the engine's open/close with a SessionPolicy:
resumed sessions that are expired or presented by a different client
are destroyed (and optionally replaced), and identifiers are rotated
when the policy asks for it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from .faults import SessionExpiredFault, SessionFingerprintMismatchFault, hash_session_id
from .listener import EVENT_EXPIRED, EVENT_INVALID_FINGERPRINT
from .policy import SessionPolicy, Verdict

if TYPE_CHECKING:
    from .session import Session


class SessionGuard:
    """
    Applies policy verdicts to sessions.

    Args:
        policy: Validation and rotation rules
        strict: Raise a fault on rejection instead of silently starting over
        logger: Optional logger

    Example:
        >>> guard = SessionGuard(SessionPolicy(idle_ttl=timedelta(minutes=30)))
        >>> guard.open(session, auto_create=True)
        True
        >>> # ... handler mutates session ...
        >>> guard.close(session)
    """

    def __init__(
        self,
        policy: SessionPolicy | None = None,
        strict: bool = False,
        logger: logging.Logger | None = None,
    ):
        self.policy = policy or SessionPolicy()
        self.strict = strict
        self.logger = logger or logging.getLogger("sessguard.guard")

    def open(self, session: Session, auto_create: bool = False, now: datetime | None = None) -> bool:
        """
        Open the session and validate it if it was resumed.

        Returns:
            Whether the session is opened afterwards

        Raises:
            SessionExpiredFault: Rejected as expired (strict mode)
            SessionFingerprintMismatchFault: Rejected as hijacked (strict mode)
        """
        if session.is_opened():
            return True

        session.open(auto_create)
        if not session.is_opened() or not session.is_resumed():
            return session.is_opened()

        verdict = self.policy.evaluate(session, now)
        if verdict.accepted:
            return True

        self.reject(session, verdict)

        if auto_create:
            session.create()
        return session.is_opened()

    def reject(self, session: Session, verdict: Verdict) -> None:
        """
        Destroy a session that failed validation.

        Raises:
            SessionExpiredFault: In strict mode, for expired sessions
            SessionFingerprintMismatchFault: In strict mode, for fingerprint mismatch
        """
        session_id = session.get_id()

        if verdict is Verdict.INVALID_FINGERPRINT:
            self.logger.warning("Fingerprint mismatch for session %s", hash_session_id(session_id))
            session.listener.trigger(EVENT_INVALID_FINGERPRINT, session)
            fault = SessionFingerprintMismatchFault(session_id=session_id)
        else:
            self.logger.info("Session %s expired", hash_session_id(session_id))
            session.listener.trigger(EVENT_EXPIRED, session)
            fault = SessionExpiredFault(session_id=session_id)

        session.destroy()

        if self.strict:
            raise fault

    def close(self, session: Session, now: datetime | None = None) -> None:
        """Rotate the identifier if due, then save and close."""
        if not session.is_opened():
            return

        if self.policy.should_regenerate(session, now):
            session.regenerate_id()

        session.close()
