"""
sessguard - Policy types.

Defines the policies that govern session behaviour:
- TransportPolicy: How the identifier travels (cookie / header)
- SessionPolicy: Expiry, id regeneration and fingerprint checks
- Verdict: Outcome of evaluating a resumed session

The Session engine only maintains the metadata (traces, counter,
fingerprints). Policies consume it; SessionGuard enforces the verdict.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Literal, TYPE_CHECKING

if TYPE_CHECKING:
    from .config import SessionConfig
    from .session import Session


# ============================================================================
# TransportPolicy
# ============================================================================

@dataclass
class TransportPolicy:
    """
    Controls how the session identifier travels across the network.

    Attributes:
        adapter: Id store type
        cookie_name: Name of session cookie (if adapter=cookie)
        cookie_httponly: HttpOnly flag (prevents XSS)
        cookie_secure: Secure flag (HTTPS only)
        cookie_samesite: SameSite policy (CSRF protection)
        cookie_path: Cookie path
        cookie_domain: Cookie domain
        cookie_max_age: Cookie lifetime in seconds (None = browser session)
        header_name: Header name (if adapter=header)

    Example:
        >>> policy = TransportPolicy(
        ...     adapter="cookie",
        ...     cookie_name="sid",
        ...     cookie_secure=True,
        ...     cookie_samesite="strict",
        ... )
    """

    adapter: Literal["cookie", "header", "memory"] = "cookie"

    cookie_name: str = "sessguard"
    cookie_httponly: bool = True
    cookie_secure: bool = True
    cookie_samesite: Literal["strict", "lax", "none"] | None = "lax"
    cookie_path: str = "/"
    cookie_domain: str | None = None
    cookie_max_age: int | None = None

    header_name: str = "X-Session-ID"

    @classmethod
    def from_config(cls, config: SessionConfig) -> TransportPolicy:
        return cls(
            adapter=config.id_store,
            cookie_name=config.cookie_name,
            cookie_httponly=config.cookie_httponly,
            cookie_secure=config.cookie_secure,
            cookie_samesite=config.cookie_samesite,
            cookie_path=config.cookie_path,
            cookie_domain=config.cookie_domain,
            cookie_max_age=config.cookie_max_age,
            header_name=config.header_name,
        )


# ============================================================================
# Verdict
# ============================================================================

class Verdict(str, Enum):
    """Outcome of evaluating a session against a SessionPolicy."""

    ACCEPT = "accept"
    EXPIRED = "expired"
    INVALID_FINGERPRINT = "invalid_fingerprint"

    @property
    def accepted(self) -> bool:
        return self is Verdict.ACCEPT


# ============================================================================
# SessionPolicy
# ============================================================================

@dataclass
class SessionPolicy:
    """
    Validation and rotation rules for resumed sessions.

    Attributes:
        idle_ttl: Max time between two requests (None = unlimited)
        max_lifetime: Max time since the first trace (None = unlimited)
        id_requests_limit: Regenerate the id every N requests
        id_ttl: Regenerate the id when it is older than this
        check_fingerprint: Reject sessions whose fingerprint changed

    Example:
        >>> policy = SessionPolicy(
        ...     idle_ttl=timedelta(minutes=30),
        ...     id_requests_limit=10,
        ... )
        >>> policy.evaluate(session)
        <Verdict.ACCEPT: 'accept'>
    """

    idle_ttl: timedelta | None = None
    max_lifetime: timedelta | None = None
    id_requests_limit: int | None = None
    id_ttl: timedelta | None = None
    check_fingerprint: bool = True

    def evaluate(self, session: Session, now: datetime | None = None) -> Verdict:
        """
        Validate an opened session.

        A session created during this request is trusted by construction.
        For a resumed session the idle time is measured from the last
        activity recorded before this request.

        Args:
            session: Opened session
            now: Current time (defaults to utcnow)

        Returns:
            Verdict
        """
        if not session.is_resumed():
            return Verdict.ACCEPT

        if now is None:
            now = datetime.now(timezone.utc)

        if self.idle_ttl is not None and session.previous_trace is not None:
            if now - session.previous_trace > self.idle_ttl:
                return Verdict.EXPIRED

        if self.max_lifetime is not None and session.first_trace is not None:
            if now - session.first_trace > self.max_lifetime:
                return Verdict.EXPIRED

        if self.check_fingerprint and not session.fingerprint_matches():
            return Verdict.INVALID_FINGERPRINT

        return Verdict.ACCEPT

    def should_regenerate(self, session: Session, now: datetime | None = None) -> bool:
        """
        Determine if the session ID should rotate.

        Args:
            session: Opened session
            now: Current time (defaults to utcnow)

        Returns:
            True if rotation should happen, False otherwise
        """
        # The counter never resets, so rotate on every Nth request.
        if self.id_requests_limit:
            if session.requests_counter % self.id_requests_limit == 0:
                return True

        if self.id_ttl is not None and session.regeneration_trace is not None:
            if now is None:
                now = datetime.now(timezone.utc)
            if now - session.regeneration_trace >= self.id_ttl:
                return True

        return False

    @classmethod
    def from_config(cls, config: SessionConfig) -> SessionPolicy:
        """
        Create policy from configuration (durations in seconds).

        Args:
            config: Session configuration

        Returns:
            SessionPolicy instance
        """

        def seconds(value: int | float | None) -> timedelta | None:
            return timedelta(seconds=value) if value else None

        return cls(
            idle_ttl=seconds(config.idle_ttl),
            max_lifetime=seconds(config.max_lifetime),
            id_requests_limit=config.id_requests_limit or None,
            id_ttl=seconds(config.id_ttl),
            check_fingerprint=config.check_fingerprint,
        )
