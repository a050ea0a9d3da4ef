"""
sessguard - Fault definitions.

Defines:
- Fault base class (structured fault objects)
- FaultDomain (explicit fault domains)
- Severity levels
- Session fault taxonomy (transport, storage, trust, lifecycle)

All session errors are structured Faults, not bare exceptions.
"""

from __future__ import annotations

import hashlib
from enum import Enum
from typing import Any, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """
    Fault severity levels.

    Determines logging level and how loudly callers should react.
    """
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FaultDomain:
    """
    Fault domains (taxonomy).

    Identifies the functional area where a fault occurred.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain(name='{self.name}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


FaultDomain.CONFIG = FaultDomain("config", "Configuration errors")
FaultDomain.IO = FaultDomain("io", "I/O operations")
FaultDomain.SECURITY = FaultDomain("security", "Security and trust")
FaultDomain.SESSION = FaultDomain("session", "Session lifecycle")


DOMAIN_DEFAULTS = {
    FaultDomain.CONFIG: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.IO: {"severity": Severity.WARN, "retryable": True},
    FaultDomain.SECURITY: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.SESSION: {"severity": Severity.ERROR, "retryable": False},
}


# ============================================================================
# Fault - Base Class
# ============================================================================

class Fault(Exception):
    """
    Base fault class - structured, typed fault object.

    A fault carries:
    - Stable machine-readable code
    - Human-readable message
    - Severity level
    - Domain classification
    - Retry semantics
    - Public exposure control

    Subclasses may declare ``code``, ``message``, ``domain``, ``severity``,
    ``retryable`` and ``public`` as class attributes; explicit constructor
    arguments win over them.

    Example:
        ```python
        raise Fault(
            code="STORE_DOWN",
            message="Session store is down",
            domain=FaultDomain.IO,
        )
        ```
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        public: Optional[bool] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.code = code if code is not None else getattr(self, "code", None)
        self.message = message if message is not None else getattr(self, "message", None)
        self.domain = domain if domain is not None else getattr(self, "domain", None)

        if self.code is None or self.message is None or self.domain is None:
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        defaults = DOMAIN_DEFAULTS.get(self.domain, {"severity": Severity.ERROR, "retryable": False})
        self.severity = severity or getattr(type(self), "severity", None) or defaults["severity"]
        if retryable is None:
            retryable = getattr(type(self), "retryable", defaults["retryable"])
        self.retryable = retryable
        if public is None:
            public = getattr(type(self), "public", False)
        self.public = public

        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(code={self.code!r}, domain={self.domain.value}, "
            f"severity={self.severity.value}, public={self.public})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize fault for structured logging."""
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "public": self.public,
            "metadata": self.metadata,
        }


def hash_session_id(session_id: str | None) -> str | None:
    """Hash session ID for logging (privacy)."""
    if not session_id:
        return None
    return f"sha256:{hashlib.sha256(str(session_id).encode()).hexdigest()[:16]}"


# ============================================================================
# Session Fault Base
# ============================================================================

class SessionFault(Fault):
    """Base class for session-related faults."""

    domain = FaultDomain.SESSION


# ============================================================================
# Lifecycle Faults
# ============================================================================

class SessionNotFoundFault(SessionFault):
    """
    Session ID not found in store.

    Expected and recoverable: the record may have been purged or never
    persisted. Callers treat it like an absent identifier.
    """

    code = "SESSION_NOT_FOUND"
    message = "Session not found"
    severity = Severity.WARN
    public = True
    retryable = False

    def __init__(self, session_id: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.session_id_hash = hash_session_id(session_id)


class SessionNotOpenedFault(SessionFault):
    """
    Session values or metadata were touched before create/open completed.

    This is a programming error in the calling code.
    """

    code = "SESSION_NOT_OPENED"
    message = "Session is not opened"
    severity = Severity.ERROR
    public = False
    retryable = False

    def __init__(self, operation: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.operation = operation
        if operation:
            self.message = f"Session is not opened (operation={operation})"
            self.args = (self.message,)


class SessionExpiredFault(SessionFault):
    """
    Session idle time or absolute lifetime exceeded.

    Raised only by a strict SessionGuard; the engine never rejects on its own.
    """

    code = "SESSION_EXPIRED"
    message = "Session has expired"
    severity = Severity.WARN
    public = True
    retryable = False

    def __init__(self, session_id: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.session_id_hash = hash_session_id(session_id)


class SessionInvalidFault(SessionFault):
    """
    Session ID is invalid or malformed.

    This may indicate tampering.
    """

    code = "SESSION_INVALID"
    message = "Invalid session identifier"
    severity = Severity.ERROR
    public = True
    retryable = False


# ============================================================================
# Trust Faults
# ============================================================================

class SessionFingerprintMismatchFault(SessionFault):
    """
    Fingerprint recomputed at resumption differs from the stored one.

    Suspected hijacking: the identifier is presented by a different client
    context than the one it was issued to.
    """

    domain = FaultDomain.SECURITY
    code = "SESSION_FINGERPRINT_MISMATCH"
    message = "Session fingerprint mismatch"
    severity = Severity.ERROR
    public = False
    retryable = False

    def __init__(self, session_id: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.session_id_hash = hash_session_id(session_id)


# ============================================================================
# Storage Faults
# ============================================================================

class SessionStoreUnavailableFault(SessionFault):
    """
    Session store is unavailable.

    Examples: file system error, backend connection failure.
    The engine never retries; a store implementation may before reporting.
    """

    domain = FaultDomain.IO
    code = "SESSION_STORE_UNAVAILABLE"
    message = "Session storage unavailable"
    severity = Severity.ERROR
    public = False
    retryable = True

    def __init__(self, store_name: str, cause: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.store_name = store_name
        self.cause = cause
        if cause:
            self.message = f"Session store '{store_name}' unavailable: {cause}"
        else:
            self.message = f"Session store '{store_name}' unavailable"
        self.args = (self.message,)


class SessionStoreCorruptedFault(SessionFault):
    """
    Session data in store is corrupted.

    Data cannot be decrypted, deserialized or is structurally invalid.
    """

    domain = FaultDomain.IO
    code = "SESSION_STORE_CORRUPTED"
    message = "Session data corrupted"
    severity = Severity.ERROR
    public = False
    retryable = False

    def __init__(self, cause: str | None = None, session_id: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.cause = cause
        self.session_id_hash = hash_session_id(session_id)
        if cause:
            self.message = f"Session data corrupted: {cause}"
            self.args = (self.message,)


# ============================================================================
# Transport Faults
# ============================================================================

class SessionTransportFault(SessionFault):
    """
    Error reading or writing the session identifier on its transport.

    Examples:
    - Cookie written after response headers were committed
    - Malformed identifier handed to set_id
    """

    code = "SESSION_TRANSPORT_ERROR"
    message = "Session transport error"
    severity = Severity.ERROR
    public = False
    retryable = False

    def __init__(self, transport_type: str, cause: str, **kwargs):
        super().__init__(**kwargs)
        self.transport_type = transport_type
        self.cause = cause
        self.message = f"Session transport error ({transport_type}): {cause}"
        self.args = (self.message,)
