"""
sessguard - Server-side session lifecycle and integrity.

This package provides:
- A per-request Session engine (create / open / load state machine)
- Trust bookkeeping (first, last and regeneration traces; request counter)
- Client fingerprints to detect identifiers reused by another client
- Pluggable policies for idle / absolute expiry and id regeneration
- Identifier transports (cookie, header, memory)
- Stores (memory, file with optional encryption at rest)

Philosophy:
- Sessions are explicit (no hidden globals, one engine per request)
- Collaborators are injected, never looked up
- The engine records trust metadata; policies decide what to do with it
"""

from .faults import (
    Fault,
    FaultDomain,
    Severity,
    SessionFault,
    SessionNotFoundFault,
    SessionNotOpenedFault,
    SessionExpiredFault,
    SessionInvalidFault,
    SessionFingerprintMismatchFault,
    SessionStoreUnavailableFault,
    SessionStoreCorruptedFault,
    SessionTransportFault,
)

from .ids import (
    IdHandler,
    IdStore,
    MemoryIdStore,
    CookieIdStore,
    HeaderIdStore,
    create_id_store,
    generate_session_id,
)

from .store import (
    SessionStore,
    MemoryStore,
    FileStore,
    create_store,
)

from .crypto import RecordEncryptor

from .listener import (
    Event,
    Listener,
    EVENT_CREATED,
    EVENT_RESUMED,
    EVENT_NO_DATA,
    EVENT_REGENERATED,
    EVENT_SAVED,
    EVENT_DESTROYED,
    EVENT_EXPIRED,
    EVENT_INVALID_FINGERPRINT,
)

from .fingerprint import (
    RequestContext,
    FingerprintGenerator,
    UserAgentFingerprint,
    RemoteAddrFingerprint,
    CompositeFingerprint,
    create_fingerprint_generator,
)

from .session import Session

from .policy import (
    SessionPolicy,
    TransportPolicy,
    Verdict,
)

from .guard import SessionGuard

from .config import (
    ConfigError,
    ConfigLoader,
    SessionConfig,
)

from .factory import SessionFactory

__all__ = [
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "SessionFault",
    "SessionNotFoundFault",
    "SessionNotOpenedFault",
    "SessionExpiredFault",
    "SessionInvalidFault",
    "SessionFingerprintMismatchFault",
    "SessionStoreUnavailableFault",
    "SessionStoreCorruptedFault",
    "SessionTransportFault",
    # Identifiers
    "IdHandler",
    "IdStore",
    "MemoryIdStore",
    "CookieIdStore",
    "HeaderIdStore",
    "create_id_store",
    "generate_session_id",
    # Storage
    "SessionStore",
    "MemoryStore",
    "FileStore",
    "create_store",
    "RecordEncryptor",
    # Events
    "Event",
    "Listener",
    "EVENT_CREATED",
    "EVENT_RESUMED",
    "EVENT_NO_DATA",
    "EVENT_REGENERATED",
    "EVENT_SAVED",
    "EVENT_DESTROYED",
    "EVENT_EXPIRED",
    "EVENT_INVALID_FINGERPRINT",
    # Fingerprints
    "RequestContext",
    "FingerprintGenerator",
    "UserAgentFingerprint",
    "RemoteAddrFingerprint",
    "CompositeFingerprint",
    "create_fingerprint_generator",
    # Engine
    "Session",
    # Policy
    "SessionPolicy",
    "TransportPolicy",
    "Verdict",
    "SessionGuard",
    # Config
    "ConfigError",
    "ConfigLoader",
    "SessionConfig",
    "SessionFactory",
]

__version__ = "0.1.0"
