"""
sessguard - Session engine.

The Session object is the per-request state machine:

    Unopened --create()--> Created --+
        |                            +--> opened for the rest of the request
        +----open()/load()--> Resumed+

It owns the trust bookkeeping (first, last and regeneration traces,
request counter, fingerprints) and the value store. It coordinates the
IdHandler, SessionStore, Listener and FingerprintGenerator collaborators
without delegating policy to any of them, and it never rejects a session
itself: validation verdicts belong to SessionPolicy / SessionGuard.

A Session is constructed fresh for every request. Nothing survives
between requests except what the storage collaborator persists.
"""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Callable, TYPE_CHECKING

from .faults import (
    SessionNotFoundFault,
    SessionNotOpenedFault,
    SessionStoreCorruptedFault,
    SessionTransportFault,
    hash_session_id,
)
from .fingerprint import RequestContext
from .listener import (
    EVENT_CREATED,
    EVENT_DESTROYED,
    EVENT_NO_DATA,
    EVENT_REGENERATED,
    EVENT_RESUMED,
    EVENT_SAVED,
    Listener,
)

if TYPE_CHECKING:
    from .fingerprint import FingerprintGenerator
    from .ids import IdHandler
    from .store import Record, SessionStore


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session:
    """
    Server-side session bound to a client through an opaque identifier.

    Example:
        >>> session = Session(
        ...     id_handler=IdHandler(cookie_store),
        ...     storage=file_store,
        ...     fingerprint_generator=UserAgentFingerprint(),
        ...     request=RequestContext(user_agent="Mozilla/5.0"),
        ... )
        >>> session.open(auto_create=True)
        True
        >>> session["cart_items"] = 3
        >>> session.close()
    """

    def __init__(
        self,
        id_handler: IdHandler,
        storage: SessionStore,
        listener: Listener | None = None,
        fingerprint_generator: FingerprintGenerator | None = None,
        request: RequestContext | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize session engine.

        Args:
            id_handler: Identifier handler (transport)
            storage: Session store (persistence)
            listener: Event dispatcher (defaults to a private Listener)
            fingerprint_generator: Client fingerprint source (None = empty fingerprint)
            request: Request context fingerprints are derived from
            clock: Returns the current aware datetime
            logger: Optional logger
        """
        self.id_handler = id_handler
        self.storage = storage
        self.listener = listener if listener is not None else Listener()
        self.fingerprint_generator = fingerprint_generator
        self.request = request if request is not None else RequestContext()
        self.clock = clock or _utcnow
        self.logger = logger or logging.getLogger("sessguard.session")

        self._values: dict[str, Any] = {}
        self._first_trace: datetime | None = None
        self._last_trace: datetime | None = None
        self._previous_trace: datetime | None = None
        self._regeneration_trace: datetime | None = None
        self._requests_counter = 0
        self._fingerprint = ""
        self._current_fingerprint = ""
        self._opened = False
        self._resumed = False
        # Ids rotated away from; their records are deleted after the next save
        self._stale_ids: list[str] = []

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def create(self) -> None:
        """
        Start a brand-new, empty, trusted session.

        Nothing is persisted until save()/close().

        Raises:
            SessionTransportFault: The id could not be written
        """
        self.id_handler.generate_id()

        now = self.clock()
        self._values = {}
        self._first_trace = now
        self._last_trace = now
        self._previous_trace = None
        self._regeneration_trace = now
        self._requests_counter = 1
        self._fingerprint = self.generate_fingerprint()
        self._current_fingerprint = self._fingerprint
        self._opened = True
        self._resumed = False

        self.logger.debug("Created session %s", hash_session_id(self.get_id()))
        self.listener.trigger(EVENT_CREATED, self)

    def open(self, auto_create: bool = False) -> bool:
        """
        Resume the session named by the transport, or create one.

        An identifier on the transport is always resumed, never replaced
        by a fresh session. A dangling identifier (no stored record) is
        treated as absent.

        Args:
            auto_create: Create a new session when none can be resumed

        Returns:
            Whether the session is opened afterwards

        Raises:
            SessionStoreUnavailableFault: Store failure
            SessionStoreCorruptedFault: Stored record unreadable
            SessionTransportFault: Id could not be written on create
        """
        if self.is_opened():
            return True

        if self.id_handler.isset_id():
            try:
                self.load()
            except SessionNotFoundFault:
                self.logger.info("No stored data for session %s", hash_session_id(self.id_handler.get_id()))
                self.listener.trigger(EVENT_NO_DATA, self)
                if auto_create:
                    self.create()
                return self._opened

            self._current_fingerprint = self.generate_fingerprint()
            self._opened = True
            self._resumed = True
            self.logger.debug(
                "Resumed session %s (request %d)",
                hash_session_id(self.get_id()),
                self._requests_counter,
            )
            self.listener.trigger(EVENT_RESUMED, self)

        elif auto_create:
            self.create()

        return self._opened

    def load(self) -> None:
        """
        Hydrate state from the stored record and count this request.

        Raises:
            SessionNotFoundFault: Storage has no record for the id
            SessionStoreCorruptedFault: Record is structurally invalid
        """
        session_id = self.id_handler.get_id()
        record = self.storage.fetch(session_id)
        if record is None:
            raise SessionNotFoundFault(session_id=session_id)

        self._hydrate(record, session_id)
        self._previous_trace = self._last_trace
        self._requests_counter += 1
        self._last_trace = self.clock()

    def regenerate_id(self) -> None:
        """
        Move the session to a fresh identifier, keeping its values.

        The old record is deleted by the next successful save(), so a
        failed save leaves it in place. The fingerprint is re-derived for
        the current client.
        """
        self._require_opened("regenerate_id")

        old_id = self.id_handler.get_id()
        self.id_handler.generate_id()
        self._regeneration_trace = self.clock()
        self._fingerprint = self.generate_fingerprint()
        self._current_fingerprint = self._fingerprint

        if old_id and old_id not in self._stale_ids:
            self._stale_ids.append(old_id)

        self.logger.info(
            "Regenerated session id %s -> %s",
            hash_session_id(old_id),
            hash_session_id(self.get_id()),
        )
        self.listener.trigger(EVENT_REGENERATED, self)

    def save(self) -> None:
        """
        Persist the current state under the current identifier.

        Records of identifiers rotated away from are deleted only after
        the new record has been stored.
        """
        self._require_opened("save")

        session_id = self.id_handler.get_id()
        if session_id is None:
            transport = getattr(self.id_handler, "store", self.id_handler)
            raise SessionTransportFault(
                transport_type=getattr(transport, "transport_type", type(transport).__name__),
                cause="session identifier missing on save",
            )

        self.storage.store(session_id, self.to_record())

        while self._stale_ids:
            stale_id = self._stale_ids[0]
            if stale_id != session_id:
                self.storage.delete(stale_id)
            self._stale_ids.pop(0)

        self.listener.trigger(EVENT_SAVED, self)

    def close(self) -> None:
        """Save and end the session for this request (idempotent)."""
        if not self._opened:
            return
        self.save()
        self._opened = False

    def destroy(self) -> None:
        """
        Invalidate the session: drop the stored record and the identifier.

        Afterwards the object is unopened and empty.
        """
        session_id = self.id_handler.get_id()
        if session_id is not None:
            self.storage.delete(session_id)
        for stale_id in self._stale_ids:
            self.storage.delete(stale_id)
        self._stale_ids = []
        self.id_handler.unset_id()

        self._values = {}
        self._first_trace = None
        self._last_trace = None
        self._previous_trace = None
        self._regeneration_trace = None
        self._requests_counter = 0
        self._fingerprint = ""
        self._current_fingerprint = ""
        self._opened = False
        self._resumed = False

        self.logger.info("Destroyed session %s", hash_session_id(session_id))
        self.listener.trigger(EVENT_DESTROYED, self)

    # ========================================================================
    # Fingerprint
    # ========================================================================

    def generate_fingerprint(self) -> str:
        """Derive the fingerprint of the current request's client."""
        if self.fingerprint_generator is None:
            return ""
        return self.fingerprint_generator.generate(self.request)

    def fingerprint_matches(self) -> bool:
        """Compare the stored fingerprint with the one computed for this request."""
        return hmac.compare_digest(
            self._fingerprint.encode("utf-8"),
            self._current_fingerprint.encode("utf-8"),
        )

    @property
    def fingerprint(self) -> str:
        """Fingerprint recorded at creation / last regeneration."""
        return self._fingerprint

    @property
    def current_fingerprint(self) -> str:
        """Fingerprint computed for the current request."""
        return self._current_fingerprint

    # ========================================================================
    # State
    # ========================================================================

    def is_opened(self) -> bool:
        return self._opened

    def is_resumed(self) -> bool:
        """Whether this request's session came from storage rather than create()."""
        return self._resumed

    def get_id(self) -> str | None:
        return self.id_handler.get_id()

    @property
    def first_trace(self) -> datetime | None:
        return self._first_trace

    @property
    def last_trace(self) -> datetime | None:
        return self._last_trace

    @property
    def previous_trace(self) -> datetime | None:
        """Last activity before this request (None for new sessions)."""
        return self._previous_trace

    @property
    def regeneration_trace(self) -> datetime | None:
        return self._regeneration_trace

    @property
    def requests_counter(self) -> int:
        return self._requests_counter

    @property
    def values(self) -> dict[str, Any]:
        """Snapshot of the stored values."""
        return dict(self._values)

    # ========================================================================
    # Values
    # ========================================================================

    def get_value(self, key: str, default: Any = None) -> Any:
        self._require_opened("get_value")
        return self._values.get(key, default)

    def set_value(self, key: str, value: Any) -> None:
        self._require_opened("set_value")
        self._values[key] = value

    def isset_value(self, key: str) -> bool:
        self._require_opened("isset_value")
        return key in self._values

    def unset_value(self, key: str) -> None:
        self._require_opened("unset_value")
        self._values.pop(key, None)

    def get_unset_value(self, key: str, default: Any = None) -> Any:
        """Read a value and remove it (flash-style)."""
        self._require_opened("get_unset_value")
        return self._values.pop(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.get_value(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self.set_value(key, value)

    def __contains__(self, key: str) -> bool:
        return self.isset_value(key)

    def __delitem__(self, key: str) -> None:
        self.unset_value(key)

    # ========================================================================
    # Serialization
    # ========================================================================

    def to_record(self) -> Record:
        """
        Serialize session state for storage.

        Returns:
            JSON-compatible record
        """
        return {
            "values": dict(self._values),
            "first_trace": _format_trace(self._first_trace),
            "last_trace": _format_trace(self._last_trace),
            "regeneration_trace": _format_trace(self._regeneration_trace),
            "requests_counter": self._requests_counter,
            "fingerprint": self._fingerprint,
        }

    def _hydrate(self, record: Record, session_id: str | None) -> None:
        try:
            values = record.get("values", {})
            counter = record.get("requests_counter", 0)
            fingerprint = record.get("fingerprint", "")
            if not isinstance(values, dict):
                raise ValueError("values is not a mapping")
            if isinstance(counter, bool) or not isinstance(counter, int) or counter < 0:
                raise ValueError("invalid requests_counter")
            if not isinstance(fingerprint, str):
                raise ValueError("invalid fingerprint")
            first_trace = _parse_trace(record.get("first_trace"))
            last_trace = _parse_trace(record.get("last_trace"))
            regeneration_trace = _parse_trace(record.get("regeneration_trace"))
        except (AttributeError, TypeError, ValueError) as e:
            raise SessionStoreCorruptedFault(cause=str(e), session_id=session_id)

        self._values = dict(values)
        self._first_trace = first_trace
        self._last_trace = last_trace
        self._regeneration_trace = regeneration_trace
        self._requests_counter = counter
        self._fingerprint = fingerprint

    def _require_opened(self, operation: str) -> None:
        if not self._opened:
            raise SessionNotOpenedFault(operation=operation)

    def __repr__(self) -> str:
        return (
            f"Session(id={hash_session_id(self.get_id())}, opened={self._opened}, "
            f"requests={self._requests_counter})"
        )


def _format_trace(trace: datetime | None) -> str | None:
    return trace.isoformat() if trace is not None else None


def _parse_trace(value: Any) -> datetime | None:
    if value is None:
        return None
    trace = datetime.fromisoformat(value)
    if trace.tzinfo is None:
        trace = trace.replace(tzinfo=timezone.utc)
    return trace
