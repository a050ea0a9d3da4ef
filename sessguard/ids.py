"""
sessguard - Identifier handling.

The IdHandler owns the opaque session identifier: it generates fresh ids
and reads, writes and clears them through an IdStore:
- MemoryIdStore: Plain attribute (tests, background jobs)
- CookieIdStore: HTTP cookies (most common)
- HeaderIdStore: Custom headers (APIs, mobile apps)

Neither handler nor stores know anything about session semantics.
"""

from __future__ import annotations

import base64
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping, MutableMapping, Protocol, TYPE_CHECKING

from .faults import SessionTransportFault, hash_session_id

if TYPE_CHECKING:
    from .policy import TransportPolicy


ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{16,128}$")


def generate_session_id() -> str:
    """
    Generate an opaque identifier with cryptographic randomness.

    Rules:
    - Never encode meaning (no user ID, no timestamps)
    - 32 bytes = 256 bits entropy
    - URL-safe encoding, prefixed with ``sess_``
    """
    raw = secrets.token_bytes(32)
    return f"sess_{base64.urlsafe_b64encode(raw).decode().rstrip('=')}"


def is_valid_id(value: str | None) -> bool:
    return bool(value) and ID_PATTERN.match(value) is not None


# ============================================================================
# IdStore Protocol
# ============================================================================

class IdStore(Protocol):
    """
    Where the identifier lives between requests.

    Stores are responsible ONLY for carrying the value. Validation and
    generation happen in IdHandler.
    """

    def get_id(self) -> str | None:
        ...

    def set_id(self, session_id: str) -> None:
        ...

    def unset_id(self) -> None:
        ...


# ============================================================================
# MemoryIdStore
# ============================================================================

class MemoryIdStore:
    """In-process id store. Useful for tests and non-HTTP callers."""

    def __init__(self, session_id: str | None = None):
        self.session_id = session_id

    def get_id(self) -> str | None:
        return self.session_id

    def set_id(self, session_id: str) -> None:
        self.session_id = session_id

    def unset_id(self) -> None:
        self.session_id = None


# ============================================================================
# CookieIdStore
# ============================================================================

class CookieIdStore:
    """
    Cookie-based id store.

    Reads the identifier from the incoming ``Cookie`` header and queues
    ``Set-Cookie`` values for the response. Once the response headers are
    committed, further writes raise SessionTransportFault.

    Example:
        >>> store = CookieIdStore("sessguard=sess_abc...", TransportPolicy())
        >>> store.get_id()
        'sess_abc...'
        >>> store.set_id("sess_xyz...")
        >>> store.commit()
        ['sessguard=sess_xyz...; Path=/; HttpOnly; Secure; SameSite=Lax']
    """

    transport_type = "cookie"

    def __init__(self, cookie_header: str | None, policy: TransportPolicy):
        self.policy = policy
        self.cookie_name = policy.cookie_name
        self._current = self._parse_cookies(cookie_header or "").get(self.cookie_name)
        self._outgoing: list[str] = []
        self._committed = False

    def get_id(self) -> str | None:
        return self._current

    def set_id(self, session_id: str) -> None:
        self._ensure_writable()
        self._current = session_id
        self._outgoing.append(self._build_cookie(session_id, self.policy.cookie_max_age))

    def unset_id(self) -> None:
        self._ensure_writable()
        self._current = None
        self._outgoing.append(self._build_cookie("deleted", 0))

    def headers(self) -> list[str]:
        """Pending Set-Cookie header values (last one wins in browsers)."""
        return list(self._outgoing)

    def commit(self) -> list[str]:
        """Hand the Set-Cookie values to the response; the store becomes read-only."""
        self._committed = True
        return self.headers()

    @property
    def committed(self) -> bool:
        return self._committed

    def _ensure_writable(self) -> None:
        if self._committed:
            raise SessionTransportFault(
                transport_type=self.transport_type,
                cause="response headers already committed",
            )

    def _build_cookie(self, value: str, max_age: int | None) -> str:
        cookie_parts = [f"{self.cookie_name}={value}"]

        if self.policy.cookie_path:
            cookie_parts.append(f"Path={self.policy.cookie_path}")

        if self.policy.cookie_domain:
            cookie_parts.append(f"Domain={self.policy.cookie_domain}")

        if max_age is not None:
            cookie_parts.append(f"Max-Age={max_age}")
            expires = datetime.now(timezone.utc) + timedelta(seconds=max_age)
            if max_age == 0:
                expires = datetime(1970, 1, 1, tzinfo=timezone.utc)
            cookie_parts.append(f"Expires={expires.strftime('%a, %d %b %Y %H:%M:%S GMT')}")

        if self.policy.cookie_httponly:
            cookie_parts.append("HttpOnly")

        if self.policy.cookie_secure:
            cookie_parts.append("Secure")

        if self.policy.cookie_samesite:
            cookie_parts.append(f"SameSite={self.policy.cookie_samesite.capitalize()}")

        return "; ".join(cookie_parts)

    @staticmethod
    def _parse_cookies(cookie_header: str) -> dict[str, str]:
        """
        Parse cookie header into dict.

        Args:
            cookie_header: Cookie header value

        Returns:
            Dict of cookie name -> value
        """
        cookies = {}

        for part in cookie_header.split(";"):
            part = part.strip()
            if "=" in part:
                name, value = part.split("=", 1)
                cookies[name.strip()] = value.strip().strip('"')

        return cookies


# ============================================================================
# HeaderIdStore
# ============================================================================

class HeaderIdStore:
    """
    Header-based id store.

    Used for API clients, mobile apps and service-to-service calls.
    The identifier is echoed into ``response_headers`` whenever it changes.
    """

    transport_type = "header"

    def __init__(
        self,
        request_headers: Mapping[str, str] | None,
        header_name: str = "X-Session-ID",
        response_headers: MutableMapping[str, str] | None = None,
    ):
        self.header_name = header_name
        self.response_headers = response_headers if response_headers is not None else {}
        self._current = self._lookup(request_headers or {}, header_name)

    def get_id(self) -> str | None:
        return self._current

    def set_id(self, session_id: str) -> None:
        self._current = session_id
        self.response_headers[self.header_name] = session_id

    def unset_id(self) -> None:
        self._current = None
        # An empty value tells the client to drop its stored id
        self.response_headers[self.header_name] = ""

    @staticmethod
    def _lookup(headers: Mapping[str, str], name: str) -> str | None:
        wanted = name.lower()
        for key, value in headers.items():
            if key.lower() == wanted:
                return value.strip() or None
        return None


# ============================================================================
# IdHandler
# ============================================================================

class IdHandler:
    """
    Generates, reads, writes and clears the session identifier.

    Collisions, entropy and transport encoding are entirely this object's
    concern. Ids that do not look like ids are treated as absent.

    Example:
        >>> handler = IdHandler(MemoryIdStore())
        >>> handler.isset_id()
        False
        >>> handler.generate_id()
        >>> handler.isset_id()
        True
    """

    def __init__(
        self,
        store: IdStore,
        entropy: Callable[[], str] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.store = store
        self.entropy = entropy or generate_session_id
        self.logger = logger or logging.getLogger("sessguard.ids")
        self._rejected_id: str | None = None

    def generate_id(self) -> None:
        """Produce a fresh identifier and put it on the transport."""
        session_id = self.entropy()
        self.set_id(session_id)
        self.logger.debug("Generated session id %s", hash_session_id(session_id))

    def get_id(self) -> str | None:
        session_id = self.store.get_id()
        if session_id is None:
            return None
        if not is_valid_id(session_id):
            if session_id != self._rejected_id:
                self._rejected_id = session_id
                self.logger.warning("Ignoring malformed session id: %s", hash_session_id(session_id))
            return None
        return session_id

    def set_id(self, session_id: str) -> None:
        if not is_valid_id(session_id):
            raise SessionTransportFault(
                transport_type=getattr(self.store, "transport_type", type(self.store).__name__),
                cause="refusing to write malformed session id",
            )
        self.store.set_id(session_id)

    def isset_id(self) -> bool:
        return self.get_id() is not None

    def unset_id(self) -> None:
        self.store.unset_id()


# ============================================================================
# Id Store Factory
# ============================================================================

def create_id_store(
    policy: TransportPolicy,
    cookie_header: str | None = None,
    headers: Mapping[str, str] | None = None,
    response_headers: MutableMapping[str, str] | None = None,
) -> IdStore:
    """
    Create id store from transport policy.

    Args:
        policy: Transport policy
        cookie_header: Incoming Cookie header (cookie adapter)
        headers: Incoming request headers (header adapter)
        response_headers: Outgoing header sink (header adapter)

    Returns:
        IdStore instance

    Raises:
        ValueError: If adapter type is unsupported
    """
    if policy.adapter == "cookie":
        if cookie_header is None and headers is not None:
            cookie_header = HeaderIdStore._lookup(headers, "cookie")
        return CookieIdStore(cookie_header, policy)
    elif policy.adapter == "header":
        return HeaderIdStore(headers, policy.header_name, response_headers)
    elif policy.adapter == "memory":
        return MemoryIdStore()
    else:
        raise ValueError(f"Unsupported id store adapter: {policy.adapter}")
