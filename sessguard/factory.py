"""
sessguard - Per-request wiring.

SessionFactory is process-scoped: it holds the configuration and the
shared store. Every request gets its own Session and SessionGuard built
from fresh collaborators.
"""

from __future__ import annotations

import logging
from typing import Callable, Mapping, MutableMapping

from .config import SessionConfig
from .fingerprint import RequestContext, create_fingerprint_generator
from .guard import SessionGuard
from .ids import IdHandler, create_id_store
from .listener import Listener
from .policy import SessionPolicy, TransportPolicy
from .session import Session
from .store import SessionStore, create_store


class SessionFactory:
    """
    Builds request-scoped sessions from configuration.

    Example:
        >>> factory = SessionFactory(ConfigLoader.load(["sessguard.yaml"]).session_config())
        >>> session, guard = factory.for_request(
        ...     RequestContext.from_headers(headers, remote_addr="203.0.113.9"),
        ...     cookie_header=headers.get("cookie"),
        ... )
        >>> guard.open(session, auto_create=True)
        True
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        store: SessionStore | None = None,
        listener_factory: Callable[[], Listener] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.config = config or SessionConfig()
        self.config.validate()
        self.store = store if store is not None else create_store(self.config)
        self.transport_policy = TransportPolicy.from_config(self.config)
        self.policy = SessionPolicy.from_config(self.config)
        self.fingerprint_generator = create_fingerprint_generator(self.config)
        self.listener_factory = listener_factory or Listener
        self.logger = logger or logging.getLogger("sessguard.factory")

    def for_request(
        self,
        request: RequestContext,
        cookie_header: str | None = None,
        headers: Mapping[str, str] | None = None,
        response_headers: MutableMapping[str, str] | None = None,
    ) -> tuple[Session, SessionGuard]:
        """
        Build a session and its guard for one request.

        Args:
            request: Request context (fingerprint source)
            cookie_header: Incoming Cookie header (cookie transport)
            headers: Incoming request headers (defaults to request.headers)
            response_headers: Outgoing header sink (header transport)
        """
        id_store = create_id_store(
            self.transport_policy,
            cookie_header=cookie_header,
            headers=headers if headers is not None else request.headers,
            response_headers=response_headers,
        )
        session = Session(
            id_handler=IdHandler(id_store),
            storage=self.store,
            listener=self.listener_factory(),
            fingerprint_generator=self.fingerprint_generator,
            request=request,
        )
        guard = SessionGuard(self.policy, strict=self.config.strict)
        return session, guard

    def open(self, request: RequestContext, **kwargs) -> tuple[Session, SessionGuard]:
        """Build and open a session, creating one if configured to."""
        session, guard = self.for_request(request, **kwargs)
        guard.open(session, auto_create=self.config.auto_create)
        return session, guard
