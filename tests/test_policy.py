"""
Policies and enforcement (sessguard/policy.py, sessguard/guard.py)

Tests verdicts for idle / absolute expiry and fingerprint mismatch,
id rotation rules, and SessionGuard's destroy-and-replace behaviour.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, create_autospec, patch

import pytest

from sessguard.config import SessionConfig
from sessguard.faults import (
    SessionExpiredFault,
    SessionFingerprintMismatchFault,
    SessionStoreUnavailableFault,
)
from sessguard.fingerprint import RequestContext, UserAgentFingerprint
from sessguard.guard import SessionGuard
from sessguard.ids import IdHandler, MemoryIdStore
from sessguard.listener import EVENT_EXPIRED, EVENT_INVALID_FINGERPRINT, Listener
from sessguard.policy import SessionPolicy, TransportPolicy, Verdict
from sessguard.session import Session

from conftest import OTHER_SESSION_ID, SESSION_ID, make_record


NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def fake_session(
    resumed=True,
    previous_trace=NOW - timedelta(minutes=1),
    first_trace=NOW - timedelta(hours=1),
    regeneration_trace=NOW - timedelta(hours=1),
    requests_counter=2,
    fingerprint_matches=True,
):
    session = create_autospec(Session, instance=True)
    session.is_resumed.return_value = resumed
    session.fingerprint_matches.return_value = fingerprint_matches
    session.previous_trace = previous_trace
    session.first_trace = first_trace
    session.regeneration_trace = regeneration_trace
    session.requests_counter = requests_counter
    return session


# ============================================================================
# TransportPolicy
# ============================================================================


class TestTransportPolicy:

    def test_defaults(self):
        policy = TransportPolicy()
        assert policy.adapter == "cookie"
        assert policy.cookie_httponly is True
        assert policy.cookie_secure is True
        assert policy.cookie_samesite == "lax"

    def test_from_config(self):
        policy = TransportPolicy.from_config(SessionConfig(
            id_store="header", header_name="X-Token", cookie_name="sid", cookie_max_age=60,
        ))
        assert policy.adapter == "header"
        assert policy.header_name == "X-Token"
        assert policy.cookie_name == "sid"
        assert policy.cookie_max_age == 60


# ============================================================================
# SessionPolicy.evaluate
# ============================================================================


class TestEvaluate:

    def test_new_session_is_trusted(self):
        policy = SessionPolicy(idle_ttl=timedelta(seconds=1))
        session = fake_session(resumed=False, fingerprint_matches=False)
        assert policy.evaluate(session, NOW) is Verdict.ACCEPT

    def test_accepts_fresh_session(self):
        policy = SessionPolicy(idle_ttl=timedelta(minutes=30), max_lifetime=timedelta(days=1))
        verdict = policy.evaluate(fake_session(), NOW)
        assert verdict is Verdict.ACCEPT
        assert verdict.accepted is True

    def test_idle_expiry(self):
        policy = SessionPolicy(idle_ttl=timedelta(minutes=30))
        session = fake_session(previous_trace=NOW - timedelta(minutes=31))
        assert policy.evaluate(session, NOW) is Verdict.EXPIRED

    def test_idle_boundary_is_accepted(self):
        policy = SessionPolicy(idle_ttl=timedelta(minutes=30))
        session = fake_session(previous_trace=NOW - timedelta(minutes=30))
        assert policy.evaluate(session, NOW) is Verdict.ACCEPT

    def test_absolute_expiry(self):
        policy = SessionPolicy(max_lifetime=timedelta(hours=8))
        session = fake_session(first_trace=NOW - timedelta(hours=9))
        assert policy.evaluate(session, NOW) is Verdict.EXPIRED

    def test_fingerprint_mismatch(self):
        session = fake_session(fingerprint_matches=False)
        assert SessionPolicy().evaluate(session, NOW) is Verdict.INVALID_FINGERPRINT
        assert SessionPolicy(check_fingerprint=False).evaluate(session, NOW) is Verdict.ACCEPT

    def test_expiry_wins_over_fingerprint(self):
        policy = SessionPolicy(idle_ttl=timedelta(minutes=1))
        session = fake_session(previous_trace=NOW - timedelta(hours=1), fingerprint_matches=False)
        assert policy.evaluate(session, NOW) is Verdict.EXPIRED


# ============================================================================
# SessionPolicy.should_regenerate
# ============================================================================


class TestShouldRegenerate:

    def test_disabled_by_default(self):
        assert SessionPolicy().should_regenerate(fake_session(requests_counter=100), NOW) is False

    @pytest.mark.parametrize("counter, expected", [(1, False), (4, False), (5, True), (6, False), (10, True)])
    def test_every_nth_request(self, counter, expected):
        policy = SessionPolicy(id_requests_limit=5)
        assert policy.should_regenerate(fake_session(requests_counter=counter), NOW) is expected

    def test_id_ttl(self):
        policy = SessionPolicy(id_ttl=timedelta(minutes=15))
        assert policy.should_regenerate(fake_session(regeneration_trace=NOW - timedelta(minutes=15)), NOW) is True
        assert policy.should_regenerate(fake_session(regeneration_trace=NOW - timedelta(minutes=5)), NOW) is False

    def test_from_config(self):
        policy = SessionPolicy.from_config(SessionConfig(
            idle_ttl=600, max_lifetime=0, id_requests_limit=10, id_ttl=300, check_fingerprint=False,
        ))
        assert policy.idle_ttl == timedelta(minutes=10)
        assert policy.max_lifetime is None
        assert policy.id_requests_limit == 10
        assert policy.id_ttl == timedelta(minutes=5)
        assert policy.check_fingerprint is False


# ============================================================================
# SessionGuard
# ============================================================================


class TestSessionGuard:

    @pytest.fixture
    def listener(self):
        return Listener()

    def make_session(self, memory_store, clock, listener, session_id=SESSION_ID, user_agent="Firefox"):
        return Session(
            id_handler=IdHandler(MemoryIdStore(session_id), entropy=lambda: OTHER_SESSION_ID),
            storage=memory_store,
            listener=listener,
            fingerprint_generator=UserAgentFingerprint(),
            request=RequestContext(user_agent=user_agent),
            clock=clock,
        )

    def test_accepts_valid_session(self, memory_store, clock, listener):
        memory_store.store(SESSION_ID, make_record(
            values={"k": "v"}, fingerprint="Firefox", last_trace=clock.now - timedelta(minutes=5),
        ))
        session = self.make_session(memory_store, clock, listener)
        guard = SessionGuard(SessionPolicy(idle_ttl=timedelta(minutes=30)))

        assert guard.open(session, auto_create=True, now=clock.now) is True
        assert session.get_id() == SESSION_ID
        assert session["k"] == "v"

    def test_expired_session_is_replaced(self, memory_store, clock, listener):
        memory_store.store(SESSION_ID, make_record(
            values={"k": "v"}, fingerprint="Firefox", last_trace=clock.now - timedelta(hours=1),
        ))
        session = self.make_session(memory_store, clock, listener)
        guard = SessionGuard(SessionPolicy(idle_ttl=timedelta(minutes=30)))

        assert guard.open(session, auto_create=True, now=clock.now) is True

        assert memory_store.fetch(SESSION_ID) is None
        assert session.get_id() == OTHER_SESSION_ID
        assert session.values == {}
        assert session.is_resumed() is False
        assert EVENT_EXPIRED in [e.name for e in listener.get_queue()]

    def test_hijacked_session_is_destroyed(self, memory_store, clock, listener):
        memory_store.store(SESSION_ID, make_record(fingerprint="Firefox", last_trace=clock.now))
        session = self.make_session(memory_store, clock, listener, user_agent="curl/8.0")
        guard = SessionGuard(SessionPolicy())

        assert guard.open(session, auto_create=False, now=clock.now) is False

        assert memory_store.fetch(SESSION_ID) is None
        assert session.get_id() is None
        assert EVENT_INVALID_FINGERPRINT in [e.name for e in listener.get_queue()]

    def test_strict_mode_raises(self, memory_store, clock, listener):
        memory_store.store(SESSION_ID, make_record(fingerprint="Firefox", last_trace=clock.now))
        session = self.make_session(memory_store, clock, listener, user_agent="curl/8.0")
        guard = SessionGuard(SessionPolicy(), strict=True)

        with pytest.raises(SessionFingerprintMismatchFault):
            guard.open(session, auto_create=True, now=clock.now)
        assert memory_store.fetch(SESSION_ID) is None

    def test_strict_mode_expired(self, memory_store, clock, listener):
        memory_store.store(SESSION_ID, make_record(fingerprint="Firefox", last_trace=clock.now - timedelta(days=2)))
        session = self.make_session(memory_store, clock, listener)
        guard = SessionGuard(SessionPolicy(idle_ttl=timedelta(hours=1)), strict=True)

        with pytest.raises(SessionExpiredFault):
            guard.open(session, now=clock.now)

    def test_new_session_skips_evaluation(self):
        policy = create_autospec(SessionPolicy, instance=True)
        session = create_autospec(Session, instance=True)
        session.is_opened.side_effect = [False, True, True]
        session.is_resumed.return_value = False

        assert SessionGuard(policy).open(session, auto_create=True) is True
        session.open.assert_called_once_with(True)
        policy.evaluate.assert_not_called()

    def test_close_rotates_when_due(self, memory_store, clock, listener):
        memory_store.store(SESSION_ID, make_record(requests_counter=4, fingerprint="Firefox", last_trace=clock.now))
        session = self.make_session(memory_store, clock, listener)
        guard = SessionGuard(SessionPolicy(id_requests_limit=5))

        guard.open(session, now=clock.now)
        guard.close(session, now=clock.now)

        assert memory_store.fetch(SESSION_ID) is None
        assert memory_store.fetch(OTHER_SESSION_ID)["requests_counter"] == 5

    def test_failed_save_after_rotation_keeps_old_record(self, memory_store, clock, listener):
        memory_store.store(SESSION_ID, make_record(requests_counter=1, fingerprint="Firefox", last_trace=clock.now))
        session = self.make_session(memory_store, clock, listener)
        guard = SessionGuard(SessionPolicy(id_requests_limit=2))
        guard.open(session, now=clock.now)

        with patch.object(memory_store, "store", side_effect=SessionStoreUnavailableFault("memory", "down")):
            with pytest.raises(SessionStoreUnavailableFault):
                guard.close(session, now=clock.now)

        assert memory_store.fetch(SESSION_ID)["requests_counter"] == 1
        assert memory_store.fetch(OTHER_SESSION_ID) is None

    def test_close_without_rotation(self, memory_store, clock, listener):
        memory_store.store(SESSION_ID, make_record(requests_counter=1, fingerprint="Firefox", last_trace=clock.now))
        session = self.make_session(memory_store, clock, listener)
        guard = SessionGuard(SessionPolicy(id_requests_limit=5))

        guard.open(session, now=clock.now)
        guard.close(session, now=clock.now)

        assert memory_store.fetch(SESSION_ID)["requests_counter"] == 2
        assert session.is_opened() is False

    def test_close_unopened_session_is_noop(self):
        session = MagicMock()
        session.is_opened.return_value = False
        SessionGuard().close(session)
        session.close.assert_not_called()
