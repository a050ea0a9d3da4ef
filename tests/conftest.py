"""
Shared test fixtures and helpers for the sessguard test suite.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import create_autospec

import pytest

from sessguard.ids import IdHandler, MemoryIdStore
from sessguard.listener import Listener
from sessguard.session import Session
from sessguard.store import MemoryStore


SESSION_ID = "sess_" + "A" * 43
OTHER_SESSION_ID = "sess_" + "B" * 43


# ============================================================================
# Clock
# ============================================================================


class FakeClock:
    """Deterministic clock; every call advances by ``step``."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock():
    return FakeClock()


# ============================================================================
# Collaborator doubles
# ============================================================================


@pytest.fixture
def id_handler():
    handler = create_autospec(IdHandler, instance=True)
    handler.get_id.return_value = SESSION_ID
    handler.isset_id.return_value = False
    return handler


@pytest.fixture
def storage():
    return create_autospec(MemoryStore, instance=True)


@pytest.fixture
def listener():
    return create_autospec(Listener, instance=True)


@pytest.fixture
def default_session(id_handler, storage, listener, clock):
    """Session wired to mock collaborators."""
    return Session(
        id_handler=id_handler,
        storage=storage,
        listener=listener,
        clock=clock,
    )


# ============================================================================
# Real collaborators
# ============================================================================


def make_record(
    values=None,
    requests_counter=1,
    fingerprint="",
    first_trace=None,
    last_trace=None,
    regeneration_trace=None,
):
    """Build a stored session record."""
    base = datetime(2026, 1, 1, 11, 0, 0, tzinfo=timezone.utc)
    return {
        "values": values if values is not None else {},
        "first_trace": (first_trace or base).isoformat(),
        "last_trace": (last_trace or base).isoformat(),
        "regeneration_trace": (regeneration_trace or base).isoformat(),
        "requests_counter": requests_counter,
        "fingerprint": fingerprint,
    }


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def id_store():
    return MemoryIdStore()
