"""
sessguard - Session storage abstraction.

Defines SessionStore protocol and concrete implementations:
- MemoryStore: In-memory storage (dev/testing, single process)
- FileStore: File-based storage, optionally encrypted at rest

Stores persist opaque session records (JSON-compatible dicts) keyed by id.
They do NOT enforce policy and know nothing about session semantics.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterator, Protocol, TYPE_CHECKING

from .faults import (
    SessionInvalidFault,
    SessionStoreCorruptedFault,
    SessionStoreUnavailableFault,
    hash_session_id,
)
from .ids import is_valid_id

if TYPE_CHECKING:
    from .config import SessionConfig
    from .crypto import RecordEncryptor


Record = dict[str, Any]


# ============================================================================
# SessionStore Protocol
# ============================================================================

class SessionStore(Protocol):
    """
    Abstract session storage interface.

    All methods are synchronous. Failures are reported as faults and
    never retried by the caller.
    """

    def store(self, session_id: str, record: Record) -> None:
        """
        Save record under session_id (insert or overwrite).

        Raises:
            SessionStoreUnavailableFault: Store is unavailable
        """
        ...

    def fetch(self, session_id: str) -> Record | None:
        """
        Load record for session_id.

        Returns:
            Record if found, None otherwise

        Raises:
            SessionStoreUnavailableFault: Store is unavailable
            SessionStoreCorruptedFault: Data is corrupted
        """
        ...

    def delete(self, session_id: str) -> None:
        """
        Delete record (no-op if absent).

        Raises:
            SessionStoreUnavailableFault: Store is unavailable
        """
        ...

    def ids(self) -> Iterator[str]:
        """Iterate over stored session ids."""
        ...

    def cleanup_expired(self, idle_ttl: timedelta, now: datetime | None = None) -> int:
        """
        Remove records idle for longer than idle_ttl.

        Returns:
            Number of records removed
        """
        ...


def record_is_idle(record: Record, idle_ttl: timedelta, now: datetime) -> bool:
    """Check a record's last trace against an idle ttl."""
    last_trace = record.get("last_trace")
    if not last_trace:
        return True
    try:
        trace = datetime.fromisoformat(last_trace)
    except (TypeError, ValueError):
        return True
    # Naive traces are UTC
    if trace.tzinfo is None:
        trace = trace.replace(tzinfo=timezone.utc)
    return now - trace > idle_ttl


# ============================================================================
# MemoryStore - In-Memory Storage
# ============================================================================

class MemoryStore:
    """
    In-memory session storage for development and testing.

    Features:
    - Fast in-memory dict storage
    - Deep copies in and out (callers never share state with the store)
    - Max session limit (LRU eviction)

    NOT suitable for multi-process deployments (no sharing across workers).

    Example:
        >>> store = MemoryStore(max_sessions=10000)
        >>> store.store("sess_...", {"values": {}})
        >>> store.fetch("sess_...")
        {'values': {}}
    """

    name = "memory"

    def __init__(self, max_sessions: int = 10000, logger: logging.Logger | None = None):
        """
        Initialize memory store.

        Args:
            max_sessions: Maximum records to keep (LRU eviction)
        """
        self.max_sessions = max_sessions
        self.logger = logger or logging.getLogger("sessguard.store")
        self._records: OrderedDict[str, Record] = OrderedDict()
        self._lock = threading.Lock()

    def store(self, session_id: str, record: Record) -> None:
        with self._lock:
            if session_id not in self._records and len(self._records) >= self.max_sessions:
                evicted, _ = self._records.popitem(last=False)
                self.logger.info("Evicted least recently used session %s", hash_session_id(evicted))

            self._records[session_id] = copy.deepcopy(record)
            self._records.move_to_end(session_id)

    def fetch(self, session_id: str) -> Record | None:
        with self._lock:
            record = self._records.get(session_id)
            if record is None:
                return None
            self._records.move_to_end(session_id)
            return copy.deepcopy(record)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._records.pop(session_id, None)

    def ids(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._records))

    def cleanup_expired(self, idle_ttl: timedelta, now: datetime | None = None) -> int:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            expired = [sid for sid, rec in self._records.items() if record_is_idle(rec, idle_ttl, now)]
            for session_id in expired:
                del self._records[session_id]
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        return {
            "total_sessions": len(self._records),
            "max_sessions": self.max_sessions,
            "utilization": len(self._records) / self.max_sessions if self.max_sessions > 0 else 0,
        }


# ============================================================================
# FileStore - File-Based Storage
# ============================================================================

class FileStore:
    """
    File-based session storage.

    Features:
    - One file per session (JSON, or Fernet ciphertext with an encryptor)
    - Atomic write (temp file + rename)
    - Works across worker processes sharing a directory

    Example:
        >>> store = FileStore(directory="/var/lib/sessguard")
        >>> store.store(session_id, record)
        >>> store.fetch(session_id)
    """

    name = "file"
    suffix = ".sess"

    def __init__(
        self,
        directory: str | Path,
        encryptor: RecordEncryptor | None = None,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize file store.

        Args:
            directory: Directory to store session files
            encryptor: Optional encryption at rest
        """
        self.directory = Path(directory)
        self.encryptor = encryptor
        self.logger = logger or logging.getLogger("sessguard.store")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SessionStoreUnavailableFault(store_name=self.name, cause=str(e))

    def _get_path(self, session_id: str) -> Path:
        # Ids become file names; anything else could escape the directory
        if not is_valid_id(session_id):
            raise SessionInvalidFault()
        return self.directory / f"{session_id}{self.suffix}"

    def _encode(self, record: Record) -> bytes:
        data = json.dumps(record, sort_keys=True).encode("utf-8")
        if self.encryptor is not None:
            data = self.encryptor.encrypt(data)
        return data

    def _decode(self, data: bytes, session_id: str) -> Record:
        if self.encryptor is not None:
            data = self.encryptor.decrypt(data)
        try:
            record = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise SessionStoreCorruptedFault(cause=str(e), session_id=session_id)
        if not isinstance(record, dict):
            raise SessionStoreCorruptedFault(cause="record is not an object", session_id=session_id)
        return record

    def store(self, session_id: str, record: Record) -> None:
        path = self._get_path(session_id)
        try:
            data = self._encode(record)
        except (TypeError, ValueError) as e:
            raise SessionStoreCorruptedFault(cause=f"record not serializable: {e}", session_id=session_id)

        temp_path = path.with_suffix(f".{os.getpid()}.tmp")
        try:
            temp_path.write_bytes(data)
            temp_path.replace(path)
        except OSError as e:
            self.logger.error("Failed to write session %s: %s", hash_session_id(session_id), e)
            raise SessionStoreUnavailableFault(store_name=self.name, cause=str(e))

    def fetch(self, session_id: str) -> Record | None:
        path = self._get_path(session_id)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            self.logger.error("Failed to read session %s: %s", hash_session_id(session_id), e)
            raise SessionStoreUnavailableFault(store_name=self.name, cause=str(e))
        return self._decode(data, session_id)

    def delete(self, session_id: str) -> None:
        path = self._get_path(session_id)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise SessionStoreUnavailableFault(store_name=self.name, cause=str(e))

    def ids(self) -> Iterator[str]:
        for path in sorted(self.directory.glob(f"*{self.suffix}")):
            session_id = path.name[: -len(self.suffix)]
            if is_valid_id(session_id):
                yield session_id

    def cleanup_expired(self, idle_ttl: timedelta, now: datetime | None = None) -> int:
        now = now or datetime.now(timezone.utc)
        removed = 0

        for session_id in list(self.ids()):
            try:
                record = self.fetch(session_id)
            except SessionStoreCorruptedFault:
                self.logger.warning("Skipping corrupted session file %s", hash_session_id(session_id))
                continue

            if record is not None and record_is_idle(record, idle_ttl, now):
                self.delete(session_id)
                removed += 1

        return removed

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        paths = list(self.directory.glob(f"*{self.suffix}"))
        return {
            "total_sessions": len(paths),
            "total_size_bytes": sum(p.stat().st_size for p in paths),
            "directory": str(self.directory),
            "encrypted": self.encryptor is not None,
        }


# ============================================================================
# Store Factory
# ============================================================================

def create_store(config: SessionConfig) -> MemoryStore | FileStore:
    """
    Create session store from configuration.

    Raises:
        ValueError: If store type is unsupported
    """
    if config.store == "memory":
        return MemoryStore(max_sessions=config.max_sessions)
    elif config.store == "file":
        encryptor = None
        if config.encryption_key:
            from .crypto import RecordEncryptor

            encryptor = RecordEncryptor(config.encryption_key)
        return FileStore(config.store_dir, encryptor=encryptor)
    else:
        raise ValueError(f"Unsupported session store: {config.store}")
