"""
Non-blocking lock serializing execute runs.

Two layers:
- a process-wide threading.Lock, so concurrent requests inside one API
  worker never both merge;
- on PostgreSQL, a session-level advisory lock (pg_try_advisory_lock) held
  on a dedicated connection, so separate worker processes are serialized too.

Neither layer waits: a held lock raises LockContentionError at once.
"""

import hashlib
import threading

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import Engine

from crm.deduplication.errors import LockContentionError

_process_locks: dict[str, threading.Lock] = {}
_registry_lock = threading.Lock()


def _process_lock(name: str) -> threading.Lock:
    with _registry_lock:
        return _process_locks.setdefault(name, threading.Lock())


def advisory_key(name: str) -> int:
    """Stable signed 64-bit key for pg advisory locks."""
    digest = hashlib.blake2b(name.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class EngineLock:
    """Context manager: ``with EngineLock(name, engine): ...``"""

    def __init__(self, name: str, engine: Engine | None = None):
        self.name = name
        self.engine = engine
        self._local = _process_lock(name)
        self._conn = None

    @property
    def _uses_advisory_lock(self) -> bool:
        return self.engine is not None and self.engine.dialect.name == "postgresql"

    def acquire(self) -> None:
        if not self._local.acquire(blocking=False):
            logger.warning(f"Lock '{self.name}' is held in this process")
            raise LockContentionError(self.name)

        if not self._uses_advisory_lock:
            return

        try:
            self._conn = self.engine.connect()
            acquired = self._conn.execute(
                text("SELECT pg_try_advisory_lock(:key)"), {"key": advisory_key(self.name)}
            ).scalar()
            # Session-level lock outlives the transaction; don't sit idle in one
            self._conn.commit()
        except Exception:
            self._close_connection()
            self._local.release()
            raise

        if not acquired:
            self._close_connection()
            self._local.release()
            logger.warning(f"Advisory lock '{self.name}' is held by another process")
            raise LockContentionError(self.name)

    def release(self) -> None:
        try:
            if self._conn is not None:
                self._conn.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": advisory_key(self.name)})
                self._conn.commit()
        finally:
            self._close_connection()
            self._local.release()

    def _close_connection(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def locked(self) -> bool:
        return self._local.locked()

    def __enter__(self) -> "EngineLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
