"""Shared plumbing for the SQLAlchemy repositories.

Every repository works on a caller-provided `sqlalchemy.orm.Session`. Writes
commit once per operation; any `SQLAlchemyError` rolls the transaction back
and surfaces as `StorageError`.
"""

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from trackme.core.errors import StorageError


logger = logging.getLogger(__name__)


class _LockRegistry:
    """Process-wide locks keyed by session id (or a named resource)."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = defaultdict(threading.RLock)

    def get(self, key: str) -> threading.RLock:
        with self._guard:
            return self._locks[key]

    def discard(self, key: str) -> None:
        with self._guard:
            self._locks.pop(key, None)


session_locks = _LockRegistry()

# Serializes anything that can flip which session is active
ACTIVE_FLAG_KEY = "__active_session__"


class BaseRepository:
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _locked(self, *keys: str):
        """Hold the registry locks for `keys` (acquired in sorted order)."""
        locks = [session_locks.get(k) for k in sorted(set(keys))]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()

    @contextmanager
    def _transaction(self, action: str):
        """Commit on success; roll back and raise StorageError on DB failure.

        Non-storage exceptions (e.g. DataInconsistencyError from a flush hook)
        also roll back but propagate unchanged.
        """
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Storage failure while trying to %s: %s", action, e)
            raise StorageError(f"Failed to {action}", cause=e) from e
        except Exception:
            self.db.rollback()
            raise

    @contextmanager
    def _reading(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Storage failure while trying to %s: %s", action, e)
            raise StorageError(f"Failed to {action}", cause=e) from e
