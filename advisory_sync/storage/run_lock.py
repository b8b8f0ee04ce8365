"""
Single-flight guard around a sync run.

The store has no locking of its own, so every run that may write to it
holds an exclusive file lock for its whole duration. A second invocation
fails immediately instead of waiting.
"""
import logging
from pathlib import Path

from filelock import FileLock, Timeout

from errors import SyncAlreadyInProgress

logger = logging.getLogger(__name__)


class SyncLock:
    """Exclusive, non-blocking run lock backed by filelock."""

    def __init__(self, lock_path):
        self.lock_path = Path(lock_path)
        self._lock = FileLock(str(self.lock_path), timeout=0)

    @property
    def is_locked(self) -> bool:
        return self._lock.is_locked

    def acquire(self):
        """
        Raises:
            SyncAlreadyInProgress: If another run holds the lock
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._lock.acquire()
        except Timeout as e:
            raise SyncAlreadyInProgress(
                f"Another sync run holds {self.lock_path}"
            ) from e
        logger.debug(f"Run lock acquired: {self.lock_path}")

    def release(self):
        if self._lock.is_locked:
            self._lock.release()
            logger.debug(f"Run lock released: {self.lock_path}")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
