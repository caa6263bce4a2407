"""
Advisory store lock (cross-platform)

Serialises cooperating GoalOS processes on one machine around a logical
store operation. Processes that write the store without taking the lock
are not serialised.

- Unix/Linux/macOS: fcntl.flock
- Windows: msvcrt.locking

Usage:
    lock = StoreLock(paths.lock_file, timeout=10.0)
    with lock:
        # ... read-modify-write ...
"""

import logging
import os
import platform
import threading
import time
from pathlib import Path
from typing import IO, Optional

from goalos.core.errors import LockTimeoutError, StorageError

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.05


class _LockBusy(Exception):
    """The lock is held by another process"""


class StoreLock:
    """
    Re-entrant advisory file lock

    Re-entrant within one StoreLock instance: nested `with lock:` blocks
    only touch the OS lock on the outermost enter/exit.
    """

    def __init__(self, lock_path: Path, timeout: float = 10.0):
        self.lock_path = Path(lock_path)
        self.timeout = timeout
        self._handle: Optional[IO[str]] = None
        self._depth = 0
        self._thread_lock = threading.RLock()

    @property
    def is_held(self) -> bool:
        return self._depth > 0

    def acquire(self) -> None:
        """
        Acquire the lock, polling until timeout

        Raises:
            LockTimeoutError: Lock still held elsewhere after timeout
            StorageError: Lock file cannot be opened or locked
        """
        self._thread_lock.acquire()
        if self._depth > 0:
            self._depth += 1
            return

        try:
            self._handle = self._open()
            deadline = time.monotonic() + self.timeout
            while True:
                try:
                    _lock_handle(self._handle)
                    break
                except _LockBusy:
                    if time.monotonic() >= deadline:
                        raise LockTimeoutError(str(self.lock_path), self.timeout)
                    time.sleep(POLL_INTERVAL_SECONDS)
        except BaseException:
            self._close()
            self._thread_lock.release()
            raise

        self._depth = 1
        logger.debug(f"Acquired store lock {self.lock_path}")

    def release(self) -> None:
        if self._depth == 0:
            return

        self._depth -= 1
        try:
            if self._depth == 0:
                try:
                    _unlock_handle(self._handle)
                    logger.debug(f"Released store lock {self.lock_path}")
                finally:
                    self._close()
        finally:
            self._thread_lock.release()

    def __enter__(self) -> "StoreLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    def _open(self) -> IO[str]:
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            handle = open(self.lock_path, "a+", encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Cannot open lock file: {e}", path=str(self.lock_path)) from e

        # msvcrt locks a byte range; make sure byte 0 exists
        if platform.system() == "Windows" and os.path.getsize(self.lock_path) == 0:
            handle.write("\n")
            handle.flush()
        return handle

    def _close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


# ============================================
# Unix/Linux/macOS
# ============================================

def _lock_unix(handle: IO[str]) -> None:
    import fcntl

    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError as e:
        raise _LockBusy() from e
    except OSError as e:
        raise StorageError(f"fcntl.flock failed: {e}", path=handle.name) from e


def _unlock_unix(handle: IO[str]) -> None:
    import fcntl

    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    except OSError as e:
        raise StorageError(f"fcntl.flock unlock failed: {e}", path=handle.name) from e


# ============================================
# Windows
# ============================================

def _lock_windows(handle: IO[str]) -> None:
    import msvcrt

    try:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
    except OSError as e:
        # errno 13 / 36: held by another process
        if e.errno in (13, 36):
            raise _LockBusy() from e
        raise StorageError(f"msvcrt.locking failed: {e}", path=handle.name) from e


def _unlock_windows(handle: IO[str]) -> None:
    import msvcrt

    try:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
    except OSError as e:
        raise StorageError(f"msvcrt.locking unlock failed: {e}", path=handle.name) from e


def _lock_handle(handle: IO[str]) -> None:
    if platform.system() == "Windows":
        _lock_windows(handle)
    else:
        _lock_unix(handle)


def _unlock_handle(handle: IO[str]) -> None:
    if platform.system() == "Windows":
        _unlock_windows(handle)
    else:
        _unlock_unix(handle)
