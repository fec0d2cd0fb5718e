"""Run lock preventing overlapping backups into the same directory."""

import fcntl
import os
from typing import Optional

from pgbackup.errors import BackupError
from pgbackup.errors_catalog import actionable_error


class RunLock:
    """Exclusive, non-blocking ``flock`` held for the duration of a run."""

    def __init__(self, lock_path: str, logger):
        self.lock_path = lock_path
        self.logger = logger
        self._fd: Optional[int] = None

    def acquire(self):
        try:
            fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as exc:
            raise BackupError(f"Could not open lock file '{self.lock_path}': {exc}") from exc

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            os.close(fd)
            raise BackupError(actionable_error("run_locked", path=self.lock_path)) from exc
        except OSError as exc:
            os.close(fd)
            raise BackupError(f"Could not lock '{self.lock_path}': {exc}") from exc

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode("ascii"))
        self._fd = fd
        self.logger.debug("Acquired run lock: %s", self.lock_path)

    def release(self):
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        self.logger.debug("Released run lock: %s", self.lock_path)

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, *_exc_info):
        self.release()
        return False
