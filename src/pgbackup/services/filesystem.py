"""Filesystem helpers for pgbackup."""

import logging
import os
import sys
import time
from typing import List, Optional

from pgbackup.constants import PARTIAL_FILE_SUFFIX, PRUNABLE_SUFFIXES
from pgbackup.errors import BackupError
from pgbackup.errors_catalog import actionable_error

SECONDS_PER_DAY = 86400


def default_file_mode() -> int:
    """Mode a plain ``open()`` would give a new file under the current umask."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


class FileSystemService:
    """Encapsulates backup directory side effects."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def ensure_backup_dir(self, path: str):
        if not os.path.isdir(path):
            self.logger.debug("creating db backup directory: %s", path)
            try:
                # Non-recursive: a missing parent is an error.
                os.mkdir(path)
            except OSError as exc:
                raise BackupError(
                    actionable_error("backup_dir_create_failed", path=path, reason=str(exc))
                ) from exc

        if not (os.path.isdir(path) and os.access(path, os.W_OK)):
            raise BackupError(actionable_error("backup_dir_inaccessible", path=path))

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def _scan_files(self, path: str, matches) -> List[os.DirEntry]:
        """Regular files directly in ``path`` whose name satisfies ``matches``."""
        found = []
        try:
            with os.scandir(path) as entries:
                for entry in entries:
                    if not matches(entry.name):
                        continue
                    try:
                        if entry.is_file(follow_symlinks=False):
                            found.append(entry)
                    except OSError as exc:
                        self.logger.error("Could not inspect %s: %s", entry.path, exc)
        except OSError as exc:
            self.logger.error("Could not scan backup directory %s: %s", path, exc)
        return found

    def find_expired_backups(
        self, path: str, retention_days: int, now: Optional[float] = None
    ) -> List[str]:
        """Backup files directly in ``path`` older than ``retention_days`` whole days."""
        if not os.path.isdir(path):
            return []

        current_time = time.time() if now is None else now
        expired = []
        for entry in self._scan_files(path, lambda name: name.endswith(PRUNABLE_SUFFIXES)):
            try:
                mtime = entry.stat(follow_symlinks=False).st_mtime
            except OSError as exc:
                self.logger.error("Could not inspect %s: %s", entry.path, exc)
                continue
            age_days = int((current_time - mtime) // SECONDS_PER_DAY)
            if age_days > retention_days:
                expired.append(entry.path)
        return sorted(expired)

    def prune_backups(self, path: str, retention_days: int, now: Optional[float] = None) -> List[str]:
        removed = []
        for file_path in self.find_expired_backups(path, retention_days, now=now):
            self.logger.info("Removing expired backup: %s", file_path)
            try:
                os.remove(file_path)
            except OSError as exc:
                self.logger.error("Could not remove %s: %s", file_path, exc)
                continue
            removed.append(file_path)
        return removed

    def sweep_partial_files(self, path: str) -> List[str]:
        """Removes export temp files left behind by a run that was killed.

        Only safe while the run lock is held, since a live run writes its
        exports under the same names.
        """
        stale = self._scan_files(
            path, lambda name: name.startswith(".") and name.endswith(PARTIAL_FILE_SUFFIX)
        )
        removed = []
        for entry in sorted(stale, key=lambda item: item.path):
            self.logger.info("Removing stale partial export: %s", entry.path)
            try:
                os.remove(entry.path)
            except OSError as exc:
                self.logger.error("Could not remove %s: %s", entry.path, exc)
                continue
            removed.append(entry.path)
        return removed

    def remove_file(self, path: str):
        if os.path.exists(path):
            try:
                os.remove(path)
                self.logger.debug("Removed file: %s", path)
            except OSError as exc:
                self.logger.warning("Could not remove %s: %s", path, exc)
