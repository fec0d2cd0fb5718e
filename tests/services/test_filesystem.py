import os
import stat
import time

import pytest

from pgbackup.errors import BackupError
from pgbackup.services.filesystem import FileSystemService, default_file_mode


class DummyLogger:
    def __init__(self):
        self.infos = []
        self.warnings = []
        self.errors = []

    def debug(self, *_args, **_kwargs):
        return None

    def info(self, message, *args):
        self.infos.append(message % args)

    def warning(self, message, *args):
        self.warnings.append(message % args)

    def error(self, message, *args):
        self.errors.append(message % args)


def _touch(path, age_days, now):
    path.write_text("x", encoding="utf-8")
    mtime = now - age_days * 86400
    os.utime(path, (mtime, mtime))
    return path


def test_ensure_backup_dir_creates_missing_directory(tmp_path):
    service = FileSystemService(logger=DummyLogger())
    target = tmp_path / "backup"

    service.ensure_backup_dir(str(target))

    assert target.is_dir()


def test_ensure_backup_dir_accepts_existing_directory(tmp_path):
    service = FileSystemService(logger=DummyLogger())

    service.ensure_backup_dir(str(tmp_path))


def test_ensure_backup_dir_does_not_create_parents(tmp_path):
    service = FileSystemService(logger=DummyLogger())
    target = tmp_path / "missing" / "backup"

    with pytest.raises(BackupError, match="Failed to create backup directory"):
        service.ensure_backup_dir(str(target))

    assert not (tmp_path / "missing").exists()


def test_ensure_backup_dir_rejects_regular_file(tmp_path):
    service = FileSystemService(logger=DummyLogger())
    target = tmp_path / "backup"
    target.write_text("not a directory", encoding="utf-8")

    with pytest.raises(BackupError):
        service.ensure_backup_dir(str(target))


@pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root can write anywhere")
def test_ensure_backup_dir_rejects_read_only_directory(tmp_path):
    service = FileSystemService(logger=DummyLogger())
    target = tmp_path / "backup"
    target.mkdir()
    target.chmod(0o500)

    try:
        with pytest.raises(BackupError, match="Inaccessible backup directory"):
            service.ensure_backup_dir(str(target))
    finally:
        target.chmod(0o700)


def test_prune_removes_only_expired_backup_files(tmp_path):
    service = FileSystemService(logger=DummyLogger())
    now = time.time()

    old_db = _touch(tmp_path / "sales__2026-01-01.db", 100, now)
    old_sql = _touch(tmp_path / "legacy.sql", 100, now)
    old_gz = _touch(tmp_path / "sales__full_2026-01-01.sql.gz", 100, now)
    recent = _touch(tmp_path / "sales__2026-10-01.db", 10, now)
    other = _touch(tmp_path / "notes.txt", 100, now)
    nested_dir = tmp_path / "archive"
    nested_dir.mkdir()
    nested = _touch(nested_dir / "old__2025-01-01.db", 400, now)

    removed = service.prune_backups(str(tmp_path), 90, now=now)

    assert sorted(removed) == sorted([str(old_db), str(old_sql), str(old_gz)])
    assert not old_db.exists()
    assert not old_sql.exists()
    assert not old_gz.exists()
    assert recent.exists()
    assert other.exists()
    assert nested.exists()
    assert len(service.logger.infos) == 3


def test_prune_uses_whole_days_like_find_mtime(tmp_path):
    service = FileSystemService(logger=DummyLogger())
    now = time.time()

    boundary = _touch(tmp_path / "a.db", 90.5, now)
    expired = _touch(tmp_path / "b.db", 91.2, now)

    removed = service.prune_backups(str(tmp_path), 90, now=now)

    assert removed == [str(expired)]
    assert boundary.exists()


def test_prune_skips_directories_with_backup_suffix(tmp_path):
    service = FileSystemService(logger=DummyLogger())
    now = time.time()
    directory = tmp_path / "weird.db"
    directory.mkdir()
    os.utime(directory, (now - 200 * 86400, now - 200 * 86400))

    assert service.prune_backups(str(tmp_path), 90, now=now) == []
    assert directory.is_dir()


def test_find_expired_backups_on_missing_directory_is_empty(tmp_path):
    service = FileSystemService(logger=DummyLogger())

    assert service.find_expired_backups(str(tmp_path / "missing"), 90) == []


def test_prune_continues_after_failed_removal(tmp_path, monkeypatch):
    service = FileSystemService(logger=DummyLogger())
    now = time.time()
    first = _touch(tmp_path / "a.db", 100, now)
    second = _touch(tmp_path / "b.db", 100, now)
    real_remove = os.remove

    def flaky_remove(path):
        if path == str(first):
            raise PermissionError("denied")
        real_remove(path)

    monkeypatch.setattr("pgbackup.services.filesystem.os.remove", flaky_remove)

    removed = service.prune_backups(str(tmp_path), 90, now=now)

    assert removed == [str(second)]
    assert first.exists()
    assert "denied" in service.logger.errors[0]


def test_prune_logs_unreadable_entry_and_keeps_going(tmp_path, monkeypatch):
    service = FileSystemService(logger=DummyLogger())
    now = time.time()
    vanished = _touch(tmp_path / "a.db", 100, now)
    expired = _touch(tmp_path / "b.db", 100, now)
    class FlakyEntry:
        def __init__(self, entry):
            self._entry = entry
            self.name = entry.name
            self.path = entry.path

        def is_file(self, follow_symlinks=True):
            return self._entry.is_file(follow_symlinks=follow_symlinks)

        def stat(self, follow_symlinks=True):
            if self.path == str(vanished):
                raise FileNotFoundError("gone")
            return self._entry.stat(follow_symlinks=follow_symlinks)

    real_scandir = os.scandir

    class FlakyScandir:
        def __init__(self, path):
            self._iterator = real_scandir(path)

        def __enter__(self):
            return (FlakyEntry(entry) for entry in self._iterator)

        def __exit__(self, *exc_info):
            self._iterator.close()

    monkeypatch.setattr("pgbackup.services.filesystem.os.scandir", FlakyScandir)

    removed = service.prune_backups(str(tmp_path), 90, now=now)

    assert removed == [str(expired)]
    assert vanished.exists()
    assert "gone" in service.logger.errors[0]


def test_prune_logs_unreadable_directory(tmp_path, monkeypatch):
    service = FileSystemService(logger=DummyLogger())

    def denied_scandir(_path):
        raise PermissionError("permission denied")

    monkeypatch.setattr("pgbackup.services.filesystem.os.scandir", denied_scandir)

    assert service.prune_backups(str(tmp_path), 90) == []
    assert "permission denied" in service.logger.errors[0]


def test_sweep_partial_files_removes_leftovers_of_killed_runs(tmp_path):
    service = FileSystemService(logger=DummyLogger())
    now = time.time()
    stale = _touch(tmp_path / ".sales__2026-01-01.db.abc123.partial", 200, now)
    fresh = _touch(tmp_path / ".crm__full_2026-10-19.sql.gz.x1y2z3.partial", 0, now)
    visible = _touch(tmp_path / "notes.partial", 200, now)
    backup = _touch(tmp_path / "sales__2026-10-01.db", 10, now)

    removed = service.sweep_partial_files(str(tmp_path))

    assert removed == sorted([str(fresh), str(stale)])
    assert not stale.exists()
    assert not fresh.exists()
    assert visible.exists()
    assert backup.exists()
    assert len(service.logger.infos) == 2


def test_sweep_partial_files_ignores_directories(tmp_path):
    service = FileSystemService(logger=DummyLogger())
    directory = tmp_path / ".odd.partial"
    directory.mkdir()

    assert service.sweep_partial_files(str(tmp_path)) == []
    assert directory.is_dir()


def test_default_file_mode_follows_umask():
    previous = os.umask(0o027)
    try:
        assert default_file_mode() == 0o640
        assert os.umask(0o027) == 0o027
    finally:
        os.umask(previous)


@pytest.mark.skipif(not hasattr(os, "geteuid"), reason="POSIX permissions only")
def test_set_permissions_changes_mode(tmp_path):
    service = FileSystemService(logger=DummyLogger())
    target = tmp_path / "sales__2026-10-19.db"
    target.write_bytes(b"x")

    service.set_permissions(str(target), 0o644)

    assert stat.S_IMODE(target.stat().st_mode) == 0o644


def test_set_permissions_logs_failure(tmp_path):
    service = FileSystemService(logger=DummyLogger())

    service.set_permissions(str(tmp_path / "missing.db"), 0o644)

    assert "Could not set permissions" in service.logger.warnings[0]
