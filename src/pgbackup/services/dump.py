"""pg_dump export service for pgbackup."""

import os
import tempfile
from typing import Callable, List, Optional, Tuple

from pgbackup.constants import CUSTOM_ARCHIVE_EXTENSION, PARTIAL_FILE_SUFFIX, SQL_ARCHIVE_EXTENSION
from pgbackup.errors import BackupError
from pgbackup.models import DumpResult, RunConfig
from pgbackup.services.filesystem import default_file_mode


def artifact_paths(config: RunConfig, database: str) -> Tuple[str, str]:
    custom_path = os.path.join(
        config.backup_dir, f"{database}__{config.date_stamp}{CUSTOM_ARCHIVE_EXTENSION}"
    )
    sql_path = os.path.join(
        config.backup_dir, f"{database}__full_{config.date_stamp}{SQL_ARCHIVE_EXTENSION}"
    )
    return custom_path, sql_path


class DumpService:
    """Writes the custom archive and the compressed SQL export of a database.

    Each export goes to a hidden temporary file next to its final path and is
    renamed into place only once the dump succeeded, so an interrupted run
    never leaves a truncated artifact under the final name.
    """

    def __init__(self, logger, filesystem_service):
        self.logger = logger
        self.filesystem_service = filesystem_service

    @staticmethod
    def _user_args(username: Optional[str]) -> List[str]:
        return ["-U", username] if username else []

    def custom_dump_command(self, config: RunConfig, database: str, username: Optional[str]) -> List[str]:
        return [config.pg_dump_command, *self._user_args(username), "-Fc", database]

    def sql_dump_command(self, config: RunConfig, database: str, username: Optional[str]) -> List[str]:
        return [config.pg_dump_command, *self._user_args(username), "--column-inserts", database]

    def _write_atomically(self, final_path: str, writer: Callable[[str], None]):
        directory, name = os.path.split(final_path)
        try:
            fd, temp_path = tempfile.mkstemp(
                prefix=f".{name}.", suffix=PARTIAL_FILE_SUFFIX, dir=directory or "."
            )
        except OSError as exc:
            raise BackupError(f"Could not write {final_path}: {exc}") from exc
        os.close(fd)
        try:
            writer(temp_path)
            # mkstemp creates 0600 files; artifacts get the usual umask-derived mode.
            self.filesystem_service.set_permissions(temp_path, default_file_mode())
            os.replace(temp_path, final_path)
        except OSError as exc:
            raise BackupError(f"Could not write {final_path}: {exc}") from exc
        finally:
            self.filesystem_service.remove_file(temp_path)

    def dump_custom(
        self,
        config: RunConfig,
        database: str,
        username: Optional[str],
        command_runner,
        env=None,
    ) -> DumpResult:
        custom_path, _ = artifact_paths(config, database)
        cmd = self.custom_dump_command(config, database, username)

        try:
            self._write_atomically(
                custom_path,
                lambda temp_path: command_runner.run_to_file(cmd, temp_path, env=env),
            )
        except BackupError as exc:
            return DumpResult(kind="custom", path=custom_path, success=False, error=str(exc))
        return DumpResult(kind="custom", path=custom_path, success=True)

    def dump_sql(
        self,
        config: RunConfig,
        database: str,
        username: Optional[str],
        command_runner,
        env=None,
    ) -> DumpResult:
        _, sql_path = artifact_paths(config, database)
        cmd = self.sql_dump_command(config, database, username)

        try:
            self._write_atomically(
                sql_path,
                lambda temp_path: command_runner.run_pipeline(
                    cmd, [config.gzip_command, "-c"], temp_path, env=env
                ),
            )
        except BackupError as exc:
            return DumpResult(kind="sql", path=sql_path, success=False, error=str(exc))
        return DumpResult(kind="sql", path=sql_path, success=True)
