import logging
import os
import subprocess
from typing import Dict, List, Optional, Tuple

from rich.console import Console

from .constants import LOCK_FILE_NAME
from .errors import BackupError
from .models import DatabaseBackupResult, RunConfig
from .services.catalog import DatabaseCatalogService
from .services.command_runner import CommandRunner
from .services.dump import DumpService, artifact_paths
from .services.filesystem import FileSystemService
from .services.lock import RunLock
from .services.pgpass import PgpassService
from .services.report import RunReportService

console = Console(stderr=True)
logger = logging.getLogger("pgbackup")


class PgBackup:
    """Backs up every user database of the local PostgreSQL server."""

    def __init__(self, config: RunConfig, environ: Optional[Dict[str, str]] = None):
        self.config = config
        self.environ = dict(os.environ if environ is None else environ)

        self.command_runner = CommandRunner(logger=logger, default_timeout=config.timeout)
        self.filesystem_service = FileSystemService(logger=logger)
        self.catalog_service = DatabaseCatalogService(logger=logger)
        self.pgpass_service = PgpassService(pgpass_file=config.pgpass_file, logger=logger)
        self.dump_service = DumpService(logger=logger, filesystem_service=self.filesystem_service)
        self.report_service: Optional[RunReportService] = None
        if config.report_file:
            self.report_service = RunReportService(report_file=config.report_file, logger=logger)

        self.results: List[DatabaseBackupResult] = []
        self.pruned: List[str] = []

    def _run_cmd(
        self,
        cmd: List[str],
        capture_output: bool = False,
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        return self.command_runner.run(
            cmd,
            capture_output=capture_output,
            env=env if env is not None else self.environ,
        )

    def _report_metadata(self) -> Dict[str, object]:
        return {
            "backup_dir": self.config.backup_dir,
            "date": self.config.date_stamp,
            "explicit_login": self.config.explicit_login,
            "timeout": self.config.timeout,
            "retention_days": self.config.retention_days,
            "default_user": self.config.default_user,
            "default_database": self.config.default_database,
            "dry_run": self.config.dry_run,
        }

    def list_databases(self) -> List[str]:
        return self.catalog_service.list_databases(self.config, self._run_cmd, base_env=self.environ)

    def prepare_backup_dir(self):
        self.filesystem_service.ensure_backup_dir(self.config.backup_dir)

    def resolve_username(self, database: str) -> Tuple[bool, Optional[str]]:
        """Returns whether ``database`` can be backed up and the login to use."""
        if not self.config.explicit_login:
            return True, None

        entry = self.pgpass_service.lookup(database)
        if entry is None:
            return False, None

        logger.debug("using configured db user: %s", entry.username)
        return True, entry.username

    def backup_database(self, database: str) -> DatabaseBackupResult:
        logger.debug("DATABASE: %s ...", database)

        allowed, username = self.resolve_username(database)
        if not allowed:
            logger.warning("SKIP pg database not configured in pgpass: %s", database)
            return DatabaseBackupResult(
                database=database,
                skipped=True,
                skip_reason="no credentials in pgpass",
            )

        result = DatabaseBackupResult(database=database, username=username)
        result.custom = self.dump_service.dump_custom(
            self.config, database, username, self.command_runner, env=self.environ
        )
        if not result.custom.success:
            logger.error("Custom-format dump failed for %s: %s", database, result.custom.error)

        result.sql = self.dump_service.dump_sql(
            self.config, database, username, self.command_runner, env=self.environ
        )

        if result.succeeded:
            logger.debug(
                "OK pg database %s saved [%s] in %s",
                database,
                self.config.date_stamp,
                self.config.backup_dir,
            )
        else:
            logger.error("ERROR creating database backup for %s: %s", database, result.sql.error)
        return result

    def prune_backups(self):
        self.pruned = self.filesystem_service.prune_backups(
            self.config.backup_dir, self.config.retention_days
        )
        if self.report_service:
            self.report_service.add_pruned(self.pruned)

    def plan(self, databases: List[str]):
        """Logs what a real run would write and prune, without touching anything."""
        for database in databases:
            allowed, username = self.resolve_username(database)
            if not allowed:
                logger.warning("SKIP pg database not configured in pgpass: %s", database)
                continue
            custom_path, sql_path = artifact_paths(self.config, database)
            logger.info(
                "Would back up %s%s to %s and %s",
                database,
                f" as {username}" if username else "",
                custom_path,
                sql_path,
            )

        for file_path in self.filesystem_service.find_expired_backups(
            self.config.backup_dir, self.config.retention_days
        ):
            logger.info("Would remove expired backup: %s", file_path)

    def _summarize(self):
        saved = [result for result in self.results if result.succeeded]
        skipped = [result for result in self.results if result.skipped]
        failed = [result for result in self.results if not result.skipped and not result.succeeded]
        logger.debug(
            "Backup run finished: %s saved, %s skipped, %s failed, %s pruned.",
            len(saved),
            len(skipped),
            len(failed),
            len(self.pruned),
        )
        if failed:
            console.print(
                "[yellow]Backups failed for: "
                f"{', '.join(result.database for result in failed)}[/yellow]"
            )

    def run(self) -> int:
        exit_code = 1
        report_status = "failed"
        report_error: Optional[str] = None

        try:
            logger.debug("Starting pgbackup (explicit login: %s)", self.config.explicit_login)
            if self.report_service:
                self.report_service.start_run(self._report_metadata())

            databases = self.list_databases()
            logger.debug("PG databases [%s]: %s", self.config.date_stamp, " ".join(databases))

            if self.config.dry_run:
                self.plan(databases)
                report_status = "dry_run"
                exit_code = 0
                return exit_code

            self.prepare_backup_dir()

            with RunLock(os.path.join(self.config.backup_dir, LOCK_FILE_NAME), logger=logger):
                self.filesystem_service.sweep_partial_files(self.config.backup_dir)
                for database in databases:
                    result = self.backup_database(database)
                    self.results.append(result)
                    if self.report_service:
                        self.report_service.add_database(result)

                self.prune_backups()

            self._summarize()
            report_status = "success"
            exit_code = 0
            return exit_code

        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            report_status = "aborted"
            report_error = "Operation cancelled by user."
            exit_code = 1
            return exit_code
        except BackupError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            report_error = str(exc)
            exit_code = 1
            return exit_code
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            report_error = str(exc)
            exit_code = 1
            return exit_code
        finally:
            if self.report_service:
                self.report_service.finalize(report_status, error=report_error)
