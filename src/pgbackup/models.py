"""Shared domain models for pgbackup."""

from dataclasses import dataclass
from typing import Optional

from pgbackup.constants import DEFAULT_RETENTION_DAYS


@dataclass(frozen=True)
class RunConfig:
    """Settings resolved once per run, before any database is touched."""

    explicit_login: bool
    verbose: bool
    timeout: Optional[int]
    default_user: Optional[str]
    default_password: Optional[str]
    default_database: str
    backup_dir: str
    date_stamp: str
    pgpass_file: str
    retention_days: int = DEFAULT_RETENTION_DAYS
    psql_command: str = "psql"
    pg_dump_command: str = "pg_dump"
    gzip_command: str = "gzip"
    dry_run: bool = False
    report_file: Optional[str] = None


@dataclass(frozen=True)
class CredentialEntry:
    host: str
    port: str
    database: str
    username: str
    password: str


@dataclass(frozen=True)
class DumpResult:
    """Outcome of a single export of one database."""

    kind: str
    path: str
    success: bool
    error: Optional[str] = None


@dataclass
class DatabaseBackupResult:
    database: str
    skipped: bool = False
    skip_reason: Optional[str] = None
    username: Optional[str] = None
    custom: Optional[DumpResult] = None
    sql: Optional[DumpResult] = None

    @property
    def succeeded(self) -> bool:
        # Mirrors the historical behaviour: the SQL export decides the outcome.
        return self.sql is not None and self.sql.success
