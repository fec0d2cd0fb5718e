"""Builds the immutable run configuration from CLI, environment and config file."""

import getpass
import os
import re
from datetime import date
from typing import Any, Dict, Mapping, Optional

from pgbackup.constants import (
    DEFAULT_BACKUP_DIR,
    DEFAULT_DATABASE,
    DEFAULT_RETENTION_DAYS,
    DEFAULT_TIMEOUT_SECONDS,
    PRIVILEGED_USER,
)
from pgbackup.errors import BackupError
from pgbackup.models import RunConfig

ENV_VARS = {
    "explicit_login": "PGBUP_EXPLICIT_LOGIN",
    "verbose": "PGBUP_VERBOSE",
    "timeout": "TIMEOUT",
    "default_user": "PGBUP_DEFAULT_PGUSER",
    "default_password": "PGBUP_DEFAULT_PGPASSWORD",
    "default_database": "PGBUP_DEFAULT_PGDATABASE",
    "backup_dir": "PGBUP_DIR",
    "pgpass_file": "PGPASSFILE",
}


def parse_flag(value: Any) -> Optional[bool]:
    """Three-valued flag parsing.

    ``None`` and ``""`` mean "not set", ``"0"`` is false and any other value
    is true, matching how the cron environment has always set these flags.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0

    text = str(value)
    if text == "":
        return None
    return text != "0"


def parse_timeout(value: Any) -> Optional[int]:
    """Returns the timeout in seconds, or ``None`` when it is disabled."""
    if value is None or value == "":
        return DEFAULT_TIMEOUT_SECONDS
    if isinstance(value, bool):
        raise BackupError(f"Invalid timeout value: {value!r}")
    if isinstance(value, int):
        return value if value > 0 else None

    text = str(value).strip()
    if not re.fullmatch(r"[0-9]+", text):
        return None
    seconds = int(text)
    return seconds if seconds > 0 else None


def resolve_explicit_login(
    override: Optional[bool],
    current_user: Optional[str],
    ambient_user: Optional[str],
) -> bool:
    if override is not None:
        return override
    if current_user == PRIVILEGED_USER or ambient_user:
        return False
    return True


class EnvironmentService:
    """Resolves settings with the precedence CLI > environment > config file > default."""

    def __init__(self, logger, environ: Optional[Mapping[str, str]] = None, today: Optional[date] = None):
        self.logger = logger
        self.environ = dict(os.environ if environ is None else environ)
        self.today = today

    def current_user(self) -> Optional[str]:
        user = self.environ.get("USER")
        if user:
            return user
        try:
            return getpass.getuser()
        except (KeyError, OSError):
            return None

    def default_pgpass_file(self) -> str:
        home = self.environ.get("HOME") or os.path.expanduser("~")
        return os.path.join(home, ".pgpass")

    def _resolve(self, key: str, cli_values: Dict[str, Any], config_values: Dict[str, Any], default=None):
        cli_value = cli_values.get(key)
        if cli_value is not None:
            return cli_value

        env_name = ENV_VARS.get(key)
        if env_name:
            env_value = self.environ.get(env_name)
            if env_value:
                return env_value

        if config_values.get(key) is not None:
            return config_values[key]
        return default

    def _retention_days(self, value: Any) -> int:
        if isinstance(value, bool):
            raise BackupError(f"Invalid retention_days value: {value!r}")
        try:
            days = int(value)
        except (TypeError, ValueError) as exc:
            raise BackupError(f"Invalid retention_days value: {value!r}") from exc
        if days < 1:
            raise BackupError("retention_days must be a positive number of days.")
        return days

    def build(
        self,
        cli_values: Optional[Dict[str, Any]] = None,
        config_values: Optional[Dict[str, Any]] = None,
    ) -> RunConfig:
        cli_values = cli_values or {}
        config_values = config_values or {}

        override = parse_flag(self._resolve("explicit_login", cli_values, config_values))
        current_user = self.current_user()
        explicit_login = resolve_explicit_login(override, current_user, self.environ.get("PGUSER"))

        verbose = bool(parse_flag(self._resolve("verbose", cli_values, config_values)))

        raw_timeout = self._resolve("timeout", cli_values, config_values)
        timeout = parse_timeout(raw_timeout)
        if timeout is None and raw_timeout not in (0, "0"):
            self.logger.warning("Ignoring non-numeric timeout %r; commands will run unbounded.", raw_timeout)

        backup_dir = str(self._resolve("backup_dir", cli_values, config_values, DEFAULT_BACKUP_DIR))
        pgpass_file = str(
            self._resolve("pgpass_file", cli_values, config_values, self.default_pgpass_file())
        )
        report_file = self._resolve("report_file", cli_values, config_values)

        config = RunConfig(
            explicit_login=explicit_login,
            verbose=verbose,
            timeout=timeout,
            default_user=self._resolve("default_user", cli_values, config_values) or None,
            default_password=self._resolve("default_password", cli_values, config_values) or None,
            default_database=str(
                self._resolve("default_database", cli_values, config_values, DEFAULT_DATABASE)
            ),
            backup_dir=os.path.expanduser(backup_dir),
            date_stamp=(self.today or date.today()).isoformat(),
            pgpass_file=os.path.expanduser(pgpass_file),
            retention_days=self._retention_days(
                self._resolve("retention_days", cli_values, config_values, DEFAULT_RETENTION_DAYS)
            ),
            psql_command=str(config_values.get("psql_command") or "psql"),
            pg_dump_command=str(config_values.get("pg_dump_command") or "pg_dump"),
            gzip_command=str(config_values.get("gzip_command") or "gzip"),
            dry_run=bool(parse_flag(self._resolve("dry_run", cli_values, config_values))),
            report_file=os.path.expanduser(str(report_file)) if report_file else None,
        )

        self.logger.debug(
            "Resolved run config: user=%s explicit_login=%s timeout=%s backup_dir=%s",
            current_user,
            config.explicit_login,
            config.timeout,
            config.backup_dir,
        )
        return config
