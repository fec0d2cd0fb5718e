"""Database enumeration service for pgbackup."""

from typing import Dict, List, Mapping, Optional

from pgbackup.constants import RESERVED_DATABASES
from pgbackup.errors import BackupError
from pgbackup.errors_catalog import actionable_error
from pgbackup.models import RunConfig

LIST_DATABASES_SQL = "select datname from pg_database where datname not in ({})".format(
    ", ".join(f"'{name}'" for name in RESERVED_DATABASES)
)


class DatabaseCatalogService:
    """Lists the databases of the local server that should be backed up."""

    def __init__(self, logger):
        self.logger = logger

    def build_command(self, config: RunConfig) -> List[str]:
        cmd = [config.psql_command]
        if config.default_user:
            cmd += ["-U", config.default_user]
        cmd += ["-Atc", LIST_DATABASES_SQL]
        return cmd

    def build_env(self, config: RunConfig, base_env: Optional[Mapping[str, str]]) -> Dict[str, str]:
        # The password only ever reaches psql through its environment.
        env = dict(base_env or {})
        if config.default_password:
            env["PGPASSWORD"] = config.default_password
        if config.default_database:
            env["PGDATABASE"] = config.default_database
        return env

    def list_databases(self, config: RunConfig, run_cmd, base_env=None) -> List[str]:
        try:
            result = run_cmd(
                self.build_command(config),
                capture_output=True,
                env=self.build_env(config, base_env),
            )
        except BackupError as exc:
            raise BackupError(actionable_error("list_databases_failed", reason=str(exc))) from exc

        databases: List[str] = []
        for line in (result.stdout or "").splitlines():
            if line and line not in databases:
                databases.append(line)
        return databases
