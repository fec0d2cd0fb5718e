import logging
import os

import click
from rich.console import Console
from rich.logging import RichHandler

from .constants import CONFIG_FILE_NAME
from .core import PgBackup
from .errors import BackupError
from .services.config_loader import ConfigLoader
from .services.environment import EnvironmentService

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_level=False,
            show_path=False,
        )
    ],
)


@click.command()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {CONFIG_FILE_NAME} if present.",
)
@click.option(
    "--backup-dir",
    required=False,
    type=click.Path(file_okay=False),
    help="Destination directory (env: PGBUP_DIR, default: /var/tmp/backup).",
)
@click.option(
    "--timeout",
    required=False,
    type=int,
    default=None,
    help="Per-command timeout in seconds, 0 disables it (env: TIMEOUT, default: 300).",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable progress logging (env: PGBUP_VERBOSE).")
@click.option(
    "--explicit-login/--no-explicit-login",
    default=None,
    help="Pass the .pgpass user of each database to pg_dump (env: PGBUP_EXPLICIT_LOGIN).",
)
@click.option(
    "--default-user",
    required=False,
    help="User for listing databases (env: PGBUP_DEFAULT_PGUSER).",
)
@click.option(
    "--default-database",
    required=False,
    help="Database to connect to for listing databases (env: PGBUP_DEFAULT_PGDATABASE).",
)
@click.option(
    "--pgpass-file",
    required=False,
    type=click.Path(dir_okay=False),
    help="Credentials file (env: PGPASSFILE, default: ~/.pgpass).",
)
@click.option(
    "--retention-days",
    required=False,
    type=int,
    default=None,
    help="Delete backups older than this many days (default: 90).",
)
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option(
    "--report-file",
    required=False,
    type=click.Path(dir_okay=False),
    help="Write a JSON report of the run to this path.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=None,
    help="List databases and planned files without writing or deleting anything.",
)
def main(
    config,
    backup_dir,
    timeout,
    verbose,
    explicit_login,
    default_user,
    default_database,
    pgpass_file,
    retention_days,
    log_file,
    report_file,
    dry_run,
):
    """Back up all databases of the local PostgreSQL server."""
    logger = logging.getLogger("pgbackup")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), CONFIG_FILE_NAME)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)

        cli_values = {
            "backup_dir": backup_dir,
            "timeout": timeout,
            "verbose": verbose,
            "explicit_login": explicit_login,
            "default_user": default_user,
            "default_database": default_database,
            "pgpass_file": pgpass_file,
            "retention_days": retention_days,
            "report_file": report_file,
            "dry_run": dry_run,
        }
        run_config = EnvironmentService(logger=logger).build(cli_values, config_values)
    except BackupError as exc:
        raise click.ClickException(str(exc)) from exc

    log_file = log_file or config_values.get("log_file")

    if run_config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if run_config.verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    raise SystemExit(PgBackup(run_config).run())


if __name__ == "__main__":
    main()
