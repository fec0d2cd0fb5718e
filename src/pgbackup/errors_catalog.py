"""Actionable error catalog for pgbackup."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "list_databases_failed": {
        "what": "Could not list PostgreSQL databases: {reason}",
        "next": "Check that the server is running and that PGBUP_DEFAULT_PGUSER / "
        "PGBUP_DEFAULT_PGPASSWORD (or PGUSER / PGPASSWORD) grant access.",
    },
    "backup_dir_create_failed": {
        "what": "Failed to create backup directory: {path} ({reason})",
        "next": "Create the parent directory or point PGBUP_DIR at an existing location.",
    },
    "backup_dir_inaccessible": {
        "what": "Inaccessible backup directory: {path}",
        "next": "Make sure the path is a directory writable by the user running the backup.",
    },
    "run_locked": {
        "what": "Another backup run is already using {path}.",
        "next": "Wait for it to finish or adjust the schedule so runs do not overlap.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
