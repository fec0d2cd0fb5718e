"""Configuration loader for pgbackup."""

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from pgbackup.errors import BackupError

FLAG_TYPES = (bool, int, str)
TEXT_TYPES = (str,)


class ConfigLoader:
    """Loads YAML configuration files used as defaults below env and CLI.

    Values are checked against the YAML types each key accepts. Flags take
    booleans, integers or strings since they share the loose environment
    rules, and ``timeout`` may be a string for the same reason.
    """

    KEY_TYPES: Dict[str, Tuple[type, ...]] = {
        "backup_dir": TEXT_TYPES,
        "timeout": (int, str),
        "verbose": FLAG_TYPES,
        "explicit_login": FLAG_TYPES,
        "default_user": TEXT_TYPES,
        "default_password": TEXT_TYPES,
        "default_database": TEXT_TYPES,
        "pgpass_file": TEXT_TYPES,
        "retention_days": (int,),
        "log_file": TEXT_TYPES,
        "report_file": TEXT_TYPES,
        "dry_run": FLAG_TYPES,
        "psql_command": TEXT_TYPES,
        "pg_dump_command": TEXT_TYPES,
        "gzip_command": TEXT_TYPES,
    }
    SUPPORTED_KEYS = set(KEY_TYPES)

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.is_file():
            raise BackupError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise BackupError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise BackupError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(str(key) for key in set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            raise BackupError(f"Unknown configuration keys: {', '.join(unknown)}")

        return {key: self._check_type(key, value) for key, value in parsed.items()}

    def _check_type(self, key: str, value: Any) -> Any:
        # An empty YAML value means "not set".
        if value is None:
            return None

        allowed = self.KEY_TYPES[key]
        # YAML booleans are ints to isinstance; only flags accept them.
        if isinstance(value, bool) and bool not in allowed:
            valid = False
        else:
            valid = isinstance(value, allowed)

        if not valid:
            expected = " or ".join(kind.__name__ for kind in allowed)
            raise BackupError(
                f"Invalid value for '{key}' in config file: expected {expected}, "
                f"got {type(value).__name__}."
            )
        return value
