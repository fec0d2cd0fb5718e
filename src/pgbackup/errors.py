"""Domain errors for pgbackup."""


class BackupError(RuntimeError):
    """Raised when a backup step cannot complete."""
