"""
pgbackup - scheduled PostgreSQL backups with retention
"""

__version__ = "0.1.0"

from .core import PgBackup
from .errors import BackupError

__all__ = ["PgBackup", "BackupError"]
