"""Shared constants for pgbackup."""

DEFAULT_BACKUP_DIR = "/var/tmp/backup"
DEFAULT_DATABASE = "postgres"
DEFAULT_TIMEOUT_SECONDS = 300
DEFAULT_RETENTION_DAYS = 90

PRIVILEGED_USER = "postgres"
RESERVED_DATABASES = ("template0", "template1", "postgres")

CUSTOM_ARCHIVE_EXTENSION = ".db"
SQL_ARCHIVE_EXTENSION = ".sql.gz"
PRUNABLE_SUFFIXES = (".db", ".sql", ".sql.gz")
PARTIAL_FILE_SUFFIX = ".partial"

LOCK_FILE_NAME = ".pgbackup.lock"
CONFIG_FILE_NAME = ".pgbackup.yml"
