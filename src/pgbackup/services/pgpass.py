"""Credential lookup in the invoking user's .pgpass file."""

from typing import List, Optional

from pgbackup.models import CredentialEntry

FIELD_COUNT = 5


def split_pgpass_line(line: str) -> List[str]:
    """Splits a ``host:port:database:username:password`` line.

    Backslash escapes ``\\:`` and ``\\\\`` are honoured as libpq does. Once four
    separators have been seen, further colons belong to the password.
    """
    fields: List[str] = []
    current: List[str] = []
    escaped = False

    for char in line:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == ":" and len(fields) < FIELD_COUNT - 1:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)

    if escaped:
        current.append("\\")
    fields.append("".join(current))
    return fields


def parse_pgpass_line(line: str) -> Optional[CredentialEntry]:
    line = line.rstrip("\r\n")
    if line.startswith("#"):
        return None

    fields = split_pgpass_line(line)
    if len(fields) < FIELD_COUNT - 1:
        return None
    fields += [""] * (FIELD_COUNT - len(fields))

    host, port, database, username, password = fields
    if not username:
        return None
    return CredentialEntry(
        host=host,
        port=port,
        database=database,
        username=username,
        password=password,
    )


class PgpassService:
    """Reads .pgpass entries once per run and finds the login for a database."""

    def __init__(self, pgpass_file: str, logger):
        self.pgpass_file = pgpass_file
        self.logger = logger
        self._entries: Optional[List[CredentialEntry]] = None

    def load(self) -> List[CredentialEntry]:
        if self._entries is not None:
            return self._entries

        entries: List[CredentialEntry] = []
        try:
            with open(self.pgpass_file, "r", encoding="utf-8", errors="replace") as file_obj:
                for line in file_obj:
                    entry = parse_pgpass_line(line)
                    if entry is not None:
                        entries.append(entry)
        except FileNotFoundError:
            self.logger.warning("Credentials file not found: %s", self.pgpass_file)
        except OSError as exc:
            self.logger.warning("Could not read credentials file %s: %s", self.pgpass_file, exc)

        self._entries = entries
        return entries

    def lookup(self, database: str) -> Optional[CredentialEntry]:
        # Host and port are not compared: all databases live on the local server.
        for entry in self.load():
            if entry.database == database:
                return entry
        return None
