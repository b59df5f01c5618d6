"""Core domain models for SQL Server metadata.

These models represent databases, files, logins and permissions in a simple,
immutable form. They are intentionally free of pyodbc types and UI/CLI
concerns so the rename and permission logic can run against any adapter.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

SYSTEM_DATABASES = frozenset({"master", "model", "msdb", "tempdb", "distribution"})


class FileType(str, Enum):
    """
    Enumeration of database file types as reported by `sys.database_files`.

    Values:
        ROWS: Data file.
        LOG: Transaction log file.
        FILESTREAM: FILESTREAM container.
        FULLTEXT: Full-text catalog file (pre-2008 layouts).
    """

    ROWS = "ROWS"
    LOG = "LOG"
    FILESTREAM = "FILESTREAM"
    FULLTEXT = "FULLTEXT"

    @property
    def tag(self) -> str:
        """Short tag substituted for the `<FT>` placeholder."""
        return _FILE_TYPE_TAGS[self]


_FILE_TYPE_TAGS = {
    FileType.ROWS: "",
    FileType.LOG: "LOG",
    FileType.FILESTREAM: "FS",
    FileType.FULLTEXT: "FT",
}


class PermissionState(str, Enum):
    """
    State of a permission row, using the `state` codes of `sys.*_permissions`.

    Values:
        GRANT: Permission granted.
        GRANT_WITH_GRANT: Permission granted with GRANT OPTION.
        DENY: Permission denied.
    """

    GRANT = "G"
    GRANT_WITH_GRANT = "W"
    DENY = "D"


@dataclass(frozen=True)
class DatabaseInfo:
    """
    Represents a database on a SQL Server instance.

    Attributes:
        name: Database name.
        state: State description (ONLINE, OFFLINE, RESTORING, ...).
        is_accessible: False when the current principal cannot open it.
        is_mirrored: True when database mirroring is configured.
        in_availability_group: True when the database is an AG replica.
        owner: Login owning the database, if known.
    """

    name: str
    state: str = "ONLINE"
    is_accessible: bool = True
    is_mirrored: bool = False
    in_availability_group: bool = False
    owner: str | None = None

    @property
    def is_system(self) -> bool:
        return self.name.lower() in SYSTEM_DATABASES


@dataclass(frozen=True)
class FileGroupInfo:
    """Lightweight representation of a filegroup."""

    name: str
    is_default: bool = False


@dataclass(frozen=True)
class DataFileInfo:
    """
    Represents a database file.

    Attributes:
        logical_name: Database-internal file name.
        physical_name: Full path of the file on the server host.
        type: File type.
        filegroup: Filegroup name; None for log files.
    """

    logical_name: str
    physical_name: str
    type: FileType = FileType.ROWS
    filegroup: str | None = None


@dataclass(frozen=True)
class Permission:
    """
    A single permission held by a principal.

    `securable` is empty for server- and database-class permissions and holds
    the quoted securable (e.g. `[dbo].[Orders]` or `SCHEMA::[sales]`) for
    object- and schema-level permissions.
    """

    name: str
    state: PermissionState
    securable: str = ""


@dataclass(frozen=True)
class LoginInfo:
    """Lightweight representation of a server login."""

    name: str
    sid: bytes = b""
    login_type: str = "SQL_LOGIN"
    is_disabled: bool = False
    default_database: str | None = None


@dataclass(frozen=True)
class DatabaseUser:
    """
    A database user mapped to a login.

    `create_script` holds the T-SQL that creates the user, with user and login
    names bracket-quoted so they can be substituted literally.
    """

    name: str
    login_name: str | None = None
    default_schema: str | None = None
    create_script: str = ""


@dataclass(frozen=True)
class AgentJob:
    """SQL Agent job and its owning login."""

    name: str
    owner: str


@dataclass(frozen=True)
class Credential:
    """Server credential and the identity it maps to."""

    name: str
    identity: str
