from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlops.core.adapters.tsql import (
    grant_statement,
    quote_literal,
    quote_name,
    revoke_statement,
)
from sqlops.core.models import (
    AgentJob,
    Credential,
    DatabaseInfo,
    DatabaseUser,
    DataFileInfo,
    FileGroupInfo,
    FileType,
    LoginInfo,
    Permission,
    PermissionState,
)

if TYPE_CHECKING:
    import pyodbc

logger = logging.getLogger(__name__)

_LOGIN_TYPES = ("S", "U", "G", "E", "X")

_DATABASES_SQL = """
SELECT d.name,
       d.state_desc,
       HAS_DBACCESS(d.name) AS has_access,
       CASE WHEN m.mirroring_guid IS NULL THEN 0 ELSE 1 END AS is_mirrored,
       CASE WHEN d.replica_id IS NULL THEN 0 ELSE 1 END AS in_ag,
       SUSER_SNAME(d.owner_sid) AS owner
FROM sys.databases AS d
LEFT JOIN sys.database_mirroring AS m ON m.database_id = d.database_id
ORDER BY d.name
"""

_PERMISSIONS_SQL = """
SELECT p.class,
       p.permission_name,
       p.state,
       os.name AS object_schema,
       o.name AS object_name,
       c.name AS column_name,
       s.name AS schema_name
FROM {db}.sys.database_permissions AS p
JOIN {db}.sys.database_principals AS u ON u.principal_id = p.grantee_principal_id
LEFT JOIN {db}.sys.objects AS o ON p.class = 1 AND o.object_id = p.major_id
LEFT JOIN {db}.sys.schemas AS os ON os.schema_id = o.schema_id
LEFT JOIN {db}.sys.columns AS c
       ON p.class = 1 AND p.minor_id > 0
      AND c.object_id = p.major_id AND c.column_id = p.minor_id
LEFT JOIN {db}.sys.schemas AS s ON p.class = 3 AND s.schema_id = p.major_id
WHERE u.name = ? AND p.class IN ({classes})
"""


class SqlServerAdapter:
    """Adapter issuing T-SQL over a pyodbc connection (rename + security APIs)."""

    def __init__(self, connection: pyodbc.Connection, server: str) -> None:
        self.connection = connection
        self.server = server

    def _query(self, sql: str, *params) -> list[pyodbc.Row]:
        cursor = self.connection.cursor()
        try:
            cursor.execute(sql, *params)
            return cursor.fetchall()
        finally:
            cursor.close()

    def _exec(self, sql: str, *params) -> None:
        logger.debug("[%s] %s", self.server, sql)
        cursor = self.connection.cursor()
        try:
            cursor.execute(sql, *params)
            # drain result sets so errors raised after the first row surface here
            while cursor.nextset():
                pass
        finally:
            cursor.close()

    def _exec_in(self, database: str, sql: str, *params) -> None:
        """Run a statement in the context of `database`, then return to master."""
        self._exec(f"USE {quote_name(database)};")
        try:
            self._exec(sql, *params)
        finally:
            self._exec("USE [master];")

    # ---- rename -------------------------------------------------------------

    def list_databases(self) -> list[DatabaseInfo]:
        """Return all databases with accessibility, mirroring and AG flags."""
        out: list[DatabaseInfo] = []
        for row in self._query(_DATABASES_SQL):
            state = row[1] or "UNKNOWN"
            out.append(
                DatabaseInfo(
                    name=row[0],
                    state=state,
                    is_accessible=bool(row[2]) and state == "ONLINE",
                    is_mirrored=bool(row[3]),
                    in_availability_group=bool(row[4]),
                    owner=row[5],
                )
            )
        return out

    def list_filegroups(self, database: str) -> list[FileGroupInfo]:
        db = quote_name(database)
        rows = self._query(
            f"SELECT name, is_default FROM {db}.sys.filegroups ORDER BY data_space_id"
        )
        return [FileGroupInfo(name=r[0], is_default=bool(r[1])) for r in rows]

    def list_files(self, database: str) -> list[DataFileInfo]:
        db = quote_name(database)
        rows = self._query(
            f"""
            SELECT f.name, f.physical_name, f.type_desc, fg.name
            FROM {db}.sys.database_files AS f
            LEFT JOIN {db}.sys.filegroups AS fg ON fg.data_space_id = f.data_space_id
            ORDER BY f.file_id
            """
        )
        out: list[DataFileInfo] = []
        for r in rows:
            try:
                file_type = FileType(r[2])
            except ValueError:
                file_type = FileType.ROWS
            out.append(
                DataFileInfo(
                    logical_name=r[0],
                    physical_name=r[1],
                    type=file_type,
                    filegroup=r[3],
                )
            )
        return out

    def list_directory(self, path: str) -> list[str]:
        """List file names in a server-side directory via xp_dirtree."""
        rows = self._query("EXEC master.sys.xp_dirtree ?, 1, 1", path)
        # columns: subdirectory, depth, file (1 for files)
        return [r[0] for r in rows if len(r) > 2 and r[2] == 1]

    def server_host(self) -> str:
        rows = self._query(
            "SELECT CAST(SERVERPROPERTY('ComputerNamePhysicalNetBIOS') AS nvarchar(256))"
        )
        return rows[0][0] if rows and rows[0][0] else ""

    def rename_database(self, name: str, new_name: str, *, force: bool = False) -> None:
        if not force:
            self._exec(
                f"ALTER DATABASE {quote_name(name)} MODIFY NAME = {quote_name(new_name)};"
            )
            return

        self._exec(
            f"ALTER DATABASE {quote_name(name)} SET SINGLE_USER WITH ROLLBACK IMMEDIATE;"
        )
        current = name
        try:
            self._exec(
                f"ALTER DATABASE {quote_name(name)} MODIFY NAME = {quote_name(new_name)};"
            )
            current = new_name
        finally:
            self._exec(f"ALTER DATABASE {quote_name(current)} SET MULTI_USER;")

    def rename_filegroup(self, database: str, name: str, new_name: str) -> None:
        self._exec(
            f"ALTER DATABASE {quote_name(database)} "
            f"MODIFY FILEGROUP {quote_name(name)} NAME = {quote_name(new_name)};"
        )

    def rename_logical_file(self, database: str, name: str, new_name: str) -> None:
        self._exec(
            f"ALTER DATABASE {quote_name(database)} MODIFY FILE "
            f"(NAME = {quote_literal(name)}, NEWNAME = {quote_literal(new_name)});"
        )

    def set_file_path(self, database: str, logical_name: str, path: str) -> None:
        self._exec(
            f"ALTER DATABASE {quote_name(database)} MODIFY FILE "
            f"(NAME = {quote_literal(logical_name)}, FILENAME = {quote_literal(path)});"
        )

    def set_offline(self, database: str, *, force: bool = False) -> None:
        mode = "ROLLBACK IMMEDIATE" if force else "NO_WAIT"
        self._exec(f"ALTER DATABASE {quote_name(database)} SET OFFLINE WITH {mode};")

    def set_online(self, database: str) -> None:
        self._exec(f"ALTER DATABASE {quote_name(database)} SET ONLINE;")

    # ---- server security ----------------------------------------------------

    def get_login(self, name: str) -> LoginInfo | None:
        placeholders = ", ".join("?" for _ in _LOGIN_TYPES)
        rows = self._query(
            "SELECT name, sid, type_desc, is_disabled, default_database_name "
            f"FROM sys.server_principals WHERE name = ? AND type IN ({placeholders})",
            name,
            *_LOGIN_TYPES,
        )
        if not rows:
            return None
        r = rows[0]
        return LoginInfo(
            name=r[0],
            sid=bytes(r[1] or b""),
            login_type=r[2],
            is_disabled=bool(r[3]),
            default_database=r[4],
        )

    def system_admin_login(self) -> str:
        rows = self._query("SELECT name FROM sys.server_principals WHERE sid = 0x01")
        return rows[0][0] if rows else "sa"

    def login_server_roles(self, login: str) -> set[str]:
        rows = self._query(
            """
            SELECT r.name
            FROM sys.server_role_members AS m
            JOIN sys.server_principals AS r ON r.principal_id = m.role_principal_id
            JOIN sys.server_principals AS l ON l.principal_id = m.member_principal_id
            WHERE l.name = ?
            """,
            login,
        )
        return {r[0] for r in rows}

    def add_server_role_member(self, role: str, login: str) -> None:
        self._exec(f"ALTER SERVER ROLE {quote_name(role)} ADD MEMBER {quote_name(login)};")

    def drop_server_role_member(self, role: str, login: str) -> None:
        self._exec(f"ALTER SERVER ROLE {quote_name(role)} DROP MEMBER {quote_name(login)};")

    def server_permissions(self, login: str) -> set[Permission]:
        rows = self._query(
            """
            SELECT p.permission_name, p.state
            FROM sys.server_permissions AS p
            JOIN sys.server_principals AS l ON l.principal_id = p.grantee_principal_id
            WHERE l.name = ? AND p.class = 100
            """,
            login,
        )
        return {Permission(name=r[0], state=PermissionState(r[1])) for r in rows}

    def apply_server_permission(self, login: str, permission: Permission) -> None:
        self._exec(grant_statement(permission, login))

    def revoke_server_permission(self, login: str, permission: Permission) -> None:
        self._exec(revoke_statement(permission, login))

    def list_jobs(self) -> list[AgentJob]:
        rows = self._query("SELECT name, SUSER_SNAME(owner_sid) FROM msdb.dbo.sysjobs")
        return [AgentJob(name=r[0], owner=r[1] or "") for r in rows]

    def set_job_owner(self, job: str, login: str) -> None:
        self._exec(
            "EXEC msdb.dbo.sp_update_job @job_name = ?, @owner_login_name = ?",
            job,
            login,
        )

    def list_credentials(self) -> list[Credential]:
        rows = self._query("SELECT name, credential_identity FROM sys.credentials")
        return [Credential(name=r[0], identity=r[1] or "") for r in rows]

    def create_credential(self, name: str, identity: str) -> None:
        self._exec(
            f"CREATE CREDENTIAL {quote_name(name)} WITH IDENTITY = {quote_literal(identity)};"
        )

    # ---- database security --------------------------------------------------

    def get_user(self, database: str, login: str) -> DatabaseUser | None:
        db = quote_name(database)
        rows = self._query(
            f"""
            SELECT dp.name, sp.name, dp.default_schema_name
            FROM {db}.sys.database_principals AS dp
            JOIN sys.server_principals AS sp ON sp.sid = dp.sid
            WHERE sp.name = ?
            """,
            login,
        )
        if not rows:
            return None
        name, login_name, schema = rows[0]
        script = f"CREATE USER {quote_name(name)} FOR LOGIN {quote_name(login_name)}"
        if schema:
            script += f" WITH DEFAULT_SCHEMA = {quote_name(schema)}"
        return DatabaseUser(
            name=name,
            login_name=login_name,
            default_schema=schema,
            create_script=script + ";",
        )

    def execute(self, database: str, sql: str) -> None:
        self._exec_in(database, sql)

    def database_roles(self, database: str, user: str) -> set[str]:
        db = quote_name(database)
        rows = self._query(
            f"""
            SELECT r.name
            FROM {db}.sys.database_role_members AS m
            JOIN {db}.sys.database_principals AS r ON r.principal_id = m.role_principal_id
            JOIN {db}.sys.database_principals AS u ON u.principal_id = m.member_principal_id
            WHERE u.name = ?
            """,
            user,
        )
        return {r[0] for r in rows}

    def add_database_role_member(self, database: str, role: str, user: str) -> None:
        self._exec_in(
            database, f"ALTER ROLE {quote_name(role)} ADD MEMBER {quote_name(user)};"
        )

    def drop_database_role_member(self, database: str, role: str, user: str) -> None:
        self._exec_in(
            database, f"ALTER ROLE {quote_name(role)} DROP MEMBER {quote_name(user)};"
        )

    def database_permissions(
        self, database: str, user: str, *, object_level: bool = False
    ) -> set[Permission]:
        classes = "0, 1, 3" if object_level else "0"
        rows = self._query(
            _PERMISSIONS_SQL.format(db=quote_name(database), classes=classes), user
        )
        out: set[Permission] = set()
        for cls, perm_name, state, obj_schema, obj_name, column, schema in rows:
            if cls == 1:
                if not obj_name:
                    continue
                securable = f"{quote_name(obj_schema)}.{quote_name(obj_name)}"
                if column:
                    securable += f"({quote_name(column)})"
            elif cls == 3:
                securable = f"SCHEMA::{quote_name(schema)}"
            else:
                securable = ""
            out.add(
                Permission(
                    name=perm_name, state=PermissionState(state), securable=securable
                )
            )
        return out

    def apply_database_permission(
        self, database: str, user: str, permission: Permission
    ) -> None:
        self._exec_in(database, grant_statement(permission, user))

    def revoke_database_permission(
        self, database: str, user: str, permission: Permission
    ) -> None:
        self._exec_in(database, revoke_statement(permission, user))
