"""Login and permission synchronization between two SQL Server instances.

Given a source login and a destination login (same name by default), this
module converges the destination towards the source:

  - server role memberships (add and remove)
  - SQL Agent job ownership
  - server-level permissions (grant/deny and revoke)
  - credentials mapped to the login
  - per database: user creation, role memberships and permissions

Every category runs independently. A failure is recorded on the result and
logged, and the sync continues with the next category or database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from sqlops.core.models import (
    AgentJob,
    Credential,
    DatabaseInfo,
    DatabaseUser,
    LoginInfo,
    Permission,
)
from sqlops.core.results import Err, attempt

logger = logging.getLogger(__name__)

_FAILED = object()

PUBLIC_ROLE = "public"
DBO_USER = "dbo"
PROTECTED_DATABASES = frozenset({"master", "model", "msdb", "tempdb", "distribution"})


@dataclass(frozen=True)
class SyncError:
    """A failed operation during a sync."""

    category: str
    target: str
    message: str


@dataclass
class PermissionSyncResult:
    """Outcome of synchronizing one login."""

    source_login: str
    dest_login: str
    server_roles_added: list[str] = field(default_factory=list)
    server_roles_removed: list[str] = field(default_factory=list)
    jobs_reowned: list[str] = field(default_factory=list)
    server_permissions_granted: list[Permission] = field(default_factory=list)
    server_permissions_revoked: list[Permission] = field(default_factory=list)
    credentials_created: list[str] = field(default_factory=list)
    users_created: list[str] = field(default_factory=list)
    database_roles_added: list[tuple[str, str]] = field(default_factory=list)
    database_roles_removed: list[tuple[str, str]] = field(default_factory=list)
    database_permissions_granted: list[tuple[str, Permission]] = field(
        default_factory=list
    )
    database_permissions_revoked: list[tuple[str, Permission]] = field(
        default_factory=list
    )
    skipped_databases: list[tuple[str, str]] = field(default_factory=list)
    errors: list[SyncError] = field(default_factory=list)
    skipped: bool = False
    skip_reason: str | None = None

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def changes(self) -> int:
        return sum(
            len(x)
            for x in (
                self.server_roles_added,
                self.server_roles_removed,
                self.jobs_reowned,
                self.server_permissions_granted,
                self.server_permissions_revoked,
                self.credentials_created,
                self.users_created,
                self.database_roles_added,
                self.database_roles_removed,
                self.database_permissions_granted,
                self.database_permissions_revoked,
            )
        )


class PermissionAdapter(Protocol):
    """Interface for the security metadata and mutations used by the synchronizer."""

    server: str

    def get_login(self, name: str) -> LoginInfo | None:
        ...

    def system_admin_login(self) -> str:
        """Return the name of the login with sid 0x01 (normally `sa`)."""
        ...

    def login_server_roles(self, login: str) -> set[str]:
        ...

    def add_server_role_member(self, role: str, login: str) -> None:
        ...

    def drop_server_role_member(self, role: str, login: str) -> None:
        ...

    def server_permissions(self, login: str) -> set[Permission]:
        ...

    def apply_server_permission(self, login: str, permission: Permission) -> None:
        ...

    def revoke_server_permission(self, login: str, permission: Permission) -> None:
        ...

    def list_jobs(self) -> list[AgentJob]:
        ...

    def set_job_owner(self, job: str, login: str) -> None:
        ...

    def list_credentials(self) -> list[Credential]:
        ...

    def create_credential(self, name: str, identity: str) -> None:
        ...

    def list_databases(self) -> list[DatabaseInfo]:
        ...

    def get_user(self, database: str, login: str) -> DatabaseUser | None:
        """Return the user mapped to `login` in `database`, if any."""
        ...

    def execute(self, database: str, sql: str) -> None:
        ...

    def database_roles(self, database: str, user: str) -> set[str]:
        ...

    def add_database_role_member(self, database: str, role: str, user: str) -> None:
        ...

    def drop_database_role_member(self, database: str, role: str, user: str) -> None:
        ...

    def database_permissions(
        self, database: str, user: str, *, object_level: bool = False
    ) -> set[Permission]:
        ...

    def apply_database_permission(
        self, database: str, user: str, permission: Permission
    ) -> None:
        ...

    def revoke_database_permission(
        self, database: str, user: str, permission: Permission
    ) -> None:
        ...


def reconcile(
    source: Iterable[Permission], destination: Iterable[Permission]
) -> tuple[list[Permission], list[Permission]]:
    """
    Diff two permission sets.

    Returns:
        (to_revoke, to_apply): destination permissions absent from the source,
        and source permissions absent from the destination. Revoking first and
        applying second leaves the destination equal to the source.
    """
    src, dst = set(source), set(destination)
    key = lambda p: (p.securable, p.name, p.state.value)  # noqa: E731
    return sorted(dst - src, key=key), sorted(src - dst, key=key)


def substitute_user(script: str, names: Iterable[str], new_name: str) -> str:
    """Replace bracket-quoted principal names in a creation script."""
    quoted_new = "[" + new_name.replace("]", "]]") + "]"
    for name in names:
        script = script.replace("[" + name.replace("]", "]]") + "]", quoted_new)
    return script


def database_skip_reason(db: DatabaseInfo | None) -> str | None:
    """Return why a database is excluded from per-database sync steps."""
    if db is None:
        return "database does not exist on destination"
    if db.name.lower() in PROTECTED_DATABASES:
        return "system database"
    if db.in_availability_group:
        return "database is part of an availability group"
    if not db.is_accessible:
        return "database is not accessible"
    return None


class _LoginSync:
    """Synchronizes one source login onto one destination login."""

    def __init__(
        self,
        source: PermissionAdapter,
        destination: PermissionAdapter,
        source_login: str,
        dest_login: str,
        object_level: bool,
    ) -> None:
        self.source = source
        self.destination = destination
        self.source_login = source_login
        self.dest_login = dest_login
        self.object_level = object_level
        self.result = PermissionSyncResult(
            source_login=source_login, dest_login=dest_login
        )

    def _error(self, category: str, target: str, err: Err) -> None:
        logger.warning(
            "[%s] %s failed for %s (%s): %s",
            self.destination.server,
            category,
            self.dest_login,
            target,
            err.message,
        )
        self.result.errors.append(
            SyncError(category=category, target=target, message=err.message)
        )

    def _read(self, category: str, target: str, fn, *args, **kwargs):
        step = attempt(category, fn, *args, **kwargs)
        if isinstance(step, Err):
            self._error(category, target, step)
            return _FAILED
        return step.value

    def _do(self, category: str, target: str, fn, *args, **kwargs) -> bool:
        step = attempt(category, fn, *args, **kwargs)
        if isinstance(step, Err):
            self._error(category, target, step)
            return False
        return True

    def run(self) -> PermissionSyncResult:
        source, dest = self.source, self.destination
        src = self._read("read-login", source.server, source.get_login, self.source_login)
        dst = self._read("read-login", dest.server, dest.get_login, self.dest_login)
        if not isinstance(src, LoginInfo) or not isinstance(dst, LoginInfo):
            missing = (
                self.source.server
                if not isinstance(src, LoginInfo)
                else self.destination.server
            )
            reason = f"login not found on {missing}"
            logger.warning(
                "Skipping %s -> %s: %s", self.source_login, self.dest_login, reason
            )
            self.result.skipped = True
            self.result.skip_reason = reason
            return self.result

        self._sync_server_roles()
        self._sync_jobs()
        self._sync_server_permissions()
        self._sync_credentials()
        self._sync_databases()
        return self.result

    def _sync_server_roles(self) -> None:
        sa_name = self._read("server-roles", "sa", self.source.system_admin_login)
        if sa_name is _FAILED:
            return
        if self.source_login.lower() == sa_name.lower():
            logger.info(
                "%s is the system administrator account; server roles left as-is",
                self.source_login,
            )
            return

        source, dest = self.source, self.destination
        src_roles = self._read(
            "server-roles", source.server, source.login_server_roles, self.source_login
        )
        dst_roles = self._read(
            "server-roles", dest.server, dest.login_server_roles, self.dest_login
        )
        if src_roles is _FAILED or dst_roles is _FAILED:
            return

        for role in sorted(src_roles - dst_roles):
            if self._do(
                "server-role-add", role, dest.add_server_role_member, role, self.dest_login
            ):
                logger.info("Added %s to server role %s", self.dest_login, role)
                self.result.server_roles_added.append(role)

        for role in sorted(dst_roles - src_roles):
            if self._do(
                "server-role-drop",
                role,
                dest.drop_server_role_member,
                role,
                self.dest_login,
            ):
                logger.info("Removed %s from server role %s", self.dest_login, role)
                self.result.server_roles_removed.append(role)

    def _sync_jobs(self) -> None:
        source, dest = self.source, self.destination
        src_jobs = self._read("job-owner", source.server, source.list_jobs)
        dst_jobs = self._read("job-owner", dest.server, dest.list_jobs)
        if src_jobs is _FAILED or dst_jobs is _FAILED:
            return

        dest_by_name = {j.name: j for j in dst_jobs}
        for job in src_jobs:
            if job.owner.lower() != self.source_login.lower():
                continue
            target = dest_by_name.get(job.name)
            if target is None or target.owner.lower() == self.dest_login.lower():
                continue
            if self._do(
                "job-owner", job.name, dest.set_job_owner, job.name, self.dest_login
            ):
                logger.info("Changed owner of job %s to %s", job.name, self.dest_login)
                self.result.jobs_reowned.append(job.name)

    def _sync_server_permissions(self) -> None:
        source, dest = self.source, self.destination
        src = self._read(
            "server-permissions", source.server, source.server_permissions, self.source_login
        )
        dst = self._read(
            "server-permissions", dest.server, dest.server_permissions, self.dest_login
        )
        if src is _FAILED or dst is _FAILED:
            return

        to_revoke, to_apply = reconcile(src, dst)
        for perm in to_revoke:
            if self._do(
                "server-permission-revoke",
                perm.name,
                self.destination.revoke_server_permission,
                self.dest_login,
                perm,
            ):
                self.result.server_permissions_revoked.append(perm)
        for perm in to_apply:
            if self._do(
                "server-permission-grant",
                perm.name,
                self.destination.apply_server_permission,
                self.dest_login,
                perm,
            ):
                self.result.server_permissions_granted.append(perm)

    def _sync_credentials(self) -> None:
        source, dest = self.source, self.destination
        src = self._read("credential", source.server, source.list_credentials)
        dst = self._read("credential", dest.server, dest.list_credentials)
        if src is _FAILED or dst is _FAILED:
            return

        existing = {c.name.lower() for c in dst}
        for cred in src:
            if cred.identity.lower() != self.source_login.lower():
                continue
            if cred.name.lower() in existing:
                continue
            if self._do(
                "credential", cred.name, dest.create_credential, cred.name, self.dest_login
            ):
                logger.info("Created credential %s for %s", cred.name, self.dest_login)
                self.result.credentials_created.append(cred.name)

    def _sync_databases(self) -> None:
        source, dest = self.source, self.destination
        src_dbs = self._read("databases", source.server, source.list_databases)
        dst_dbs = self._read("databases", dest.server, dest.list_databases)
        if src_dbs is _FAILED or dst_dbs is _FAILED:
            return

        dest_by_name = {d.name.lower(): d for d in dst_dbs}
        for src_db in src_dbs:
            if src_db.name.lower() in PROTECTED_DATABASES:
                continue
            if src_db.in_availability_group or not src_db.is_accessible:
                reason = database_skip_reason(src_db)
                self.result.skipped_databases.append((src_db.name, f"source {reason}"))
                continue

            user = self._read(
                "database-user", src_db.name, source.get_user, src_db.name, self.source_login
            )
            if not isinstance(user, DatabaseUser):
                continue

            reason = database_skip_reason(dest_by_name.get(src_db.name.lower()))
            if reason:
                logger.warning("Skipping database %s: %s", src_db.name, reason)
                self.result.skipped_databases.append((src_db.name, reason))
                continue

            self._sync_database(src_db.name, user)

    def _sync_database(self, db: str, user: DatabaseUser) -> None:
        dest_user = self._read(
            "database-user", db, self.destination.get_user, db, self.dest_login
        )
        if dest_user is _FAILED:
            return
        if dest_user is None:
            script = substitute_user(
                user.create_script, [user.name, self.source_login], self.dest_login
            )
            if not self._do("user-create", db, self.destination.execute, db, script):
                return
            logger.info("Created user %s in %s", self.dest_login, db)
            self.result.users_created.append(db)
            dest_user_name = self.dest_login
        else:
            dest_user_name = dest_user.name

        src_roles = self._read(
            "database-roles", db, self.source.database_roles, db, user.name
        )
        dst_roles = self._read(
            "database-roles", db, self.destination.database_roles, db, dest_user_name
        )
        if src_roles is not _FAILED and dst_roles is not _FAILED:
            src_roles = src_roles - {PUBLIC_ROLE}
            dst_roles = dst_roles - {PUBLIC_ROLE}
            for role in sorted(src_roles - dst_roles):
                if self._do(
                    "database-role-add",
                    f"{db}.{role}",
                    self.destination.add_database_role_member,
                    db,
                    role,
                    dest_user_name,
                ):
                    self.result.database_roles_added.append((db, role))
            for role in sorted(dst_roles - src_roles):
                if self._do(
                    "database-role-drop",
                    f"{db}.{role}",
                    self.destination.drop_database_role_member,
                    db,
                    role,
                    dest_user_name,
                ):
                    self.result.database_roles_removed.append((db, role))

        object_level = self.object_level and DBO_USER not in {
            user.name.lower(),
            dest_user_name.lower(),
        }
        src_perms = self._read(
            "database-permissions",
            db,
            self.source.database_permissions,
            db,
            user.name,
            object_level=object_level,
        )
        dst_perms = self._read(
            "database-permissions",
            db,
            self.destination.database_permissions,
            db,
            dest_user_name,
            object_level=object_level,
        )
        if src_perms is _FAILED or dst_perms is _FAILED:
            return

        to_revoke, to_apply = reconcile(src_perms, dst_perms)
        for perm in to_revoke:
            if self._do(
                "database-permission-revoke",
                f"{db}: {perm.name}",
                self.destination.revoke_database_permission,
                db,
                dest_user_name,
                perm,
            ):
                self.result.database_permissions_revoked.append((db, perm))
        for perm in to_apply:
            if self._do(
                "database-permission-grant",
                f"{db}: {perm.name}",
                self.destination.apply_database_permission,
                db,
                dest_user_name,
                perm,
            ):
                self.result.database_permissions_granted.append((db, perm))


def sync_login_permissions(
    source: PermissionAdapter,
    destination: PermissionAdapter,
    source_login: str,
    dest_login: str | None = None,
    *,
    object_level: bool = False,
) -> PermissionSyncResult:
    """
    Converge a destination login's roles and permissions to a source login.

    Args:
        source: Adapter for the source server.
        destination: Adapter for the destination server.
        source_login: Login to copy from.
        dest_login: Login to copy onto (defaults to `source_login`).
        object_level: Also reconcile object- and schema-level permissions.

    Returns:
        The PermissionSyncResult for this login.
    """
    return _LoginSync(
        source, destination, source_login, dest_login or source_login, object_level
    ).run()


def check_login_selection(logins: list[str], new_login: str | None = None) -> None:
    """Raise ValueError when the login list cannot be synchronized as given."""
    if not logins:
        raise ValueError("At least one login is required.")
    if new_login and len(logins) > 1:
        raise ValueError("A new login name can only be used with a single login.")


def sync_logins(
    source: PermissionAdapter,
    destination: PermissionAdapter,
    logins: list[str],
    *,
    new_login: str | None = None,
    object_level: bool = False,
) -> list[PermissionSyncResult]:
    """Synchronize several logins, one at a time, in the given order."""
    check_login_selection(logins, new_login)
    return [
        sync_login_permissions(
            source, destination, login, new_login, object_level=object_level
        )
        for login in logins
    ]
