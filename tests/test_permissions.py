import random

import pytest

from sqlops.core.models import (
    AgentJob,
    Credential,
    DatabaseInfo,
    DatabaseUser,
    LoginInfo,
    Permission,
    PermissionState,
)
from sqlops.core.permissions import (
    check_login_selection,
    database_skip_reason,
    reconcile,
    substitute_user,
    sync_login_permissions,
    sync_logins,
)

G, W, D = PermissionState.GRANT, PermissionState.GRANT_WITH_GRANT, PermissionState.DENY


class _SecurityAdapterStub:
    """In-memory server; mutations update state and are recorded as strings."""

    def __init__(
        self,
        server: str,
        *,
        logins=("app",),
        sa: str = "sa",
        server_roles: dict | None = None,
        server_perms: dict | None = None,
        jobs=(),
        credentials=(),
        databases=(),
        users: dict | None = None,
        db_roles: dict | None = None,
        db_perms: dict | None = None,
        fail_on: tuple[str, ...] = (),
    ):
        self.server = server
        self.logins = {n.lower() for n in logins}
        self.sa = sa
        self.server_roles = {k: set(v) for k, v in (server_roles or {}).items()}
        self.server_perms = {k: set(v) for k, v in (server_perms or {}).items()}
        self.jobs = list(jobs)
        self.credentials = list(credentials)
        self.databases = list(databases)
        self.users = dict(users or {})
        self.db_roles = {k: set(v) for k, v in (db_roles or {}).items()}
        self.db_perms = {k: set(v) for k, v in (db_perms or {}).items()}
        self.fail_on = fail_on
        self.calls: list[str] = []
        self.object_level_reads: list[tuple[str, str, bool]] = []

    def _record(self, call: str) -> None:
        self.calls.append(call)
        if any(call.startswith(prefix) for prefix in self.fail_on):
            raise RuntimeError(f"refused: {call}")

    def get_login(self, name: str) -> LoginInfo | None:
        return LoginInfo(name) if name.lower() in self.logins else None

    def system_admin_login(self) -> str:
        return self.sa

    def login_server_roles(self, login: str) -> set[str]:
        return set(self.server_roles.get(login, set()))

    def add_server_role_member(self, role: str, login: str) -> None:
        self._record(f"add_server_role_member:{role}:{login}")
        self.server_roles.setdefault(login, set()).add(role)

    def drop_server_role_member(self, role: str, login: str) -> None:
        self._record(f"drop_server_role_member:{role}:{login}")
        self.server_roles[login].discard(role)

    def server_permissions(self, login: str) -> set[Permission]:
        return set(self.server_perms.get(login, set()))

    def apply_server_permission(self, login: str, permission: Permission) -> None:
        self._record(f"apply_server_permission:{permission.name}:{login}")
        self.server_perms.setdefault(login, set()).add(permission)

    def revoke_server_permission(self, login: str, permission: Permission) -> None:
        self._record(f"revoke_server_permission:{permission.name}:{login}")
        self.server_perms[login].discard(permission)

    def list_jobs(self) -> list[AgentJob]:
        return list(self.jobs)

    def set_job_owner(self, job: str, login: str) -> None:
        self._record(f"set_job_owner:{job}:{login}")

    def list_credentials(self) -> list[Credential]:
        return list(self.credentials)

    def create_credential(self, name: str, identity: str) -> None:
        self._record(f"create_credential:{name}:{identity}")

    def list_databases(self) -> list[DatabaseInfo]:
        return list(self.databases)

    def get_user(self, database: str, login: str) -> DatabaseUser | None:
        if f"get_user:{database}" in self.fail_on:
            raise RuntimeError("cannot open database")
        return self.users.get((database, login))

    def execute(self, database: str, sql: str) -> None:
        self._record(f"execute:{database}:{sql}")

    def database_roles(self, database: str, user: str) -> set[str]:
        return set(self.db_roles.get((database, user), set()))

    def add_database_role_member(self, database: str, role: str, user: str) -> None:
        self._record(f"add_database_role_member:{database}:{role}:{user}")

    def drop_database_role_member(self, database: str, role: str, user: str) -> None:
        self._record(f"drop_database_role_member:{database}:{role}:{user}")

    def database_permissions(
        self, database: str, user: str, *, object_level: bool = False
    ) -> set[Permission]:
        self.object_level_reads.append((database, user, object_level))
        perms = self.db_perms.get((database, user), set())
        return {p for p in perms if object_level or not p.securable}

    def apply_database_permission(
        self, database: str, user: str, permission: Permission
    ) -> None:
        self._record(f"apply_database_permission:{database}:{permission.name}:{user}")

    def revoke_database_permission(
        self, database: str, user: str, permission: Permission
    ) -> None:
        self._record(f"revoke_database_permission:{database}:{permission.name}:{user}")


def _user(name: str, login: str | None = None) -> DatabaseUser:
    login = login or name
    return DatabaseUser(
        name=name,
        login_name=login,
        default_schema="dbo",
        create_script=(
            f"CREATE USER [{name}] FOR LOGIN [{login}] WITH DEFAULT_SCHEMA = [dbo];"
        ),
    )


def test_reconcile_converges_random_permission_sets():
    rng = random.Random(1337)
    pool = [
        Permission(name, state, securable)
        for name in ("SELECT", "INSERT", "VIEW SERVER STATE", "ALTER ANY LOGIN")
        for state in (G, W, D)
        for securable in ("", "[dbo].[Orders]")
    ]

    for _ in range(200):
        source = set(rng.sample(pool, rng.randint(0, len(pool))))
        destination = set(rng.sample(pool, rng.randint(0, len(pool))))

        to_revoke, to_apply = reconcile(source, destination)

        assert (destination - set(to_revoke)) | set(to_apply) == source
        assert not set(to_revoke) & source
        assert not set(to_apply) & destination


def test_reconcile_sorts_output():
    to_revoke, to_apply = reconcile(
        [Permission("SELECT", G), Permission("INSERT", G)], []
    )

    assert to_revoke == []
    assert [p.name for p in to_apply] == ["INSERT", "SELECT"]


def test_substitute_user_replaces_quoted_names():
    script = _user("app").create_script

    assert substitute_user(script, ["app"], "app2") == (
        "CREATE USER [app2] FOR LOGIN [app2] WITH DEFAULT_SCHEMA = [dbo];"
    )


@pytest.mark.parametrize(
    ("db", "reason"),
    [
        (None, "does not exist"),
        (DatabaseInfo("msdb"), "system"),
        (DatabaseInfo("Sales", in_availability_group=True), "availability group"),
        (DatabaseInfo("Sales", is_accessible=False), "not accessible"),
    ],
)
def test_database_skip_reason(db, reason):
    assert reason in database_skip_reason(db)


@pytest.mark.parametrize("name", ["master", "model", "MSDB", "tempdb", "distribution"])
def test_every_protected_database_is_skipped(name: str):
    assert database_skip_reason(DatabaseInfo(name)) == "system database"


def test_database_skip_reason_none_for_user_database():
    assert database_skip_reason(DatabaseInfo("Sales")) is None


def test_missing_destination_login_is_skipped():
    source = _SecurityAdapterStub("SRC", server_roles={"app": {"sysadmin"}})
    destination = _SecurityAdapterStub("DST", logins=())

    result = sync_login_permissions(source, destination, "app")

    assert result.skipped is True
    assert "DST" in result.skip_reason
    assert destination.calls == []


def test_server_roles_are_added_and_removed():
    source = _SecurityAdapterStub("SRC", server_roles={"app": {"sysadmin"}})
    destination = _SecurityAdapterStub("DST", server_roles={"app": {"dbcreator"}})

    result = sync_login_permissions(source, destination, "app")

    assert result.server_roles_added == ["sysadmin"]
    assert result.server_roles_removed == ["dbcreator"]
    assert destination.server_roles["app"] == {"sysadmin"}
    assert result.ok


def test_system_admin_login_keeps_server_roles():
    source = _SecurityAdapterStub(
        "SRC", logins=("sa",), server_roles={"sa": {"sysadmin"}}
    )
    destination = _SecurityAdapterStub(
        "DST", logins=("sa",), server_roles={"sa": {"dbcreator"}}
    )

    result = sync_login_permissions(source, destination, "sa")

    assert result.server_roles_added == []
    assert result.server_roles_removed == []
    assert not any("server_role" in c for c in destination.calls)


def test_renamed_sa_is_detected_by_name_from_source():
    source = _SecurityAdapterStub(
        "SRC", logins=("admin",), sa="admin", server_roles={"admin": {"sysadmin"}}
    )
    destination = _SecurityAdapterStub("DST", logins=("admin",))

    result = sync_login_permissions(source, destination, "admin")

    assert result.server_roles_added == []


def test_server_permissions_revoke_before_apply():
    source = _SecurityAdapterStub(
        "SRC", server_perms={"app": {Permission("VIEW SERVER STATE", G)}}
    )
    destination = _SecurityAdapterStub(
        "DST", server_perms={"app": {Permission("ALTER ANY LOGIN", W)}}
    )

    result = sync_login_permissions(source, destination, "app")

    assert destination.calls == [
        "revoke_server_permission:ALTER ANY LOGIN:app",
        "apply_server_permission:VIEW SERVER STATE:app",
    ]
    assert destination.server_perms["app"] == {Permission("VIEW SERVER STATE", G)}
    assert [p.name for p in result.server_permissions_granted] == ["VIEW SERVER STATE"]


def test_job_ownership_follows_source():
    source = _SecurityAdapterStub(
        "SRC",
        jobs=[AgentJob("Nightly", "app"), AgentJob("Other", "sa"), AgentJob("Gone", "app")],
    )
    destination = _SecurityAdapterStub(
        "DST", jobs=[AgentJob("Nightly", "sa"), AgentJob("Other", "sa")]
    )

    result = sync_login_permissions(source, destination, "app")

    assert result.jobs_reowned == ["Nightly"]
    assert destination.calls == ["set_job_owner:Nightly:app"]


def test_missing_credentials_are_created_for_destination_login():
    source = _SecurityAdapterStub(
        "SRC",
        credentials=[Credential("BackupCred", "app"), Credential("Other", "svc")],
    )
    destination = _SecurityAdapterStub(
        "DST", logins=("app2",), credentials=[Credential("Existing", "app2")]
    )

    result = sync_login_permissions(source, destination, "app", "app2")

    assert result.credentials_created == ["BackupCred"]
    assert destination.calls == ["create_credential:BackupCred:app2"]


def test_database_user_is_created_with_new_login_name():
    source = _SecurityAdapterStub(
        "SRC",
        databases=[DatabaseInfo("Sales")],
        users={("Sales", "app"): _user("app")},
        db_roles={("Sales", "app"): {"db_datareader", "public"}},
        db_perms={("Sales", "app"): {Permission("EXECUTE", G)}},
    )
    destination = _SecurityAdapterStub(
        "DST", logins=("app2",), databases=[DatabaseInfo("Sales")]
    )

    result = sync_login_permissions(source, destination, "app", "app2")

    assert result.users_created == ["Sales"]
    assert destination.calls == [
        "execute:Sales:CREATE USER [app2] FOR LOGIN [app2] WITH DEFAULT_SCHEMA = [dbo];",
        "add_database_role_member:Sales:db_datareader:app2",
        "apply_database_permission:Sales:EXECUTE:app2",
    ]
    assert result.changes == 3


def test_protected_and_unavailable_databases_are_not_synced():
    source = _SecurityAdapterStub(
        "SRC",
        databases=[
            DatabaseInfo("msdb"),
            DatabaseInfo("Replica", in_availability_group=True),
            DatabaseInfo("Sales"),
        ],
        users={
            ("msdb", "app"): _user("app"),
            ("Replica", "app"): _user("app"),
            ("Sales", "app"): _user("app"),
        },
    )
    # Sales is missing on the destination.
    destination = _SecurityAdapterStub("DST", databases=[DatabaseInfo("msdb")])

    result = sync_login_permissions(source, destination, "app")

    assert [db for db, _ in result.skipped_databases] == ["Replica", "Sales"]
    assert destination.calls == []
    assert result.ok


def test_object_level_permissions_are_reconciled_on_request():
    orders = Permission("SELECT", G, "[dbo].[Orders]")
    source = _SecurityAdapterStub(
        "SRC",
        databases=[DatabaseInfo("Sales")],
        users={("Sales", "app"): _user("app")},
        db_perms={("Sales", "app"): {orders}},
    )
    destination = _SecurityAdapterStub(
        "DST",
        databases=[DatabaseInfo("Sales")],
        users={("Sales", "app"): _user("app")},
    )

    without = sync_login_permissions(source, destination, "app")
    with_objects = sync_login_permissions(source, destination, "app", object_level=True)

    assert without.database_permissions_granted == []
    assert with_objects.database_permissions_granted == [("Sales", orders)]


def test_object_level_is_never_requested_for_dbo():
    source = _SecurityAdapterStub(
        "SRC",
        databases=[DatabaseInfo("Sales")],
        users={("Sales", "app"): _user("dbo", "app")},
    )
    destination = _SecurityAdapterStub(
        "DST",
        databases=[DatabaseInfo("Sales")],
        users={("Sales", "app"): _user("dbo", "app")},
    )

    sync_login_permissions(source, destination, "app", object_level=True)

    assert source.object_level_reads == [("Sales", "dbo", False)]
    assert destination.object_level_reads == [("Sales", "dbo", False)]


def test_failures_are_recorded_and_sync_continues():
    source = _SecurityAdapterStub(
        "SRC",
        server_roles={"app": {"sysadmin"}},
        jobs=[AgentJob("Nightly", "app")],
        databases=[DatabaseInfo("Sales"), DatabaseInfo("HR")],
        users={("Sales", "app"): _user("app"), ("HR", "app"): _user("app")},
        db_roles={("Sales", "app"): {"db_owner"}, ("HR", "app"): {"db_owner"}},
    )
    destination = _SecurityAdapterStub(
        "DST",
        jobs=[AgentJob("Nightly", "sa")],
        databases=[DatabaseInfo("Sales"), DatabaseInfo("HR")],
        users={("HR", "app"): _user("app")},
        fail_on=("add_server_role_member:", "get_user:Sales"),
    )

    result = sync_login_permissions(source, destination, "app")

    assert not result.ok
    assert [e.category for e in result.errors] == ["server-role-add", "database-user"]
    assert result.jobs_reowned == ["Nightly"]
    assert result.database_roles_added == [("HR", "db_owner")]


def test_sync_logins_rejects_new_login_for_several_logins():
    source = _SecurityAdapterStub("SRC")
    destination = _SecurityAdapterStub("DST")

    with pytest.raises(ValueError, match="single login"):
        sync_logins(source, destination, ["a", "b"], new_login="c")


def test_sync_logins_requires_a_login():
    with pytest.raises(ValueError, match="At least one login"):
        sync_logins(_SecurityAdapterStub("SRC"), _SecurityAdapterStub("DST"), [])


def test_sync_logins_processes_logins_in_order():
    source = _SecurityAdapterStub("SRC", logins=("a", "b"))
    destination = _SecurityAdapterStub("DST", logins=("b",))

    results = sync_logins(source, destination, ["a", "b"])

    assert [(r.source_login, r.skipped) for r in results] == [("a", True), ("b", False)]


def test_check_login_selection_accepts_new_login_for_one_login():
    check_login_selection(["app"], "app_new")
    check_login_selection(["a", "b"])
