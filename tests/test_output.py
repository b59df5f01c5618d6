import io

import pytest
from rich.console import Console

from sqlops.cli.common import output
from sqlops.core.models import Permission, PermissionState
from sqlops.core.permissions import PermissionSyncResult, SyncError
from sqlops.core.rename import RenameResult


@pytest.fixture
def recorded(monkeypatch) -> io.StringIO:
    buf = io.StringIO()
    monkeypatch.setattr(
        output, "console", Console(file=buf, width=200, theme=output._THEME)
    )
    return buf


def test_sync_changes_table_keeps_bracketed_securables(recorded):
    result = PermissionSyncResult(source_login="app", dest_login="app")
    result.database_permissions_granted = [
        ("HR", Permission("SELECT", PermissionState.GRANT, "SCHEMA::[sales]")),
        ("HR", Permission("UPDATE", PermissionState.GRANT, "[dbo].[Orders]")),
    ]
    result.database_roles_added = [("HR", "[db_owner]")]

    output.out.sync_changes_table(result)

    text = recorded.getvalue()
    assert "SCHEMA::[sales]" in text
    assert "[dbo].[Orders]" in text
    assert "HR.[db_owner]" in text


def test_sync_errors_table_keeps_bracketed_messages(recorded):
    output.out.sync_errors_table(
        [SyncError("database permission", "[dbo].[Orders]", "cannot find [dbo]")]
    )

    text = recorded.getvalue()
    assert "[dbo].[Orders]" in text
    assert "cannot find [dbo]" in text


def test_rename_map_table_keeps_bracketed_names(recorded):
    result = RenameResult(server="SQL01", database="[hr]")
    result.database_renames = {"[hr]": "[hr]_new"}

    output.out.rename_map_table(result)

    text = recorded.getvalue()
    assert "[hr]" in text
    assert "[hr]_new" in text
