"""Output formatting utilities for the CLI."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import questionary
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from sqlops.cli.common.tui_style import QUESTIONARY_STYLE_CONFIRM

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME)


def _status_cell(status: str) -> str:
    style = "ok" if status == "FULL" else "warn"
    return f"[{style}]{status}[/{style}]"


def _permission_text(permission: Any) -> str:
    state = getattr(permission, "state", None)
    state_value = getattr(state, "value", state)
    verb = {"G": "GRANT", "W": "GRANT (with grant)", "D": "DENY"}.get(
        str(state_value), str(state_value)
    )
    on = f" ON {permission.securable}" if getattr(permission, "securable", "") else ""
    return escape(f"{verb} {permission.name}{on}")


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables."""

    def _q_try(self, fn, *args, **kwargs):
        """Call questionary prompts and drop unsupported kwargs on older versions."""
        try:
            return fn(*args, **kwargs)
        except TypeError:
            for k in ("pointer", "checked_icon", "unchecked_icon", "auto_enter"):
                kwargs.pop(k, None)
            return fn(*args, **kwargs)

    def _q(self, message: str) -> str:
        """Prefix Questionary prompts to be SQLOPS consistent."""
        return f"[SQLOPS] {message}"

    def info(self, msg: str) -> None:
        """Print an info message."""
        console.print(f"[title]›[/] {msg}")

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def success(self, msg: str) -> None:
        """Print a success message."""
        console.print(f"[ok]✓[/] {msg}")

    def warn(self, msg: str) -> None:
        """Print a warning message."""
        console.print(f"[warn]⚠[/] {msg}")

    def error(self, msg: str) -> None:
        """Print an error message."""
        console.print(f"[err]✗[/] {msg}")

    def header(self, title: str) -> None:
        """Print a header message."""
        console.print(f"[title]{title}[/]")

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print key-value pairs."""
        for k, v in items.items():
            console.print(f"[meta]{k}[/]: {v}")

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """
        Ask the user for confirmation using a standardized Questionary prompt.

        Args:
            message: Confirmation question shown to the user.
            default: Default answer if the user just presses enter.

        Returns:
            True if the user confirms, False otherwise.
        """
        # Questionary renders `instruction=...` inline next to the echoed answer.
        console.print("[meta]Use y/n then Enter[/]")

        prompt = self._q_try(
            questionary.confirm,
            self._q(message),
            default=default,
            style=QUESTIONARY_STYLE_CONFIRM,
            qmark="✦",
            auto_enter=False,
            pointer="❯",  # dropped automatically on older Questionary versions
        )
        return bool(prompt.ask())

    def databases_table(self, databases: Iterable[Any], title: str = "Databases") -> None:
        """
        Expects objects with .name .state .owner (like sqlops.core.models.DatabaseInfo)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Database", style="ok", no_wrap=True)
        t.add_column("State", style="meta")
        t.add_column("Owner", style="meta")

        for db in databases:
            t.add_row(
                escape(db.name),
                str(getattr(db, "state", "") or ""),
                escape(str(db.owner or "")),
            )

        console.print(t)

    def rename_results_table(
        self, results: Iterable[Any], title: str = "Rename results"
    ) -> None:
        """
        One row per database (sqlops.core.rename.RenameResult).
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Server", style="meta", no_wrap=True)
        t.add_column("Database", style="ok", no_wrap=True)
        t.add_column("New name")
        t.add_column("Filegroups", justify="right")
        t.add_column("Logical", justify="right")
        t.add_column("Files", justify="right")
        t.add_column("Status")
        t.add_column("Error", style="err")

        for r in results:
            changed = lambda m: sum(1 for k, v in m.items() if k != v)  # noqa: E731
            status_value = getattr(r.status, "value", str(r.status))
            t.add_row(
                escape(r.server),
                escape(r.database),
                escape(r.final_name),
                str(changed(r.filegroup_renames)),
                str(changed(r.logical_renames)),
                str(changed(r.file_renames)),
                _status_cell(status_value) + (" [meta](preview)[/]" if r.preview else ""),
                escape(str(r.error or "")),
            )

        console.print(t)

    def rename_map_table(self, result: Any, title: str | None = None) -> None:
        """Render the before -> after names of every level for one database."""
        title = title or escape(f"{result.server} / {result.database}")
        t = Table(title=title, show_lines=False)
        t.add_column("Level", style="meta", no_wrap=True)
        t.add_column("Before")
        t.add_column("After", style="ok")

        levels = (
            ("database", result.database_renames),
            ("filegroup", result.filegroup_renames),
            ("logical", result.logical_renames),
            ("file", result.file_renames),
        )
        for level, mapping in levels:
            for before, after in mapping.items():
                shown = escape(after) if after != before else "[meta](unchanged)[/]"
                t.add_row(level, escape(before), shown)

        console.print(t)

    def pending_renames_table(
        self, pending: Iterable[Any], title: str = "Physical file renames"
    ) -> None:
        """Expects sqlops.core.hosts.PendingFileRename objects."""
        t = Table(title=title, show_lines=False)
        t.add_column("Source")
        t.add_column("Destination", style="ok")
        t.add_column("Via", style="meta")
        t.add_column("Result")

        for p in pending:
            if p.done:
                outcome = "[ok]moved[/]"
            elif p.error:
                outcome = f"[err]FAIL[/] {escape(str(p.error))}"
            else:
                outcome = "[warn]manual[/]"
            t.add_row(escape(p.source), escape(p.destination), p.host_kind.value, outcome)

        console.print(t)

    def sync_results_table(
        self, results: Iterable[Any], title: str = "Login sync results"
    ) -> None:
        """One row per login (sqlops.core.permissions.PermissionSyncResult)."""
        t = Table(title=title, show_lines=False)
        t.add_column("Source login", style="ok", no_wrap=True)
        t.add_column("Destination login", no_wrap=True)
        t.add_column("Changes", justify="right")
        t.add_column("Skipped DBs", justify="right")
        t.add_column("Result")

        for r in results:
            if r.skipped:
                outcome = f"[warn]SKIPPED[/] {escape(r.skip_reason or '')}"
            elif r.ok:
                outcome = "[ok]OK[/]"
            else:
                outcome = f"[err]FAIL[/] {len(r.errors)} error(s)"
            t.add_row(
                escape(r.source_login),
                escape(r.dest_login),
                str(r.changes),
                str(len(r.skipped_databases)),
                outcome,
            )

        console.print(t)

    def sync_changes_table(self, result: Any, title: str | None = None) -> None:
        """Render every change applied for one login."""
        t = Table(title=title or escape(f"Changes for {result.dest_login}"), show_lines=False)
        t.add_column("Category", style="meta", no_wrap=True)
        t.add_column("Target")
        t.add_column("Change", style="ok")

        for role in result.server_roles_added:
            t.add_row("server role", escape(role), "added")
        for role in result.server_roles_removed:
            t.add_row("server role", escape(role), "removed")
        for job in result.jobs_reowned:
            t.add_row("job", escape(job), escape(f"owner -> {result.dest_login}"))
        for perm in result.server_permissions_revoked:
            t.add_row("server permission", _permission_text(perm), "revoked")
        for perm in result.server_permissions_granted:
            t.add_row("server permission", _permission_text(perm), "applied")
        for cred in result.credentials_created:
            t.add_row("credential", escape(cred), "created")
        for db in result.users_created:
            t.add_row("user", escape(db), "created")
        for db, role in result.database_roles_added:
            t.add_row("database role", escape(f"{db}.{role}"), "added")
        for db, role in result.database_roles_removed:
            t.add_row("database role", escape(f"{db}.{role}"), "removed")
        for db, perm in result.database_permissions_revoked:
            target = f"{escape(db)}: {_permission_text(perm)}"
            t.add_row("database permission", target, "revoked")
        for db, perm in result.database_permissions_granted:
            target = f"{escape(db)}: {_permission_text(perm)}"
            t.add_row("database permission", target, "applied")
        for db, reason in result.skipped_databases:
            t.add_row("database", escape(db), f"[warn]skipped[/] {escape(reason)}")

        console.print(t)

    def sync_errors_table(self, errors: Iterable[Any], title: str = "Errors") -> None:
        """Expects sqlops.core.permissions.SyncError objects."""
        t = Table(title=title, show_lines=False)
        t.add_column("Category", style="meta", no_wrap=True)
        t.add_column("Target")
        t.add_column("Message", style="err")

        for e in errors:
            t.add_row(e.category, escape(e.target), escape(e.message))

        console.print(t)


out = Out()
