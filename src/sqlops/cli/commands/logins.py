"""Commands for synchronizing logins between instances."""

from __future__ import annotations

import typer

from sqlops.cli.common.context import AppContext
from sqlops.cli.common.exits import EXIT_FAILURE, EXIT_OK, usage_error
from sqlops.cli.common.options import YesOpt
from sqlops.cli.common.output import out
from sqlops.core.permissions import check_login_selection, sync_logins

logins_app = typer.Typer(
    help="Synchronize login roles and permissions between instances.",
    no_args_is_help=True,
)


@logins_app.command("sync")
def sync(
    ctx: typer.Context,
    source: str = typer.Option(..., "--source", help="Source SQL Server instance"),
    destination: str = typer.Option(
        ..., "--destination", help="Destination SQL Server instance"
    ),
    login: list[str] = typer.Option(
        ..., "--login", "-l", help="Source login to synchronize. Repeatable."
    ),
    new_login: str | None = typer.Option(
        None,
        "--new-login",
        help="Destination login name when it differs (single --login only)",
    ),
    object_level: bool = typer.Option(
        False,
        "--object-level",
        help="Also reconcile object- and schema-level permissions",
    ),
    yes: bool = YesOpt,
):
    """
    Converge destination logins to the roles and permissions of source logins.
    """
    appctx: AppContext = ctx.obj

    try:
        check_login_selection(login, new_login)
    except ValueError as e:
        usage_error(str(e))
    if source.lower() == destination.lower() and not new_login:
        usage_error(
            "Source and destination are the same; "
            "use --new-login to copy onto another login"
        )

    src = appctx.adapter(source)
    dst = appctx.adapter(destination)

    out.kv(
        {
            "Source": source,
            "Destination": destination,
            "Logins": ", ".join(login) + (f" -> {new_login}" if new_login else ""),
            "Object level": "yes" if object_level else "no",
        }
    )

    if not yes:
        if not out.confirm("Apply role and permission changes on the destination?"):
            out.warn("Cancelled.")
            raise typer.Exit(EXIT_OK)

    with out.status(f"Synchronizing {len(login)} login(s) onto {destination}..."):
        results = sync_logins(
            src, dst, login, new_login=new_login, object_level=object_level
        )

    out.sync_results_table(results)
    for r in results:
        if r.skipped:
            continue
        if r.changes or r.skipped_databases:
            out.sync_changes_table(r)
        if r.errors:
            out.sync_errors_table(r.errors, title=f"Errors for {r.dest_login}")

    failed = [r for r in results if not r.ok]
    if failed:
        out.error(f"Errors while synchronizing {len(failed)} login(s).")
        raise typer.Exit(EXIT_FAILURE)

    synced = [r for r in results if not r.skipped]
    out.success(f"Synchronized {len(synced)} login(s).")
