"""Commands for renaming databases, filegroups and files."""

from __future__ import annotations

import typer

from sqlops.cli.common.context import AppContext
from sqlops.cli.common.exits import EXIT_FAILURE, die, usage_error, warn_exit
from sqlops.cli.common.options import (
    AllDatabasesOpt,
    DatabaseOpt,
    DatabaseRegexOpt,
    ExcludeDatabaseOpt,
    PickOpt,
    ServerOpt,
    YesOpt,
)
from sqlops.cli.common.output import out
from sqlops.cli.common.progress import process_with_progress
from sqlops.cli.common.selector_builder import build_selector
from sqlops.cli.tui import select_databases as tui_select_databases
from sqlops.core.hosts import FileMover, PowerShellRemoting
from sqlops.core.models import DatabaseInfo
from sqlops.core.rename import (
    RenameContext,
    RenameOptions,
    RenameResult,
    RenameStatus,
    RenameTemplates,
    rename_databases,
)
from sqlops.core.results import Err, attempt
from sqlops.core.selectors import select_databases, skip_reason

rename_app = typer.Typer(
    help="Rename databases, filegroups, logical files and physical files.",
    no_args_is_help=True,
)

_TEMPLATE_HELP = "Placeholders: {}. Literal substitution; unknown tokens are kept."


def _status_label(result: RenameResult) -> str:
    if result.error:
        return "FAILED"
    return result.status.value


@rename_app.command("database")
def rename_database(
    ctx: typer.Context,
    server: list[str] = ServerOpt,
    database: list[str] = DatabaseOpt,
    database_regex: str | None = DatabaseRegexOpt,
    exclude_database: list[str] = ExcludeDatabaseOpt,
    all_databases: bool = AllDatabasesOpt,
    pick: bool = PickOpt,
    database_name: str | None = typer.Option(
        None,
        "--database-name",
        help="New database name template. " + _TEMPLATE_HELP.format("<DBN> <DATE>"),
    ),
    filegroup_name: str | None = typer.Option(
        None,
        "--filegroup-name",
        help="Filegroup name template. " + _TEMPLATE_HELP.format("<DBN> <FGN> <DATE>"),
    ),
    logical_name: str | None = typer.Option(
        None,
        "--logical-name",
        help="Logical file name template. "
        + _TEMPLATE_HELP.format("<DBN> <FGN> <LGN> <FT> <DATE>"),
    ),
    file_name: str | None = typer.Option(
        None,
        "--file-name",
        help="Physical file name template (extension is kept). "
        + _TEMPLATE_HELP.format("<DBN> <FGN> <LGN> <FNN> <FT> <DATE>"),
    ),
    replace_before: bool = typer.Option(
        False,
        "--replace-before",
        help="Strip renamed parent names out of child names before substituting",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Kill other connections (ROLLBACK IMMEDIATE) when renaming or going offline",
    ),
    move: bool = typer.Option(
        False,
        "--move",
        help="Take the database offline, move physical files and bring it back online",
    ),
    set_offline: bool = typer.Option(
        False,
        "--set-offline",
        help="Take the database offline after changing file paths (move files yourself)",
    ),
    preview: bool = typer.Option(
        False, "--preview", help="Show the planned names, but change nothing"
    ),
    yes: bool = YesOpt,
):
    """
    Rename databases and their files from templates.
    """
    appctx: AppContext = ctx.obj

    templates = RenameTemplates(
        database=database_name,
        filegroup=filegroup_name,
        logical=logical_name,
        file=file_name,
    )
    if templates.is_empty():
        usage_error(
            "Provide at least one of --database-name, --filegroup-name, "
            "--logical-name or --file-name"
        )

    try:
        selector = build_selector(
            databases=database,
            exclude=exclude_database,
            all_databases=all_databases,
            name_regex=database_regex,
        )
    except ValueError as e:
        usage_error(str(e))

    options = RenameOptions(
        replace_before=replace_before,
        force=force,
        move=move,
        set_offline=set_offline,
        preview=preview,
    )
    context = RenameContext()
    mover = FileMover(PowerShellRemoting()) if move and not preview else None

    if preview:
        out.warn("PREVIEW: no changes will be made.")

    results: list[RenameResult] = []
    for srv in server:
        adapter = appctx.adapter(srv)
        with out.status(f"Loading databases on {srv}..."):
            listed = attempt("read-databases", adapter.list_databases)
        if isinstance(listed, Err):
            die(f"Could not list databases on {srv}: {listed.message}")
        matched = select_databases(listed.value or [], selector)
        out.info(f"{srv}: {len(matched)} database(s) matched")

        eligible: list[DatabaseInfo] = []
        for db in matched:
            reason = skip_reason(db)
            if reason:
                out.warn(f"{srv}: skipping {db.name} ({reason})")
                continue
            eligible.append(db)

        if pick and eligible:
            eligible = tui_select_databases(srv, eligible)

        if not eligible:
            out.warn(f"{srv}: no databases to rename")
            continue

        out.databases_table(eligible, title=f"Databases on {srv}")

        if not preview and not yes:
            if not out.confirm(f"Rename {len(eligible)} database(s) on {srv}?"):
                out.warn("Cancelled.")
                continue

        def _rename_one(db: DatabaseInfo, adapter=adapter) -> RenameResult:
            return rename_databases(
                adapter, [db], templates, options, context=context, mover=mover
            )[0]

        results.extend(
            process_with_progress(
                eligible,
                _rename_one,
                name_of=lambda db: db.name,
                status_of=_status_label,
                server_of=lambda _db, srv=srv: srv,
            )
        )

    if not results:
        warn_exit("Nothing to rename", code=0)

    out.header("Rename plan" if preview else "Rename results")
    out.rename_results_table(results)
    for r in results:
        out.rename_map_table(r)
        if r.pending_renames:
            out.pending_renames_table(r.pending_renames)

    failed = [r for r in results if r.error]
    if failed:
        out.error(f"Rename failed for {len(failed)} database(s).")
        raise typer.Exit(EXIT_FAILURE)

    partial = [r for r in results if r.status == RenameStatus.PARTIAL]
    if preview:
        out.success(f"Preview complete: {len(results)} database(s) planned.")
    elif partial:
        out.warn(
            f"{len(partial)} database(s) need manual follow-up (status PARTIAL)."
        )
    else:
        out.success(f"Renamed {len(results)} database(s).")
