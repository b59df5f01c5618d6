"""CLI application for SQL Server operations tooling."""

import typer

from sqlops.cli.commands.logins import logins_app
from sqlops.cli.commands.rename import rename_app
from sqlops.cli.commands.report import report_app
from sqlops.cli.common.context import build_context
from sqlops.cli.common.logs import configure_logging
from sqlops.cli.common.options import (
    DriverOpt,
    PasswordOpt,
    TimeoutOpt,
    TrustCertOpt,
    UserOpt,
    VerboseOpt,
)

app = typer.Typer(
    help="sqlops - SQL Server rename and login sync tooling",
    no_args_is_help=True,
)


@app.callback()
def _init(
    ctx: typer.Context,
    driver: str | None = DriverOpt,
    user: str | None = UserOpt,
    password: str | None = PasswordOpt,
    trust_cert: bool | None = TrustCertOpt,
    timeout: int | None = TimeoutOpt,
    verbose: bool = VerboseOpt,
):
    """Configure logging and connection settings shared by all commands."""
    configure_logging(verbose)
    # Connections are opened lazily per server and closed on exit
    ctx.obj = build_context(
        driver=driver,
        user=user,
        password=password,
        trust_cert=trust_cert,
        timeout=timeout,
    )
    ctx.call_on_close(ctx.obj.close)


app.add_typer(
    rename_app, name="rename", help="Rename databases, filegroups and files."
)
app.add_typer(logins_app, name="logins", help="Synchronize login permissions.")
app.add_typer(report_app, name="report", help="Health-check report conventions.")


if __name__ == "__main__":
    app()
