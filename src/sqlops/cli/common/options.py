"""Common CLI options for the CLI."""

import typer

from sqlops.core.connection import DEFAULT_DRIVER, DEFAULT_TIMEOUT

ServerOpt = typer.Option(
    ...,
    "--server",
    "-S",
    help="SQL Server instance (host, host\\instance or host,port). Repeatable.",
)

DriverOpt = typer.Option(
    None,
    "--driver",
    envvar="SQLOPS_ODBC_DRIVER",
    help=f"ODBC driver name [default: {DEFAULT_DRIVER}]",
)

UserOpt = typer.Option(
    None,
    "--user",
    "-U",
    envvar="SQLOPS_USER",
    help="SQL login (omit for integrated authentication)",
)

PasswordOpt = typer.Option(
    None,
    "--password",
    envvar="SQLOPS_PASSWORD",
    help="Password for --user",
)

TrustCertOpt = typer.Option(
    None,
    "--trust-cert/--no-trust-cert",
    envvar="SQLOPS_TRUST_CERT",
    help="Trust the server certificate [default: trust]",
)

TimeoutOpt = typer.Option(
    None,
    "--timeout",
    envvar="SQLOPS_TIMEOUT",
    help=f"Login timeout in seconds [default: {DEFAULT_TIMEOUT}]",
)

VerboseOpt = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Log debug details (including executed T-SQL) to stderr",
)

DatabaseOpt = typer.Option(
    [],
    "--database",
    "-d",
    help="Database to process. Repeatable.",
    show_default=False,
)

DatabaseRegexOpt = typer.Option(
    None,
    "--database-regex",
    help="Regular expression on database names (combined with --database as OR)",
)

ExcludeDatabaseOpt = typer.Option(
    [],
    "--exclude-database",
    "-x",
    help="Database to leave out. Repeatable.",
    show_default=False,
)

AllDatabasesOpt = typer.Option(
    False,
    "--all-databases",
    help="Process every eligible user database",
)

PickOpt = typer.Option(
    False,
    "--pick",
    help="Choose databases interactively from the matched list",
)

YesOpt = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt")
