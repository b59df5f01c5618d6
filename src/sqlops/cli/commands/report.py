"""Commands around health-check report conventions."""

from __future__ import annotations

from datetime import datetime

import typer

from sqlops.core.reports import ScanType, report_file_name

report_app = typer.Typer(
    help="Health-check report conventions.",
    no_args_is_help=True,
)


@report_app.command("filename")
def filename(
    server: str = typer.Option(..., "--server", "-S", help="SQL Server instance"),
    scan_type: ScanType = typer.Option(
        ScanType.BASIC, "--scan-type", case_sensitive=False, help="Report scan type"
    ),
):
    """Print the file name a report for this server and scan type is written to."""
    typer.echo(report_file_name(server, scan_type, datetime.now()))
