"""Health-check report naming.

Spreadsheet generation is handled elsewhere; this module only carries the
scan-type flag and the file naming convention reports are written with.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


class ScanType(str, Enum):
    """Which set of canned checks a health-check report runs."""

    BASIC = "Basic"
    ADVANCED = "Advanced"
    DBA = "DBA"


def report_file_name(server: str, scan_type: ScanType, when: datetime) -> str:
    """
    Return `<Server>-<ScanType>-SQLServerConfigReport-<timestamp>.xlsx`.

    Backslashes of named instances (`SQL01\\PROD`) become underscores.
    """
    safe_server = server.replace("\\", "_")
    stamp = when.strftime(TIMESTAMP_FORMAT)
    return f"{safe_server}-{ScanType(scan_type).value}-SQLServerConfigReport-{stamp}.xlsx"
