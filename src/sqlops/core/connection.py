"""Connection helpers for SQL Server.

This module centralizes creation of pyodbc connections and applies small but
important normalization rules (driver braces, instance/port syntax) so every
command connects the same way. Settings come from explicit values with
environment variable fallbacks.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import pyodbc

DEFAULT_DRIVER = "ODBC Driver 18 for SQL Server"
DEFAULT_TIMEOUT = 15

_ENV_DRIVER = "SQLOPS_ODBC_DRIVER"
_ENV_USER = "SQLOPS_USER"
_ENV_PASSWORD = "SQLOPS_PASSWORD"
_ENV_TRUST_CERT = "SQLOPS_TRUST_CERT"
_ENV_TIMEOUT = "SQLOPS_TIMEOUT"


class ConnectError(RuntimeError):
    """Raised when connecting to SQL Server fails."""


@dataclass(frozen=True)
class ConnectionSettings:
    """
    Settings used to open a connection.

    Attributes:
        driver: ODBC driver name.
        user: SQL login; None uses integrated (Windows/Kerberos) authentication.
        password: Password for `user`.
        trust_server_certificate: Skip certificate validation.
        timeout: Login timeout in seconds.
    """

    driver: str = DEFAULT_DRIVER
    user: str | None = None
    password: str | None = None
    trust_server_certificate: bool = True
    timeout: int = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls, **overrides) -> "ConnectionSettings":
        """Build settings from SQLOPS_* environment variables, then overrides."""
        values: dict[str, object] = {
            "driver": os.getenv(_ENV_DRIVER) or DEFAULT_DRIVER,
            "user": os.getenv(_ENV_USER) or None,
            "password": os.getenv(_ENV_PASSWORD) or None,
            "trust_server_certificate": _env_bool(_ENV_TRUST_CERT, True),
            "timeout": _env_int(_ENV_TIMEOUT, DEFAULT_TIMEOUT),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return max(int(raw), 0)
    except ValueError:
        return default


def _sanitize_driver(driver: str) -> str:
    """Strip surrounding braces; they are re-added when building the string."""
    return driver.strip().strip("{}")


def _escape_value(value: str) -> str:
    """Brace-quote ODBC values containing separators."""
    if re.search(r"[;{}=]", value) or value != value.strip():
        return "{" + value.replace("}", "}}") + "}"
    return value


def build_connection_string(
    server: str, settings: ConnectionSettings, database: str = "master"
) -> str:
    """
    Build an ODBC connection string.

    Args:
        server: Instance name (`host`, `host\\instance` or `host,port`).
        settings: Connection settings.
        database: Initial database.
    """
    parts = [
        f"DRIVER={{{_sanitize_driver(settings.driver)}}}",
        f"SERVER={_escape_value(server)}",
        f"DATABASE={_escape_value(database)}",
    ]
    if settings.user:
        parts.append(f"UID={_escape_value(settings.user)}")
        parts.append(f"PWD={_escape_value(settings.password or '')}")
    else:
        parts.append("Trusted_Connection=yes")
    if settings.trust_server_certificate:
        parts.append("TrustServerCertificate=yes")
    parts.append("APP=sqlops")
    return ";".join(parts) + ";"


def _format_connect_error(server: str, message: str) -> str:
    """Return a user-friendly connection error message."""
    if "Login failed" in message:
        return f"Login failed for {server}. Check --user/--password or SQLOPS_USER."
    if "Data source name not found" in message or "Can't open lib" in message:
        return (
            "ODBC driver not found. Install it or set --driver / "
            f"{_ENV_DRIVER} (current error: {message})"
        )
    return f"Could not connect to {server}: {message}"


def get_connection(
    server: str, settings: ConnectionSettings | None = None
) -> pyodbc.Connection:
    """
    Open an autocommit connection to a SQL Server instance.

    Autocommit is required: ALTER DATABASE and ALTER LOGIN statements cannot
    run inside a user transaction.
    """
    # pyodbc needs the unixODBC driver manager at import time
    import pyodbc

    settings = settings or ConnectionSettings.from_env()
    try:
        return pyodbc.connect(
            build_connection_string(server, settings),
            autocommit=True,
            timeout=settings.timeout,
        )
    except pyodbc.Error as exc:
        raise ConnectError(_format_connect_error(server, str(exc))) from exc
