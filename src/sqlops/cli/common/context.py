"""Application context management for the CLI."""

from dataclasses import dataclass, field

from sqlops.cli.common.exits import exit_from_exc
from sqlops.core.adapters.sqlserver import SqlServerAdapter
from sqlops.core.connection import ConnectError, ConnectionSettings, get_connection


@dataclass
class AppContext:
    """Application context holding connection settings and opened adapters."""

    settings: ConnectionSettings
    adapters: dict[str, SqlServerAdapter] = field(default_factory=dict)

    def adapter(self, server: str) -> SqlServerAdapter:
        """Return the adapter for `server`, connecting on first use."""
        key = server.lower()
        if key not in self.adapters:
            self.adapters[key] = build_adapter(server, self.settings)
        return self.adapters[key]

    def close(self) -> None:
        for adapter in self.adapters.values():
            adapter.connection.close()
        self.adapters.clear()


def build_adapter(server: str, settings: ConnectionSettings) -> SqlServerAdapter:
    """Connect to `server` and wrap the connection in a SqlServerAdapter.

    Exits the CLI with code 1 when the connection cannot be opened.
    """
    try:
        connection = get_connection(server, settings)
    except ConnectError as exc:
        exit_from_exc(exc)
    return SqlServerAdapter(connection, server)


def build_context(
    *,
    driver: str | None,
    user: str | None,
    password: str | None,
    trust_cert: bool | None,
    timeout: int | None,
) -> AppContext:
    """Build the application context from CLI options (env vars fill the gaps)."""
    settings = ConnectionSettings.from_env(
        driver=driver,
        user=user,
        password=password,
        trust_server_certificate=trust_cert,
        timeout=timeout,
    )
    return AppContext(settings=settings)
