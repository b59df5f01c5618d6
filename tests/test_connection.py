import pytest

from sqlops.core.connection import (
    DEFAULT_DRIVER,
    DEFAULT_TIMEOUT,
    ConnectError,
    ConnectionSettings,
    _format_connect_error,
    build_connection_string,
    get_connection,
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "SQLOPS_ODBC_DRIVER",
        "SQLOPS_USER",
        "SQLOPS_PASSWORD",
        "SQLOPS_TRUST_CERT",
        "SQLOPS_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_from_env_defaults(clean_env):
    settings = ConnectionSettings.from_env()

    assert settings.driver == DEFAULT_DRIVER
    assert settings.user is None
    assert settings.trust_server_certificate is True
    assert settings.timeout == DEFAULT_TIMEOUT


def test_from_env_reads_variables_and_ignores_none_overrides(clean_env):
    clean_env.setenv("SQLOPS_USER", "ops")
    clean_env.setenv("SQLOPS_TRUST_CERT", "no")
    clean_env.setenv("SQLOPS_TIMEOUT", "30")

    settings = ConnectionSettings.from_env(user=None, password="secret")

    assert settings.user == "ops"
    assert settings.password == "secret"
    assert settings.trust_server_certificate is False
    assert settings.timeout == 30


def test_from_env_invalid_timeout_falls_back(clean_env):
    clean_env.setenv("SQLOPS_TIMEOUT", "soon")

    assert ConnectionSettings.from_env().timeout == DEFAULT_TIMEOUT


def test_connection_string_integrated_auth():
    conn_str = build_connection_string("SQL01\\PROD", ConnectionSettings())

    assert conn_str == (
        "DRIVER={ODBC Driver 18 for SQL Server};SERVER=SQL01\\PROD;DATABASE=master;"
        "Trusted_Connection=yes;TrustServerCertificate=yes;APP=sqlops;"
    )


def test_connection_string_sql_auth_escapes_values():
    settings = ConnectionSettings(
        driver="{ODBC Driver 17 for SQL Server}",
        user="ops",
        password="p;w}d",
        trust_server_certificate=False,
    )

    conn_str = build_connection_string("SQL01,1433", settings, database="HR")

    assert conn_str == (
        "DRIVER={ODBC Driver 17 for SQL Server};SERVER=SQL01,1433;DATABASE=HR;"
        "UID=ops;PWD={p;w}}d};APP=sqlops;"
    )


def test_format_connect_error_messages():
    assert "Login failed for SQL01" in _format_connect_error(
        "SQL01", "[28000] Login failed for user 'x'"
    )
    assert "ODBC driver not found" in _format_connect_error(
        "SQL01", "[01000] Can't open lib 'ODBC Driver 18 for SQL Server'"
    )
    assert _format_connect_error("SQL01", "timeout").startswith("Could not connect")


def test_get_connection_wraps_driver_errors(monkeypatch):
    pyodbc = pytest.importorskip("pyodbc")

    def fake_connect(*_args, **_kwargs):
        raise pyodbc.Error("28000", "Login failed for user 'ops'")

    monkeypatch.setattr(pyodbc, "connect", fake_connect)

    with pytest.raises(ConnectError, match="Login failed for SQL01"):
        get_connection("SQL01", ConnectionSettings(user="ops", password="x"))
