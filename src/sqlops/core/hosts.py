"""Execution host resolution and physical file moves.

Renaming a physical database file means moving it on the SQL Server host.
This module decides *where* the move can run from, trying in order:

  1) the local filesystem, when the SQL Server host is this machine
  2) PowerShell remoting, when a probe against the host succeeds
  3) the administrative share (`\\\\host\\D$\\...`), when it is reachable

If none of these works the move is recorded as unresolved and left for the
operator. Probe results are cached per host for the lifetime of one mover.
"""

from __future__ import annotations

import logging
import os
import shutil
import socket
import subprocess
import sys
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import PureWindowsPath
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

_LOCAL_ALIASES = {".", "(local)", "localhost", "127.0.0.1", "::1"}
_POWERSHELL_ENV = "SQLOPS_POWERSHELL"


class HostKind(str, Enum):
    """
    How a physical file move is executed.

    Values:
        LOCAL: Plain filesystem move on this machine.
        REMOTING: Move-Item executed on the host through PowerShell remoting.
        ADMIN_SHARE: Filesystem move over the host's administrative share.
        UNRESOLVED: No execution context could be found.
    """

    LOCAL = "LOCAL"
    REMOTING = "REMOTING"
    ADMIN_SHARE = "ADMIN_SHARE"
    UNRESOLVED = "UNRESOLVED"


@dataclass(frozen=True)
class PendingFileRename:
    """
    A physical file rename required by a logical/physical rename.

    Attributes:
        source: Current full path on the SQL Server host.
        destination: New full path on the SQL Server host.
        host_kind: Resolved execution context for the move.
        done: True once the file has been moved.
        error: Failure message when the move was attempted and failed.
    """

    source: str
    destination: str
    host_kind: HostKind = HostKind.UNRESOLVED
    done: bool = False
    error: str | None = None


def is_local_host(host: str) -> bool:
    """Return True if `host` names this machine."""
    name = host.strip().lower()
    if name in _LOCAL_ALIASES:
        return True
    local_names = {socket.gethostname().lower(), socket.getfqdn().lower()}
    local_names |= {n.split(".", 1)[0] for n in local_names}
    return name in local_names or name.split(".", 1)[0] in local_names


def host_from_instance(instance: str) -> str:
    """Strip instance name and port: `SQL01\\PROD,1433` -> `SQL01`."""
    host = instance.split("\\", 1)[0].split(",", 1)[0]
    if host.lower().startswith("tcp:"):
        host = host[4:]
    return host


def to_admin_share(host: str, path: str) -> str:
    """
    Translate a local Windows path into its administrative share path.

    `D:\\data\\x.mdf` on `SQL01` becomes `\\\\SQL01\\D$\\data\\x.mdf`.
    """
    p = PureWindowsPath(path)
    if not p.drive or p.drive.startswith("\\\\"):
        raise ValueError(f"Path is not on a local drive: {path}")
    drive = p.drive.rstrip(":")
    rest = str(p)[len(p.drive):].lstrip("\\")
    return f"\\\\{host}\\{drive}$\\{rest}"


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class RemoteShell(Protocol):
    """Interface for executing file moves on a remote host."""

    def test(self, host: str) -> bool:
        """Return True if commands can be executed on the host."""
        ...

    def move(self, host: str, source: str, destination: str) -> None:
        """Move a file on the host, raising on failure."""
        ...


class PowerShellRemoting:
    """RemoteShell backed by `Invoke-Command` through the PowerShell executable."""

    def __init__(self, executable: str | None = None, timeout: int = 60) -> None:
        default = "powershell" if sys.platform == "win32" else "pwsh"
        self.executable = executable or os.getenv(_POWERSHELL_ENV) or default
        self.timeout = timeout

    def _run(self, script: str) -> subprocess.CompletedProcess:
        return subprocess.run(
            [self.executable, "-NoProfile", "-NonInteractive", "-Command", script],
            capture_output=True,
            text=True,
            timeout=self.timeout,
            check=False,
        )

    def test(self, host: str) -> bool:
        script = (
            f"Invoke-Command -ComputerName {_ps_quote(host)} "
            "-ScriptBlock { $true } -ErrorAction Stop"
        )
        try:
            proc = self._run(script)
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.debug("PowerShell remoting probe to %s failed: %s", host, exc)
            return False
        return proc.returncode == 0 and "True" in proc.stdout

    def move(self, host: str, source: str, destination: str) -> None:
        script = (
            f"Invoke-Command -ComputerName {_ps_quote(host)} -ErrorAction Stop "
            "-ScriptBlock { param($s, $d) "
            "Move-Item -LiteralPath $s -Destination $d -ErrorAction Stop } "
            f"-ArgumentList {_ps_quote(source)}, {_ps_quote(destination)}"
        )
        proc = self._run(script)
        if proc.returncode != 0:
            raise RuntimeError(
                proc.stderr.strip() or f"Move-Item failed with exit code {proc.returncode}"
            )


class FileMover:
    """
    Resolves an execution context per host and performs physical moves.

    Args:
        remoting: RemoteShell used for the remoting step (None disables it).
        dir_exists: Predicate used to probe administrative shares.
        move_file: Function performing local and share moves.
    """

    def __init__(
        self,
        remoting: RemoteShell | None = None,
        *,
        dir_exists: Callable[[str], bool] = os.path.isdir,
        move_file: Callable[[str, str], object] = shutil.move,
    ) -> None:
        self.remoting = remoting
        self.dir_exists = dir_exists
        self.move_file = move_file
        self._resolved: dict[str, HostKind] = {}

    def resolve(self, host: str, sample_path: str) -> HostKind:
        """Return the first reachable execution context for `host` (cached)."""
        key = host.lower()
        if key in self._resolved:
            return self._resolved[key]

        kind = HostKind.UNRESOLVED
        if is_local_host(host):
            kind = HostKind.LOCAL
        elif self.remoting is not None and self.remoting.test(host):
            kind = HostKind.REMOTING
        else:
            try:
                share_dir = str(PureWindowsPath(to_admin_share(host, sample_path)).parent)
            except ValueError:
                share_dir = None
            if share_dir and self.dir_exists(share_dir):
                kind = HostKind.ADMIN_SHARE

        if kind == HostKind.UNRESOLVED:
            logger.warning("No way to reach %s for file moves", host)
        else:
            logger.info("File moves on %s will use %s", host, kind.value)
        self._resolved[key] = kind
        return kind

    def move(self, host: str, pending: PendingFileRename) -> PendingFileRename:
        """Move one file; returns the pending rename annotated with the outcome."""
        kind = self.resolve(host, pending.source)
        pending = replace(pending, host_kind=kind)
        if kind == HostKind.UNRESOLVED:
            return pending

        try:
            if kind == HostKind.LOCAL:
                self.move_file(pending.source, pending.destination)
            elif kind == HostKind.ADMIN_SHARE:
                self.move_file(
                    to_admin_share(host, pending.source),
                    to_admin_share(host, pending.destination),
                )
            elif self.remoting is None:
                raise RuntimeError(f"no remote shell configured for {host}")
            else:
                self.remoting.move(host, pending.source, pending.destination)
        except Exception as e:  # noqa: BLE001  report per file, keep going
            logger.warning(
                "Moving %s to %s failed: %s", pending.source, pending.destination, e
            )
            return replace(pending, error=str(e))

        return replace(pending, done=True)
