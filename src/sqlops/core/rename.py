"""Database, filegroup, logical file and physical file renaming.

This module contains the rename orchestrator. For each selected database it
renders the requested templates, resolves naming collisions and applies the
renames in a fixed order:

  database -> filegroups -> logical files -> physical files -> offline/move/online

A failing step stops the remaining steps for that database only; other
databases in the batch are still processed. There is no rollback: the result
status (`FULL` / `PARTIAL`) tells the operator whether manual follow-up is
needed.

The module is free of CLI concerns. Collision tables live on an explicit
`RenameContext` owned by the caller, so a batch is reproducible and tests can
run planning twice against the same starting state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from pathlib import PurePosixPath, PureWindowsPath
from typing import Protocol

from sqlops.core.hosts import FileMover, HostKind, PendingFileRename, host_from_instance
from sqlops.core.models import DatabaseInfo, DataFileInfo, FileGroupInfo
from sqlops.core.results import Err, attempt
from sqlops.core.selectors import skip_reason
from sqlops.core.templates import TemplateValues, render, strip_segments

logger = logging.getLogger(__name__)

PRIMARY_FILEGROUP = "PRIMARY"


class RenameError(ValueError):
    """Raised when a rename request is invalid before anything is changed."""


class RenameStatus(str, Enum):
    """
    Final status of a rename for one database.

    Values:
        FULL: Every requested step completed.
        PARTIAL: Some step failed or needs manual follow-up.
    """

    FULL = "FULL"
    PARTIAL = "PARTIAL"


@dataclass(frozen=True)
class RenameTemplates:
    """Templates per rename level; None leaves that level untouched."""

    database: str | None = None
    filegroup: str | None = None
    logical: str | None = None
    file: str | None = None

    def is_empty(self) -> bool:
        return not any((self.database, self.filegroup, self.logical, self.file))


@dataclass(frozen=True)
class RenameOptions:
    """
    Behaviour switches for a rename batch.

    Attributes:
        replace_before: Strip renamed parent names out of child names first.
        force: Kick out other connections (ROLLBACK IMMEDIATE) when needed.
        move: Take the database offline, move physical files, bring it online.
        set_offline: Take the database offline after physical renames.
        preview: Plan only; issue no mutating calls.
        today: Date used for the `<DATE>` placeholder (defaults to today).
    """

    replace_before: bool = False
    force: bool = False
    move: bool = False
    set_offline: bool = False
    preview: bool = False
    today: date | None = None


@dataclass
class RenameContext:
    """
    Per-invocation state shared across a batch.

    Attributes:
        counter: Last numeric suffix handed out; never reused within a run.
        database_names: Lower-cased database names per server.
        directory_files: Lower-cased file names per (server, directory).
    """

    counter: int = 0
    database_names: dict[str, set[str]] = field(default_factory=dict)
    directory_files: dict[str, set[str]] = field(default_factory=dict)

    def next_suffix(self) -> str:
        self.counter += 1
        return f"{self.counter:03d}"


@dataclass
class RenameResult:
    """Outcome of a rename for one database."""

    server: str
    database: str
    database_renames: dict[str, str] = field(default_factory=dict)
    filegroup_renames: dict[str, str] = field(default_factory=dict)
    logical_renames: dict[str, str] = field(default_factory=dict)
    file_renames: dict[str, str] = field(default_factory=dict)
    pending_renames: list[PendingFileRename] = field(default_factory=list)
    status: RenameStatus = RenameStatus.FULL
    preview: bool = False
    error: str | None = None

    @property
    def final_name(self) -> str:
        return self.database_renames.get(self.database, self.database)


class RenameAdapter(Protocol):
    """Interface for the metadata and mutations used by the rename orchestrator."""

    server: str

    def list_databases(self) -> list[DatabaseInfo]:
        """Return all databases on the server."""
        ...

    def list_filegroups(self, database: str) -> list[FileGroupInfo]:
        """Return the filegroups of a database."""
        ...

    def list_files(self, database: str) -> list[DataFileInfo]:
        """Return the data and log files of a database."""
        ...

    def list_directory(self, path: str) -> list[str]:
        """Return file names present in a directory on the server host."""
        ...

    def server_host(self) -> str:
        """Return the physical host name of the server."""
        ...

    def rename_database(self, name: str, new_name: str, *, force: bool = False) -> None:
        ...

    def rename_filegroup(self, database: str, name: str, new_name: str) -> None:
        ...

    def rename_logical_file(self, database: str, name: str, new_name: str) -> None:
        ...

    def set_file_path(self, database: str, logical_name: str, path: str) -> None:
        """Point a file's metadata at a new physical path."""
        ...

    def set_offline(self, database: str, *, force: bool = False) -> None:
        ...

    def set_online(self, database: str) -> None:
        ...


def _split_path(path: str) -> tuple[PurePosixPath | PureWindowsPath, str, str]:
    """Split a server path into (parent, stem, suffix) honoring its flavour."""
    flavour = PureWindowsPath if ("\\" in path or ":" in path[:3]) else PurePosixPath
    p = flavour(path)
    return p.parent, p.stem, p.suffix


def unique_name(
    candidate: str,
    taken: set[str],
    context: RenameContext,
    *,
    extension: str = "",
) -> str:
    """
    Return `candidate`, or a suffixed variant if it is already taken.

    The suffix is the next zero-padded value of the run counter, placed before
    `extension` when the candidate ends with it. Comparison is case-insensitive.
    """
    if candidate.lower() not in taken:
        return candidate

    base, ext = candidate, ""
    if extension and candidate.endswith(extension):
        base, ext = candidate[: -len(extension)], extension

    while True:
        new = f"{base}{context.next_suffix()}{ext}"
        if new.lower() not in taken:
            logger.info("%s is already in use, using %s", candidate, new)
            return new


def _parents_to_strip(pairs: list[tuple[str | None, str | None]]) -> list[str]:
    """
    Original names of parent levels whose name actually changed.

    Longest names come first, so a filegroup named `HR_Data` is stripped
    before the database name `HR` it contains.
    """
    changed = [
        before for before, after in pairs if before and after and before != after
    ]
    return sorted(changed, key=len, reverse=True)


class _DatabaseRename:
    """Plans and applies the rename of a single database."""

    def __init__(
        self,
        adapter: RenameAdapter,
        db: DatabaseInfo,
        templates: RenameTemplates,
        options: RenameOptions,
        context: RenameContext,
        mover: FileMover | None,
    ) -> None:
        self.adapter = adapter
        self.db = db
        self.templates = templates
        self.options = options
        self.context = context
        self.mover = mover
        self.today = options.today or date.today()
        self.current = db.name
        self.filegroups: list[FileGroupInfo] = []
        self.files: list[DataFileInfo] = []
        self.result = RenameResult(
            server=adapter.server, database=db.name, preview=options.preview
        )

    def _fail(self, step: Err) -> bool:
        logger.warning(
            "[%s] %s failed for %s: %s",
            self.adapter.server,
            step.kind,
            self.db.name,
            step.message,
        )
        self.result.error = f"{step.kind}: {step.message}"
        self.result.status = RenameStatus.PARTIAL
        return False

    def _apply(self, kind: str, fn, *args, **kwargs) -> bool:
        if self.options.preview:
            return True
        step = attempt(kind, fn, *args, **kwargs)
        if isinstance(step, Err):
            return self._fail(step)
        return True

    def _load_metadata(self) -> bool:
        # Read once, before any rename, so planning sees the original names.
        t = self.templates
        if t.filegroup:
            step = attempt("read-filegroups", self.adapter.list_filegroups, self.db.name)
            if isinstance(step, Err):
                return self._fail(step)
            self.filegroups = list(step.value or [])
        if t.logical or t.file:
            step = attempt("read-files", self.adapter.list_files, self.db.name)
            if isinstance(step, Err):
                return self._fail(step)
            self.files = list(step.value or [])
        return True

    def run(self) -> RenameResult:
        steps = (
            self._load_metadata,
            self._rename_database,
            self._rename_filegroups,
            self._rename_logical_files,
            self._rename_physical_files,
        )
        for step in steps:
            if not step():
                break
        return self.result

    def _rename_database(self) -> bool:
        if not self.templates.database:
            return True

        server_key = self.adapter.server.lower()
        if server_key not in self.context.database_names:
            step = attempt("read-databases", self.adapter.list_databases)
            if isinstance(step, Err):
                return self._fail(step)
            self.context.database_names[server_key] = {
                d.name.lower() for d in step.value or []
            }
        taken = self.context.database_names[server_key]
        candidate = render(
            self.templates.database,
            TemplateValues(database=self.db.name, today=self.today),
        )
        siblings = taken - {self.db.name.lower()}
        new = (
            self.db.name
            if candidate == self.db.name
            else unique_name(candidate, siblings, self.context)
        )
        self.result.database_renames[self.db.name] = new
        if new == self.db.name:
            return True

        if not self._apply(
            "database-rename",
            self.adapter.rename_database,
            self.db.name,
            new,
            force=self.options.force,
        ):
            return False

        taken.discard(self.db.name.lower())
        taken.add(new.lower())
        self.current = new
        return True

    def _rename_filegroups(self) -> bool:
        if not self.templates.filegroup:
            return True

        filegroups = [f.name for f in self.filegroups]
        taken = {n.lower() for n in filegroups}
        strip = _parents_to_strip([(self.db.name, self.current)])

        for name in filegroups:
            if name.upper() == PRIMARY_FILEGROUP:
                continue
            own = strip_segments(name, strip) if self.options.replace_before else name
            candidate = render(
                self.templates.filegroup,
                TemplateValues(database=self.current, filegroup=own, today=self.today),
            )
            new = (
                name
                if candidate == name
                else unique_name(candidate, taken - {name.lower()}, self.context)
            )
            self.result.filegroup_renames[name] = new
            if new == name:
                continue
            if not self._apply(
                "filegroup-rename", self.adapter.rename_filegroup, self.current, name, new
            ):
                return False
            taken.discard(name.lower())
            taken.add(new.lower())
        return True

    def _filegroup_after(self, filegroup: str | None) -> str | None:
        if filegroup is None:
            return None
        return self.result.filegroup_renames.get(filegroup, filegroup)

    def _rename_logical_files(self) -> bool:
        if not self.templates.logical:
            return True

        files = self.files
        taken = {f.logical_name.lower() for f in files}

        for f in files:
            fg_after = self._filegroup_after(f.filegroup)
            own = f.logical_name
            if self.options.replace_before:
                own = strip_segments(
                    own,
                    _parents_to_strip(
                        [(self.db.name, self.current), (f.filegroup, fg_after)]
                    ),
                )
            candidate = render(
                self.templates.logical,
                TemplateValues(
                    database=self.current,
                    filegroup=fg_after,
                    logical=own,
                    file_type=f.type.tag,
                    today=self.today,
                ),
            )
            name = f.logical_name
            new = (
                name
                if candidate == name
                else unique_name(candidate, taken - {name.lower()}, self.context)
            )
            self.result.logical_renames[name] = new
            if new == name:
                continue
            if not self._apply(
                "logical-rename",
                self.adapter.rename_logical_file,
                self.current,
                name,
                new,
            ):
                return False
            taken.discard(name.lower())
            taken.add(new.lower())
        return True

    def _directory_files(self, directory: str) -> set[str]:
        key = f"{self.adapter.server}|{directory}".lower()
        if key not in self.context.directory_files:
            try:
                names = self.adapter.list_directory(directory)
            except Exception as e:  # noqa: BLE001  planning continues without it
                logger.warning("Could not list %s: %s", directory, e)
                names = []
            self.context.directory_files[key] = {n.lower() for n in names}
        return self.context.directory_files[key]

    def _rename_physical_files(self) -> bool:
        if not self.templates.file:
            return True

        files = self.files
        pending: list[tuple[DataFileInfo, str]] = []

        for f in files:
            directory, stem, suffix = _split_path(f.physical_name)
            fg_after = self._filegroup_after(f.filegroup)
            lg_after = self.result.logical_renames.get(f.logical_name, f.logical_name)
            own = stem
            if self.options.replace_before:
                own = strip_segments(
                    own,
                    _parents_to_strip(
                        [
                            (self.db.name, self.current),
                            (f.filegroup, fg_after),
                            (f.logical_name, lg_after),
                        ]
                    ),
                )
            candidate = (
                render(
                    self.templates.file,
                    TemplateValues(
                        database=self.current,
                        filegroup=fg_after,
                        logical=lg_after,
                        file_base=own,
                        file_type=f.type.tag,
                        today=self.today,
                    ),
                )
                + suffix
            )
            current_name = stem + suffix
            existing = self._directory_files(str(directory))
            new_name = (
                current_name
                if candidate == current_name
                else unique_name(
                    candidate,
                    existing - {current_name.lower()},
                    self.context,
                    extension=suffix,
                )
            )
            new_path = str(directory / new_name)
            self.result.file_renames[f.physical_name] = new_path
            if new_name == current_name:
                continue
            existing.discard(current_name.lower())
            existing.add(new_name.lower())
            pending.append((f, new_path))

        if not pending:
            return True

        for f, new_path in pending:
            logical = self.result.logical_renames.get(f.logical_name, f.logical_name)
            if not self._apply(
                "file-path-update",
                self.adapter.set_file_path,
                self.current,
                logical,
                new_path,
            ):
                return False
            self.result.pending_renames.append(
                PendingFileRename(source=f.physical_name, destination=new_path)
            )

        return self._relocate()

    def _relocate(self) -> bool:
        opts = self.options
        if not (opts.move or opts.set_offline):
            logger.warning(
                "[%s] %s: file metadata changed; take the database offline and "
                "rename the physical files manually",
                self.adapter.server,
                self.current,
            )
            self.result.status = RenameStatus.PARTIAL
            return True

        if opts.preview:
            if not opts.move:
                self.result.status = RenameStatus.PARTIAL
            return True

        if not self._apply(
            "set-offline", self.adapter.set_offline, self.current, force=opts.force
        ):
            return False

        if not opts.move:
            logger.warning(
                "[%s] %s is offline; rename the physical files manually and bring it online",
                self.adapter.server,
                self.current,
            )
            self.result.status = RenameStatus.PARTIAL
            return True

        mover = self.mover or FileMover()
        host = self._server_host()
        moved = [mover.move(host, p) for p in self.result.pending_renames]
        self.result.pending_renames = moved

        if not all(p.done for p in moved):
            unresolved = [p for p in moved if p.host_kind == HostKind.UNRESOLVED]
            if unresolved:
                logger.warning(
                    "[%s] %s: could not reach %s; %d file(s) must be moved manually",
                    self.adapter.server,
                    self.current,
                    host,
                    len(unresolved),
                )
            self.result.status = RenameStatus.PARTIAL
            return True

        return self._apply("set-online", self.adapter.set_online, self.current)

    def _server_host(self) -> str:
        step = attempt("server-host", self.adapter.server_host)
        if isinstance(step, Err) or not step.value:
            return host_from_instance(self.adapter.server)
        return step.value


def rename_databases(
    adapter: RenameAdapter,
    databases: list[DatabaseInfo],
    templates: RenameTemplates,
    options: RenameOptions | None = None,
    *,
    context: RenameContext | None = None,
    mover: FileMover | None = None,
) -> list[RenameResult]:
    """
    Rename databases and their files from templates.

    Args:
        adapter: Rename adapter bound to one SQL Server instance.
        databases: Databases to process, in order.
        templates: Templates per level; at least one must be set.
        options: Behaviour switches (preview, move, ...).
        context: Collision tables for this invocation; a fresh one if None.
        mover: File mover used with `move`; a default FileMover if None.

    Returns:
        One RenameResult per processed (non-skipped) database.

    Raises:
        RenameError: If no template is provided.
    """
    if templates.is_empty():
        raise RenameError(
            "Provide at least one of database, filegroup, logical or file name templates."
        )
    options = options or RenameOptions()
    context = context if context is not None else RenameContext()

    results: list[RenameResult] = []
    for db in databases:
        reason = skip_reason(db)
        if reason:
            logger.warning("[%s] Skipping %s: %s", adapter.server, db.name, reason)
            continue
        results.append(
            _DatabaseRename(adapter, db, templates, options, context, mover).run()
        )
    return results
