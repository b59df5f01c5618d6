"""Database selector abstractions and eligibility rules.

This module defines the selector system used to determine whether a database
matches the user's selection criteria (explicit names, exclusions, regex),
plus the fixed eligibility rules that exclude system, mirrored, availability
group and inaccessible databases from rename and sync operations.

Selectors are pure, side-effect-free objects and are intended to be reusable
across different frontends such as CLI commands, automation scripts, and
tests.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from sqlops.core.models import DatabaseInfo


class DatabaseSelector(ABC):
    """
    Abstract base class for all database selectors.

    A DatabaseSelector encapsulates a single piece of matching logic that
    determines whether a given database satisfies a specific criterion.
    """

    @abstractmethod
    def matches(self, db: DatabaseInfo) -> bool:
        """
        Determine whether the given database matches this selector.

        Args:
            db: DatabaseInfo instance to evaluate.

        Returns:
            True if the database matches the selector criteria, False otherwise.
        """
        ...


class AllSelector(DatabaseSelector):
    """Selector that matches every database."""

    def matches(self, db: DatabaseInfo) -> bool:
        return True


class NameSelector(DatabaseSelector):
    """
    Selector that matches databases by exact name (case-insensitive, as
    SQL Server compares database names under the default collation).
    """

    def __init__(self, names: Iterable[str]):
        self.names = {n.lower() for n in names}

    def matches(self, db: DatabaseInfo) -> bool:
        return db.name.lower() in self.names


class NameRegexSelector(DatabaseSelector):
    """
    Selector that matches databases based on a regular expression applied
    to the database name.
    """

    def __init__(self, pattern: str):
        """
        Create a name-based regex selector.

        Args:
            pattern: Regular expression pattern used to match database names.
        """
        try:
            self.regex = re.compile(pattern)
        except re.error as exc:
            raise ValueError(f"Invalid regex expression: {exc}") from exc

    def matches(self, db: DatabaseInfo) -> bool:
        return bool(self.regex.search(db.name))


class NotSelector(DatabaseSelector):
    """Selector that inverts a child selector (used for exclusions)."""

    def __init__(self, selector: DatabaseSelector):
        self.selector = selector

    def matches(self, db: DatabaseInfo) -> bool:
        return not self.selector.matches(db)


class AndSelector(DatabaseSelector):
    """
    Composite selector that matches a database only if all child selectors match.
    """

    def __init__(self, selectors: list[DatabaseSelector]):
        self.selectors = selectors

    def matches(self, db: DatabaseInfo) -> bool:
        return all(s.matches(db) for s in self.selectors)


class OrSelector(DatabaseSelector):
    """
    Composite selector that matches a database if any child selector matches.
    """

    def __init__(self, selectors: list[DatabaseSelector]):
        self.selectors = selectors

    def matches(self, db: DatabaseInfo) -> bool:
        return any(s.matches(db) for s in self.selectors)


def skip_reason(db: DatabaseInfo) -> str | None:
    """
    Return why a database must not be renamed or synced, or None if eligible.

    System databases, mirrored databases, availability group members and
    inaccessible databases are skipped with a warning, never failed.
    """
    if db.is_system:
        return "system database"
    if db.is_mirrored:
        return "database is mirrored"
    if db.in_availability_group:
        return "database is part of an availability group"
    if not db.is_accessible:
        return "database is not accessible"
    return None


def select_databases(
    databases: Iterable[DatabaseInfo], selector: DatabaseSelector
) -> list[DatabaseInfo]:
    """Return databases matching the selector, preserving enumeration order."""
    return [db for db in databases if selector.matches(db)]
