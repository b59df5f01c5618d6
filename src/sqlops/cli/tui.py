"""Terminal UI utilities for sqlops."""

from __future__ import annotations

import questionary

from sqlops.cli.common.tui_style import QUESTIONARY_STYLE_SELECT
from sqlops.core.models import DatabaseInfo

_MAX_DB_NAME_WIDTH = 64


def _truncate(text: str, max_len: int) -> str:
    """Return text capped at max_len characters using an ASCII ellipsis."""
    if max_len <= 3 or len(text) <= max_len:
        return text[:max_len]
    return f"{text[: max_len - 3]}..."


def _database_choice_title(server: str, db: DatabaseInfo, *, name_width: int) -> str:
    """Format one choice as `<database>  (<server>, owner: <owner>)` with aligned columns."""
    short_name = _truncate(db.name, _MAX_DB_NAME_WIDTH)
    owner = db.owner or "?"
    return f"{short_name.ljust(name_width)}  ({server}, owner: {owner})"


def select_databases(server: str, databases: list[DatabaseInfo]) -> list[DatabaseInfo]:
    """Display a checkbox prompt to select databases from a list.

    Args:
        server: Instance the databases live on (shown next to each name).
        databases: A list of DatabaseInfo objects to choose from.

    Returns:
        A list of selected DatabaseInfo objects, or an empty list if none selected.
    """
    shown_names = [_truncate(db.name, _MAX_DB_NAME_WIDTH) for db in databases]
    name_width = max((len(name) for name in shown_names), default=0)

    choices = [
        questionary.Choice(
            title=_database_choice_title(server, db, name_width=name_width),
            value=db,
        )
        for db in databases
    ]

    return (
        questionary.checkbox(
            f"Select databases on {server}:",
            choices=choices,
            style=QUESTIONARY_STYLE_SELECT,
        ).ask()
        or []
    )
