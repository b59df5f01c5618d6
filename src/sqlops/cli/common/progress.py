"""Progress formatting utilities for the CLI."""

from __future__ import annotations

from typing import Callable, Sequence, TypeVar

from rich.console import Console, Group
from rich.live import Live
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

T = TypeVar("T")
R = TypeVar("R")

console = Console()
_MAX_NAME_WIDTH = 56


def _truncate(text: str, max_len: int) -> str:
    """Return text capped at max_len characters using an ASCII ellipsis."""
    if max_len <= 3 or len(text) <= max_len:
        return text[:max_len]
    return f"{text[: max_len - 3]}..."


def _display_label(name: str, server: str | None, *, name_width: int) -> str:
    """
    Render an item label for the live progress list.

    - With a server: `<name>  (<server>)` with aligned server column.
    - Without one: just `<name>`.
    """
    short_name = _truncate(name, _MAX_NAME_WIDTH)
    if not server:
        return short_name
    return f"{short_name.ljust(name_width)}  ({server})"


def _style_for(status: str) -> str:
    if status in ("FULL", "OK"):
        return "green"
    if status in ("FAILED", "ERROR"):
        return "red"
    if status in ("PENDING", "RUNNING"):
        return "yellow"
    return "dim"


def process_with_progress(
    items: Sequence[T],
    work: Callable[[T], R],
    *,
    name_of: Callable[[T], str],
    status_of: Callable[[R], str],
    server_of: Callable[[T], str | None] = lambda _: None,
) -> list[R]:
    """
    Process items one at a time, in order. Shows:
      - an overall progress bar (x/y processed + problems)
      - per-item rows with a spinner, the final status and elapsed time

    Returns the results in input order.
    """
    names = [_truncate(name_of(i), _MAX_NAME_WIDTH) for i in items]
    name_width = max((len(n) for n in names), default=0)
    problems = 0

    overall = Progress(
        TextColumn("[bold]Overall[/]"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("problems=[bold red]{task.fields[problems]}[/]"),
        TimeElapsedColumn(),
        console=console,
    )
    per_item = Progress(
        SpinnerColumn(),
        TextColumn("[bold]{task.fields[label]}[/]"),
        TextColumn(
            "status=[{task.fields[style]}]{task.fields[status]}[/{task.fields[style]}]"
        ),
        TimeElapsedColumn(),
        console=console,
    )

    overall_task_id = overall.add_task("overall", total=max(len(items), 1), problems=0)
    task_ids = [
        per_item.add_task(
            "",
            total=1,
            label=_display_label(name_of(i), server_of(i), name_width=name_width),
            status="PENDING",
            style=_style_for("PENDING"),
        )
        for i in items
    ]

    results: list[R] = []
    with Live(Group(overall, per_item), console=console, refresh_per_second=10, transient=True):
        for item, task_id in zip(items, task_ids):
            per_item.update(task_id, status="RUNNING", style=_style_for("RUNNING"))
            result = work(item)
            status = status_of(result)
            if _style_for(status) != "green":
                problems += 1
                overall.update(overall_task_id, problems=problems)
            per_item.update(task_id, status=status, style=_style_for(status), completed=1)
            overall.advance(overall_task_id, 1)
            results.append(result)

        overall.update(overall_task_id, completed=len(items))

    return results
