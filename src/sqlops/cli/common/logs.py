"""Logging setup for the CLI.

Core modules log through the standard `logging` module; the CLI routes those
records to stderr through Rich so they do not interleave with result tables.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_FORMAT = "%(message)s"


def configure_logging(verbose: bool = False) -> None:
    """Install a RichHandler on the root logger (idempotent)."""
    level = logging.DEBUG if verbose else logging.WARNING
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt="[%X]"))
    root.addHandler(handler)
    root.setLevel(level)
