"""Exit codes and exit helpers for sqlops commands."""

import logging
from typing import NoReturn

import typer

from sqlops.cli.common.output import out

logger = logging.getLogger(__name__)

EXIT_OK = 0
# A server, database or login operation failed.
EXIT_FAILURE = 1
# Invalid option combination, nothing was attempted.
EXIT_USAGE = 2


def die(msg: str, code: int = EXIT_FAILURE) -> NoReturn:
    """Print an error and exit with `code`."""
    out.error(msg)
    raise typer.Exit(code)


def usage_error(msg: str) -> NoReturn:
    """Reject an option combination before any server is touched."""
    die(msg, code=EXIT_USAGE)


def warn_exit(msg: str, code: int = EXIT_OK) -> NoReturn:
    out.warn(msg)
    raise typer.Exit(code)


def exit_from_exc(
    exc: Exception, *, message: str | None = None, code: int = EXIT_FAILURE
) -> NoReturn:
    """
    Print `message` (or the exception text) and exit, chaining `exc`.

    The traceback goes to the debug log so --verbose shows where it came from.
    """
    logger.debug("Exiting on %s", type(exc).__name__, exc_info=exc)
    out.error(message or str(exc))
    raise typer.Exit(code) from exc
