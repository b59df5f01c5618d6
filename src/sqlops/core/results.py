"""Tagged results for mutating steps.

The database layer signals errors by raising (pyodbc raises a family of
driver-specific exceptions). Rename and sync steps convert those into an
explicit `Ok` / `Err` value so callers can early-return on failure without
wrapping every call in its own try/except.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful step carrying an optional value."""

    value: T | None = None


@dataclass(frozen=True)
class Err:
    """
    Failed step.

    Attributes:
        kind: Short category of the step that failed (e.g. "database-rename").
        message: Underlying exception message.
    """

    kind: str
    message: str


StepResult = Ok | Err


def attempt(kind: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> StepResult:
    """Call `fn` and return Ok(result), or Err(kind, message) if it raises."""
    try:
        return Ok(fn(*args, **kwargs))
    except Exception as e:  # noqa: BLE001  driver errors are not a closed set
        return Err(kind=kind, message=str(e))
