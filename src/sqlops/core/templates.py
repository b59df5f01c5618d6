"""Placeholder substitution for rename templates.

Templates are plain strings containing literal placeholder tokens. Each token
is replaced by straight find-and-replace, one placeholder at a time, in a
fixed order. There is no regex and no recursive expansion: a token that has no
value at the current level (or an unknown token) is left verbatim.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable

DBN = "<DBN>"
FGN = "<FGN>"
LGN = "<LGN>"
FNN = "<FNN>"
FT = "<FT>"
DATE = "<DATE>"

DATE_FORMAT = "%Y%m%d"


@dataclass(frozen=True)
class TemplateValues:
    """
    Values available for substitution at one rename level.

    A value of None means the placeholder is not available at this level and
    stays untouched in the output.
    """

    database: str | None = None
    filegroup: str | None = None
    logical: str | None = None
    file_base: str | None = None
    file_type: str | None = None
    today: date | None = None


Resolver = Callable[[TemplateValues], "str | None"]

# Tokens never share a prefix, so the order does not change the output.
PLACEHOLDERS: list[tuple[str, Resolver]] = [
    (DBN, lambda v: v.database),
    (FGN, lambda v: v.filegroup),
    (LGN, lambda v: v.logical),
    (FNN, lambda v: v.file_base),
    (FT, lambda v: v.file_type),
    (DATE, lambda v: v.today.strftime(DATE_FORMAT) if v.today else None),
]


def render(template: str, values: TemplateValues) -> str:
    """
    Substitute every available placeholder in `template`.

    Args:
        template: Template string, e.g. `dbatools_<DBN>_<DATE>`.
        values: Placeholder values for the current rename level.

    Returns:
        The rendered name. Unavailable placeholders are kept as-is.
    """
    resolved = [
        (token, value)
        for token, resolve in PLACEHOLDERS
        if token in template and (value := resolve(values)) is not None
    ]
    if not resolved:
        return template

    # Single left-to-right pass so substituted values are never re-scanned.
    parts: list[str] = []
    i = 0
    while i < len(template):
        for token, value in resolved:
            if template.startswith(token, i):
                parts.append(value)
                i += len(token)
                break
        else:
            parts.append(template[i])
            i += 1
    return "".join(parts)


def strip_segments(name: str, segments: list[str]) -> str:
    """
    Remove each non-empty segment from `name` by literal replacement.

    Used when upper-level names were renamed and the child's own name still
    embeds the old parent name.
    """
    for segment in segments:
        if segment:
            name = name.replace(segment, "")
    return name
