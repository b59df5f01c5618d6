"""Selector construction utilities.

This module provides a small factory function that translates user intent
(CLI arguments such as --database, --exclude-database and --all-databases)
into a concrete DatabaseSelector. It centralizes validation so the commands
only deal with a single, well-defined selector abstraction.
"""

from typing import Iterable

from sqlops.core.selectors import (
    AllSelector,
    AndSelector,
    DatabaseSelector,
    NameRegexSelector,
    NameSelector,
    NotSelector,
    OrSelector,
)


def build_selector(
    *,
    databases: Iterable[str],
    exclude: Iterable[str],
    all_databases: bool,
    name_regex: str | None = None,
) -> DatabaseSelector:
    """
    Build a composite DatabaseSelector from user-provided criteria.

    Validation is performed to ensure that:
    - Either explicit databases, a name regex or `all_databases` is given
    - Name-based criteria and `all_databases` are not combined

    Explicit names and the regex are alternatives (OR); exclusions apply last.

    Args:
        databases: Explicit database names to include.
        exclude: Database names to leave out.
        all_databases: Include every database.
        name_regex: Optional regular expression on database names.

    Returns:
        A DatabaseSelector instance representing the composed selection logic.

    Raises:
        ValueError: If no inclusion criterion is provided, criteria conflict,
                    or the regex is invalid.
    """
    databases = [d for d in databases if d]
    exclude = [d for d in exclude if d]

    if (databases or name_regex) and all_databases:
        raise ValueError(
            "Use either --database/--database-regex or --all-databases, not both"
        )

    includes: list[DatabaseSelector] = []
    if databases:
        includes.append(NameSelector(databases))
    if name_regex:
        includes.append(NameRegexSelector(name_regex))
    if all_databases:
        includes.append(AllSelector())

    if not includes:
        raise ValueError(
            "At least one database selector is required "
            "(--database, --database-regex or --all-databases)"
        )

    selector = includes[0] if len(includes) == 1 else OrSelector(includes)
    if not exclude:
        return selector

    return AndSelector([selector, NotSelector(NameSelector(exclude))])
