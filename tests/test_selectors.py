import pytest

from sqlops.core.models import DatabaseInfo
from sqlops.core.selectors import (
    AllSelector,
    AndSelector,
    NameRegexSelector,
    NameSelector,
    NotSelector,
    OrSelector,
    select_databases,
    skip_reason,
)


def test_name_selector_is_case_insensitive():
    selector = NameSelector(["Sales"])

    assert selector.matches(DatabaseInfo("SALES")) is True
    assert selector.matches(DatabaseInfo("HR")) is False


def test_name_regex_selector_matches():
    selector = NameRegexSelector("^hr_")

    assert selector.matches(DatabaseInfo("hr_archive")) is True
    assert selector.matches(DatabaseInfo("sales_hr_")) is False


def test_name_regex_selector_rejects_invalid_pattern():
    with pytest.raises(ValueError, match="Invalid regex"):
        NameRegexSelector("([")


def test_and_or_not_selectors():
    db = DatabaseInfo("hr_archive")

    regex = NameRegexSelector("archive")
    named = NameSelector(["sales"])

    assert AndSelector([regex, NotSelector(named)]).matches(db) is True
    assert OrSelector([named, regex]).matches(db) is True
    assert AndSelector([named, regex]).matches(db) is False
    assert AllSelector().matches(db) is True


def test_select_databases_preserves_order():
    dbs = [DatabaseInfo("b"), DatabaseInfo("a"), DatabaseInfo("c")]

    picked = select_databases(dbs, NotSelector(NameSelector(["a"])))

    assert [d.name for d in picked] == ["b", "c"]


@pytest.mark.parametrize(
    ("db", "reason"),
    [
        (DatabaseInfo("TempDB"), "system database"),
        (DatabaseInfo("Sales", is_mirrored=True), "mirrored"),
        (DatabaseInfo("Sales", in_availability_group=True), "availability group"),
        (DatabaseInfo("Sales", is_accessible=False), "not accessible"),
    ],
)
def test_skip_reason_for_ineligible_databases(db: DatabaseInfo, reason: str):
    assert reason in skip_reason(db)


def test_skip_reason_none_for_user_database():
    assert skip_reason(DatabaseInfo("Sales")) is None
