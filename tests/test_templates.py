from datetime import date

import pytest

from sqlops.core.models import FileType
from sqlops.core.templates import TemplateValues, render, strip_segments


def test_render_substitutes_database_name():
    assert render("dbatools_<DBN>", TemplateValues(database="HR")) == "dbatools_HR"


def test_render_formats_date_as_yyyymmdd(today: date):
    values = TemplateValues(database="HR", today=today)

    assert render("dbatools_<DBN>_<DATE>", values) == "dbatools_HR_20170807"


def test_render_keeps_placeholders_without_a_value():
    # <LGN> has no value at the database level
    assert render("<DBN>_<LGN>", TemplateValues(database="HR")) == "HR_<LGN>"


def test_render_keeps_unknown_tokens_verbatim():
    assert render("<DBN>_<FOO>", TemplateValues(database="HR")) == "HR_<FOO>"


def test_render_does_not_rescan_substituted_values(today: date):
    values = TemplateValues(database="<DATE>", today=today)

    assert render("<DBN>", values) == "<DATE>"


def test_render_does_not_collapse_repeated_prefix():
    values = TemplateValues(database="dbatools_HR")

    assert render("dbatools_<DBN>", values) == "dbatools_dbatools_HR"


def test_render_replaces_every_occurrence():
    assert render("<DBN>-<DBN>", TemplateValues(database="HR")) == "HR-HR"


def test_render_without_tokens_returns_template():
    assert render("Static", TemplateValues(database="HR")) == "Static"


@pytest.mark.parametrize(
    ("file_type", "expected"),
    [
        (FileType.ROWS, "HR_"),
        (FileType.LOG, "HR_LOG"),
        (FileType.FILESTREAM, "HR_FS"),
        (FileType.FULLTEXT, "HR_FT"),
    ],
)
def test_render_file_type_tags(file_type: FileType, expected: str):
    values = TemplateValues(database="HR", file_type=file_type.tag)

    assert render("<DBN>_<FT>", values) == expected


def test_render_all_file_level_placeholders(today: date):
    values = TemplateValues(
        database="Sales",
        filegroup="FG1",
        logical="Sales_Data",
        file_base="old",
        file_type="LOG",
        today=today,
    )

    assert (
        render("<DBN>.<FGN>.<LGN>.<FNN>.<FT>.<DATE>", values)
        == "Sales.FG1.Sales_Data.old.LOG.20170807"
    )


def test_strip_segments_removes_each_non_empty_segment():
    assert strip_segments("HR_FG_Data", ["HR", "", "FG"]) == "__Data"


def test_strip_segments_without_segments_is_identity():
    assert strip_segments("HR_Data", []) == "HR_Data"


@pytest.mark.parametrize(
    "template",
    [
        "<DBN>",
        "dbatools_<DBN>_<DATE>",
        "<FGN>_<FT>",
        "<DBN>_<LGN><FT>",
        "<FNN>_<DATE>_<FT>",
        "plain_name",
    ],
)
def test_render_is_idempotent_once_no_tokens_remain(template: str, today: date):
    values = TemplateValues(
        database="HR",
        filegroup="Data",
        logical="HR_log",
        file_base="HR_log",
        file_type=FileType.LOG.tag,
        today=today,
    )

    once = render(template, values)

    assert "<" not in once
    assert render(once, values) == once
