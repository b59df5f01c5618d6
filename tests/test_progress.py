from sqlops.cli.common.progress import (
    _display_label,
    _style_for,
    _truncate,
    process_with_progress,
)


def test_display_label_name_before_server_and_aligned():
    labels = [
        _display_label("alpha_db", "SQL01", name_width=12),
        _display_label("beta", "SQL01\\PROD", name_width=12),
    ]

    assert labels[0].startswith("alpha_db")
    assert labels[1].startswith("beta")
    assert labels[0].index("(SQL01") == labels[1].index("(SQL01")


def test_display_label_without_server_is_just_the_name():
    assert _display_label("app_login", None, name_width=20) == "app_login"


def test_truncate_uses_ascii_ellipsis():
    assert _truncate("x" * 20, 10) == "xxxxxxx..."


def test_style_for_statuses():
    assert _style_for("FULL") == "green"
    assert _style_for("FAILED") == "red"
    assert _style_for("PARTIAL") == "dim"


def test_process_with_progress_returns_results_in_order():
    results = process_with_progress(
        ["a", "bb", "ccc"],
        len,
        name_of=str,
        status_of=lambda n: "OK" if n < 3 else "ERROR",
    )

    assert results == [1, 2, 3]
