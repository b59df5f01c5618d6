"""Questionary / prompt_toolkit theme for sqlops.

Questionary uses prompt_toolkit under the hood. This module defines a single
central style so all interactive prompts (confirm/checkbox/etc.) look consistent.
Confirmation prompts use a red accent because they precede ALTER DATABASE and
ALTER LOGIN statements.
"""

from __future__ import annotations

from prompt_toolkit.styles import Style

QUESTIONARY_STYLE_SELECT = Style.from_dict(
    {
        "question": "bold ansibrightcyan",
        "answer": "bold ansibrightyellow",
        "pointer": "bold ansibrightyellow",
        "highlighted": "bold ansibrightyellow",
        "selected": "bold ansibrightyellow",
        "checkbox": "ansibrightblack",
        "checkbox-selected": "bold ansibrightyellow",
        "separator": "ansibrightblack",
        "instruction": "ansibrightblack",
        "error": "bold ansired",
        "disabled": "ansibrightblack",
    }
)

QUESTIONARY_STYLE_CONFIRM = Style.from_dict(
    {
        "question": "bold ansibrightred",
        "answer": "bold ansibrightred",
        "pointer": "bold ansibrightred",
        "highlighted": "bold ansibrightred",
        "selected": "bold ansibrightred",
        "separator": "ansibrightblack",
        "instruction": "ansibrightblack",
        "error": "bold ansired",
        "disabled": "ansibrightblack",
    }
)
