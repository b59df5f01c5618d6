from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

import pytest

# Ensure tests always import the local src tree, not an older installed wheel.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))


@pytest.fixture
def today() -> date:
    """Fixed rename date so `<DATE>` renders predictably."""
    return date(2017, 8, 7)
