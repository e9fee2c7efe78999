# libs/commerce_shared/tests/conftest.py

import sys
from pathlib import Path

import pytest


def setup_python_path():
    """Make ``libs.commerce_shared`` importable from the project root."""
    project_root = Path(__file__).parent.parent.parent.parent.absolute()
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


setup_python_path()


class FakeClock:
    """Manually advanced clock for time-dependent components."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
