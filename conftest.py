"""Test configuration: package imports and shared roster fixtures."""

import os
import sys

import pytest

# Put the repository root on ``sys.path`` so ``buildathon_roster`` imports the
# same way it does under ``python -m pytest``.
ROOT_DIR = os.path.abspath(os.path.dirname(__file__))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from buildathon_roster.adapters.memory import MemoryAdapter  # noqa: E402
from buildathon_roster.services import open_roster  # noqa: E402


@pytest.fixture
def services():
    """Roster services over a fresh in-memory store."""
    return open_roster(MemoryAdapter())
