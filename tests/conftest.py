"""Pytest configuration for the Statecraft simulation tests."""

import sys
import os

import pytest

# Add src directory to path for imports
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, PROJECT_ROOT)
sys.path.insert(0, os.path.join(PROJECT_ROOT, "src"))

from core.event_system import EventBus
from core.randomness import RandomnessEngine, SequenceSource
from core.state import GameState


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def state():
    return GameState()


@pytest.fixture
def fixed_rng():
    """Every draw returns 0.5: trials with probability <= 0.5 never fire."""
    return RandomnessEngine(source=SequenceSource([0.5]))
