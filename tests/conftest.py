"""Pytest configuration and fixtures for idlefarm tests."""

import pytest

from idlefarm.catalog import CROP, TREE, Catalog, Species
from idlefarm.constants import MINUTE, SECOND
from idlefarm.events import EventBus
from idlefarm.persistence import SaveManager
from idlefarm.state import GameState

T0 = 1_700_000_000_000


@pytest.fixture
def t0():
    """A fixed wall-clock time in epoch milliseconds."""
    return T0


@pytest.fixture
def small_catalog():
    """Catalog with round numbers: bean pays 10 coins and 6 XP."""
    return Catalog(
        [
            Species(id="bean", name="Bean", category=CROP, grow_time=1 * MINUTE, value=10, icon="🫘"),
            Species(
                id="pumpkin",
                name="Pumpkin",
                category=CROP,
                grow_time=20 * SECOND,
                value=25,
                icon="🎃",
                unlock_level=3,
            ),
            Species(
                id="apple",
                name="Apple Tree",
                category=TREE,
                grow_time=1 * MINUTE,
                cooldown_time=30 * SECOND,
                value=50,
                icon="🍎",
                unlock_cost=100,
            ),
        ]
    )


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def game():
    """A new game on the full catalog."""
    return GameState()


@pytest.fixture
def small_game(small_catalog):
    return GameState(catalog=small_catalog)


@pytest.fixture
def manager(game, tmp_path):
    return SaveManager(game, str(tmp_path))
