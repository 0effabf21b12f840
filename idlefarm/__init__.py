"""idlefarm - the core of an idle farming game.

Provides:
- A species catalog of crops and regrowing trees
- Timed tile growth on a farm grid and an orchard grid
- Player levels with XP carried across level-ups
- Versioned JSON saves with migration, backups and text export
- An asyncio game loop for growth ticks and auto-save
"""

from __future__ import annotations

from .catalog import Catalog, Species
from .events import EventBus
from .grid import FarmGrid, Orchard, TileView, Wallet
from .persistence import (
    CorruptSaveError,
    MissingFieldsError,
    SaveFormatError,
    SaveManager,
    SaveResult,
    UnsupportedVersionError,
    deserialize,
    migrate,
    serialize,
)
from .progression import Progression, xp_for_level
from .state import GameState
from .tile import Tile, format_time_remaining, now_ms

__all__ = [
    "Catalog",
    "Species",
    "EventBus",
    "FarmGrid",
    "Orchard",
    "TileView",
    "Wallet",
    "CorruptSaveError",
    "MissingFieldsError",
    "SaveFormatError",
    "SaveManager",
    "SaveResult",
    "UnsupportedVersionError",
    "deserialize",
    "migrate",
    "serialize",
    "Progression",
    "xp_for_level",
    "GameState",
    "Tile",
    "format_time_remaining",
    "now_ms",
]
