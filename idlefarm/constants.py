"""Constants for the idlefarm game core."""

from __future__ import annotations

# Time units (milliseconds)
SECOND: int = 1000
MINUTE: int = 60 * SECOND
HOUR: int = 60 * MINUTE
DAY: int = 24 * HOUR

# Grid dimensions (columns x rows)
FARM_SIZE: int = 5
TREE_SIZE: int = 3
FARM_MAX_TILES: int = FARM_SIZE * FARM_SIZE
TREE_MAX_TILES: int = TREE_SIZE * TREE_SIZE

# Grid names, as used in events and tile views
FARM_GRID = "farm"
ORCHARD_GRID = "trees"

# Tile states
TILE_STATES = ("empty", "growing", "ready")

# Rarity XP multipliers
RARITY_XP = {
    "common": 1.2,
    "uncommon": 1.5,
    "rare": 2.5,
    "epic": 5,
    "legendary": 7,
    "mythic": 12,
}

TREE_VALUE_MULTIPLIER: float = 1.35
TREE_XP_MULTIPLIER: float = 1.25

# Progression
BASE_XP_TO_NEXT: int = 100
XP_GROWTH_RATE: float = 1.2
# Highest reachable level; keeps the XP curve within float range
MAX_LEVEL: int = 1000

# Unlock cost curves: floor(base * unlocked ** exponent)
FARM_TILE_COST_BASE: int = 75
FARM_TILE_COST_EXPONENT: float = 1.9
TREE_TILE_COST_BASE: int = 500
TREE_TILE_COST_EXPONENT: float = 2.2

# One-time purchase that opens the orchard
ORCHARD_UNLOCK_PRICE: int = 10000
ORCHARD_STARTER_SAPLING = "oak"

# Defaults for a new game
DEFAULT_CROP = "corn"
DEFAULT_TREE = "oak"

# Fallbacks used when an unknown species id is looked up
FALLBACK_GROW_TIME: int = 5000
FALLBACK_VALUE: int = 10
FALLBACK_ICON = "🌱"

# Tool modes
TOOL_MODES = ("normal", "remove")

# Events
EVENT_HARVESTED = "harvested"
EVENT_LEVELED_UP = "leveledUp"

# Persistence / schema
CURRENT_SAVE_VERSION = 2
SAVE_FILENAME = "farm_game.json"
BACKUP_FILENAME = "farm_game.backup.json"
RECOVERY_OPTIONS = ("restore_backup", "reset", "discard")
