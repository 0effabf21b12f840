"""Game state for idlefarm.

Owns the catalog, event bus, wallet, progression and both grids, and turns
user intents (clicks, selections, tool mode) into grid operations. Saving
and loading live in :mod:`idlefarm.persistence`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .catalog import Catalog
from .constants import DEFAULT_CROP, DEFAULT_TREE, FARM_GRID, ORCHARD_GRID, TOOL_MODES
from .events import EventBus
from .grid import FarmGrid, Grid, Orchard, Result, TileView, Wallet
from .progression import Progression
from .tile import Tile, now_ms

logger = logging.getLogger(__name__)


class GameState:
    """Encapsulates all live game state."""

    def __init__(self, catalog: Optional[Catalog] = None, bus: Optional[EventBus] = None) -> None:
        self.catalog = catalog if catalog is not None else Catalog()
        self.bus = bus if bus is not None else EventBus()
        self.mode = "normal"
        self.reset()

    def reset(self) -> None:
        """Return to a fresh new-game state. Event subscriptions are kept."""

        self.wallet = Wallet()
        self.progression = Progression(bus=self.bus)
        self.farm = FarmGrid(self.catalog, self.wallet, self.progression, self.bus)
        self.orchard = Orchard(self.catalog, self.wallet, self.progression, self.bus)
        self.selected_crop = DEFAULT_CROP
        self.selected_tree = DEFAULT_TREE

    # ------------------------------------------------------------------
    # Convenience accessors
    # ------------------------------------------------------------------
    @property
    def coins(self) -> int:
        return self.wallet.coins

    def grid(self, name: str) -> Grid:
        if name == FARM_GRID:
            return self.farm
        if name == ORCHARD_GRID:
            return self.orchard
        raise ValueError(f"Unknown grid: {name}")

    def player(self) -> Dict[str, Any]:
        return self.progression.snapshot()

    def ready_counts(self) -> Dict[str, int]:
        return {"crops": self.farm.ready_count(), "trees": self.orchard.ready_count()}

    def views(self, now: Optional[int] = None) -> Dict[str, List[TileView]]:
        """Render state of both grids. Never mutates tiles."""

        if now is None:
            now = now_ms()
        return {FARM_GRID: self.farm.views(now), ORCHARD_GRID: self.orchard.views(now)}

    def unlock_costs(self) -> Dict[str, Dict[str, Any]]:
        """Next tile price and affordability for each grid."""

        costs = {}
        for grid in (self.farm, self.orchard):
            costs[grid.name] = {
                "cost": None if grid.is_full() else grid.unlock_cost(),
                "affordable": grid.can_unlock(),
            }
        return costs

    # ------------------------------------------------------------------
    # Selections and tool mode
    # ------------------------------------------------------------------
    def select_crop(self, crop_id: str) -> Result:
        if not self.catalog.is_valid_crop(crop_id):
            return (False, f"Invalid crop: {crop_id}")
        if not self.catalog.is_crop_unlocked(crop_id, self.progression.level):
            return (False, f"{self.catalog.get(crop_id).name} is still locked.")
        self.selected_crop = crop_id
        return (True, f"Selected {self.catalog.get(crop_id).name}.")

    def select_tree(self, tree_id: str) -> Result:
        if not self.catalog.is_valid_tree(tree_id):
            return (False, f"Invalid tree: {tree_id}")
        self.selected_tree = tree_id
        return (True, f"Selected {self.catalog.get(tree_id).name}.")

    def set_mode(self, mode: str) -> Result:
        if mode not in TOOL_MODES:
            return (False, f"Invalid mode: {mode}")
        self.mode = mode
        return (True, f"Mode set to {mode}.")

    def toggle_remove_mode(self) -> str:
        self.mode = "normal" if self.mode == "remove" else "remove"
        return self.mode

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------
    def click_tile(self, grid_name: str, index: int, now: Optional[int] = None) -> Result:
        """Apply the natural action for a tile click.

        In remove mode the tile is cleared. Otherwise an empty tile is planted
        with the selected species and a ready tile is harvested.
        """

        grid = self.grid(grid_name)
        if index < 0 or index >= grid.unlocked_tiles:
            return (False, f"Tile {index} is not unlocked.")
        if self.mode == "remove":
            return grid.remove_at(index)

        tile = grid.tiles[index]
        if tile.is_empty():
            species_id = self.selected_crop if grid is self.farm else self.selected_tree
            return grid.plant_at(index, species_id, now)
        if tile.is_ready():
            return grid.harvest_at(index, now)
        return (False, "Still growing.")

    def tick(self, now: Optional[int] = None) -> Dict[str, List[int]]:
        if now is None:
            now = now_ms()
        return {FARM_GRID: self.farm.tick(now), ORCHARD_GRID: self.orchard.tick(now)}

    # ------------------------------------------------------------------
    # Restoring from a save record
    # ------------------------------------------------------------------
    def apply_record(self, record: Dict[str, Any], now: Optional[int] = None) -> None:
        """Replace live state with a sanitized save record.

        Everything is built first and swapped in at the end, re-checking
        growth at ``now`` so time passed while the game was closed counts.
        """

        if now is None:
            now = now_ms()

        wallet = Wallet(coins=record["coins"])
        progression = Progression.restore(record["player"], bus=self.bus)

        farm_data = record["farm"]
        farm = FarmGrid(
            self.catalog,
            wallet,
            progression,
            self.bus,
            unlocked_tiles=farm_data["unlockedTiles"],
            tiles=self._restore_tiles(farm_data["tiles"], now),
        )

        trees_data = record["trees"]
        orchard = Orchard(
            self.catalog,
            wallet,
            progression,
            self.bus,
            unlocked_tiles=trees_data["unlockedTiles"],
            tiles=self._restore_tiles(trees_data["tiles"], now),
            unlocked=trees_data["unlocked"],
            saplings_unlocked=trees_data["saplingsUnlocked"],
        )

        self.wallet = wallet
        self.progression = progression
        self.farm = farm
        self.orchard = orchard
        self.selected_crop = record["selectedCrop"]
        self.selected_tree = record["selectedTree"]

    def _restore_tiles(self, records: List[Dict[str, Any]], now: int) -> List[Tile]:
        tiles = []
        for data in records:
            tile = Tile.from_record(data)
            tile.evaluate_growth(self.catalog, now)
            tiles.append(tile)
        return tiles
