"""Farm and orchard grids.

Each grid owns a fixed list of tiles, of which the first ``unlocked_tiles``
can be used. Grids share a wallet, the player's progression and the event
bus with the rest of the game.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .catalog import CROP, TREE, Catalog
from .constants import (
    EVENT_HARVESTED,
    FARM_GRID,
    FARM_MAX_TILES,
    FARM_TILE_COST_BASE,
    FARM_TILE_COST_EXPONENT,
    ORCHARD_GRID,
    ORCHARD_STARTER_SAPLING,
    ORCHARD_UNLOCK_PRICE,
    TREE_MAX_TILES,
    TREE_TILE_COST_BASE,
    TREE_TILE_COST_EXPONENT,
)
from .events import EventBus
from .progression import Progression
from .tile import Tile, format_time_remaining, now_ms

logger = logging.getLogger(__name__)

Result = Tuple[bool, str]


def _fail(message: str) -> Result:
    logger.debug(message)
    return (False, message)


@dataclass
class Wallet:
    """Coin balance shared by both grids."""

    coins: int = 0

    def credit(self, amount: int) -> None:
        self.coins += int(amount)

    def can_afford(self, amount: int) -> bool:
        return self.coins >= amount

    def debit(self, amount: int) -> bool:
        """Spend ``amount`` coins. Returns False if the balance is too low."""

        if not self.can_afford(amount):
            return False
        self.coins -= int(amount)
        return True


@dataclass(frozen=True)
class TileView:
    """Read-only render state for one tile."""

    index: int
    state: str
    species_id: Optional[str]
    icon: Optional[str]
    rarity: Optional[str]
    remaining: int
    progress: float
    label: str
    is_cooldown: bool
    locked: bool


def tile_unlock_cost(unlocked: int) -> int:
    return math.floor(FARM_TILE_COST_BASE * math.pow(unlocked, FARM_TILE_COST_EXPONENT))


def tree_tile_unlock_cost(unlocked: int) -> int:
    return math.floor(TREE_TILE_COST_BASE * math.pow(unlocked, TREE_TILE_COST_EXPONENT))


class Grid(ABC):
    """A fixed-size collection of tiles growing one category of species."""

    name: str = ""
    category: str = CROP
    max_tiles: int = 0

    def __init__(
        self,
        catalog: Catalog,
        wallet: Wallet,
        progression: Progression,
        bus: EventBus,
        unlocked_tiles: int = 1,
        tiles: Optional[List[Tile]] = None,
    ) -> None:
        self.catalog = catalog
        self.wallet = wallet
        self.progression = progression
        self.bus = bus
        self.tiles: List[Tile] = tiles if tiles is not None else [Tile() for _ in range(self.max_tiles)]
        self.unlocked_tiles = max(1, min(int(unlocked_tiles), self.max_tiles))
        self._harvesting = False

    # ------------------------------------------------------------------
    # Costs
    # ------------------------------------------------------------------
    @abstractmethod
    def unlock_cost(self) -> int:
        """Price of the next tile."""

    def is_full(self) -> bool:
        return self.unlocked_tiles >= self.max_tiles

    def can_unlock(self) -> bool:
        return not self.is_full() and self.wallet.can_afford(self.unlock_cost())

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def _usable_tile(self, index: int) -> Optional[Tile]:
        if not isinstance(index, int) or index < 0 or index >= self.unlocked_tiles:
            return None
        return self.tiles[index]

    def ready_count(self) -> int:
        return sum(1 for tile in self.tiles if tile.is_ready())

    def _check_species(self, species_id: str) -> Optional[str]:
        """Return a failure reason if ``species_id`` cannot be planted here."""

        species = self.catalog.get(species_id)
        if species is None:
            return f"Unknown species: {species_id}"
        if species.category != self.category:
            return f"{species.name} cannot be planted on the {self.name} grid."
        return None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def plant_at(self, index: int, species_id: str, now: Optional[int] = None) -> Result:
        tile = self._usable_tile(index)
        if tile is None:
            return _fail(f"Tile {index} is not unlocked.")
        reason = self._check_species(species_id)
        if reason:
            return _fail(reason)
        if not tile.is_empty():
            return _fail("Cannot plant on an occupied tile.")
        tile.plant(species_id, now)
        return (True, f"Planted {self.catalog.get(species_id).name}.")

    def harvest_at(self, index: int, now: Optional[int] = None) -> Result:
        """Harvest a ready tile, paying out coins and XP.

        Crops leave the tile empty; trees restart on their cooldown.
        """

        if self._harvesting:
            return _fail("A harvest is already in progress on this grid.")
        tile = self._usable_tile(index)
        if tile is None:
            return _fail(f"Tile {index} is not unlocked.")
        if not tile.species_id:
            return _fail("Tile has nothing planted.")
        species = self.catalog.get(tile.species_id)
        if species is None:
            return _fail(f"Unknown species: {tile.species_id}")
        if not tile.is_ready():
            return _fail(f"{species.name} is not ready yet.")

        self._harvesting = True
        try:
            xp = self.catalog.xp_for(species.id)
            self.wallet.credit(species.value)
            if species.category == TREE:
                tile.harvest_tree(now)
            else:
                tile.harvest()
            self.progression.gain_xp(xp)
            self.bus.publish(
                EVENT_HARVESTED,
                {
                    "grid": self.name,
                    "index": index,
                    "speciesId": species.id,
                    "coins": species.value,
                    "xp": xp,
                },
            )
        finally:
            self._harvesting = False
        return (True, f"Harvested {species.name} for {species.value} coins and {xp} XP.")

    def unlock(self) -> Result:
        """Buy the next tile."""

        if self.is_full():
            return _fail(f"All {self.name} tiles are already unlocked.")
        cost = self.unlock_cost()
        if not self.wallet.debit(cost):
            return _fail(f"Not enough coins. Need {cost} coins to unlock a {self.name} tile.")
        self.unlocked_tiles += 1
        return (True, f"Unlocked {self.name} tile {self.unlocked_tiles} for {cost} coins.")

    def remove_at(self, index: int) -> Result:
        """Clear a tile without any reward."""

        tile = self._usable_tile(index)
        if tile is None:
            return _fail(f"Tile {index} is not unlocked.")
        if tile.is_empty():
            return _fail("Nothing to remove.")
        tile.clear()
        return (True, "Tile cleared.")

    def tick(self, now: Optional[int] = None) -> List[int]:
        """Advance growth on every unlocked tile.

        Returns the indices of tiles that became ready.
        """

        if now is None:
            now = now_ms()
        became_ready = []
        for index in range(self.unlocked_tiles):
            if self.tiles[index].evaluate_growth(self.catalog, now):
                became_ready.append(index)
        return became_ready

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def views(self, now: Optional[int] = None) -> List[TileView]:
        if now is None:
            now = now_ms()
        result = []
        for index, tile in enumerate(self.tiles):
            species = self.catalog.get(tile.species_id)
            remaining = tile.remaining(self.catalog, now)
            if tile.is_growing():
                label = format_time_remaining(remaining)
            elif tile.is_ready():
                label = "Ready!"
            else:
                label = ""
            result.append(
                TileView(
                    index=index,
                    state=tile.state,
                    species_id=tile.species_id,
                    icon=species.icon if species else None,
                    rarity=species.rarity if species else None,
                    remaining=remaining,
                    progress=tile.progress(self.catalog, now),
                    label=label,
                    is_cooldown=tile.is_cooldown,
                    locked=index >= self.unlocked_tiles,
                )
            )
        return result


class FarmGrid(Grid):
    """Crop grid. Crops unlock with the player's level."""

    name = FARM_GRID
    category = CROP
    max_tiles = FARM_MAX_TILES

    def unlock_cost(self) -> int:
        return tile_unlock_cost(self.unlocked_tiles)

    def _check_species(self, species_id: str) -> Optional[str]:
        reason = super()._check_species(species_id)
        if reason:
            return reason
        species = self.catalog.get(species_id)
        if not self.catalog.is_crop_unlocked(species_id, self.progression.level):
            return f"{species.name} unlocks at level {species.unlock_level}."
        return None


class Orchard(Grid):
    """Tree grid.

    The whole orchard is bought once, then each sapling species is bought
    separately before it can be planted.
    """

    name = ORCHARD_GRID
    category = TREE
    max_tiles = TREE_MAX_TILES

    def __init__(
        self,
        catalog: Catalog,
        wallet: Wallet,
        progression: Progression,
        bus: EventBus,
        unlocked_tiles: int = 1,
        tiles: Optional[List[Tile]] = None,
        unlocked: bool = False,
        saplings_unlocked: Optional[Dict[str, bool]] = None,
    ) -> None:
        super().__init__(catalog, wallet, progression, bus, unlocked_tiles, tiles)
        self.unlocked = bool(unlocked)
        self.saplings_unlocked: Dict[str, bool] = {tree_id: False for tree_id in catalog.trees()}
        if saplings_unlocked:
            for tree_id, flag in saplings_unlocked.items():
                if tree_id in self.saplings_unlocked:
                    self.saplings_unlocked[tree_id] = bool(flag)

    def unlock_cost(self) -> int:
        return tree_tile_unlock_cost(self.unlocked_tiles)

    def is_sapling_unlocked(self, tree_id: str) -> bool:
        return self.saplings_unlocked.get(tree_id, False)

    def purchase_access(self) -> Result:
        """Open the orchard for a one-time price."""

        if self.unlocked:
            return _fail("The orchard is already unlocked.")
        if not self.wallet.debit(ORCHARD_UNLOCK_PRICE):
            return _fail(f"You need {ORCHARD_UNLOCK_PRICE} coins to unlock the orchard.")
        self.unlocked = True
        if ORCHARD_STARTER_SAPLING in self.saplings_unlocked:
            self.saplings_unlocked[ORCHARD_STARTER_SAPLING] = True
        return (True, f"Unlocked the orchard for {ORCHARD_UNLOCK_PRICE} coins!")

    def unlock_sapling(self, tree_id: str) -> Result:
        species = self.catalog.get(tree_id)
        if species is None or species.category != TREE:
            return _fail(f"Unknown tree: {tree_id}")
        if not self.unlocked:
            return _fail("Unlock the orchard first.")
        if self.is_sapling_unlocked(tree_id):
            return _fail(f"{species.name} is already unlocked.")
        if not self.wallet.debit(species.unlock_cost):
            return _fail(f"Not enough coins. Need {species.unlock_cost} coins to unlock {species.name}.")
        self.saplings_unlocked[tree_id] = True
        return (True, f"Unlocked {species.name} for {species.unlock_cost} coins!")

    def _check_species(self, species_id: str) -> Optional[str]:
        if not self.unlocked:
            return "The orchard is locked."
        reason = super()._check_species(species_id)
        if reason:
            return reason
        if not self.is_sapling_unlocked(species_id):
            return f"{self.catalog.get(species_id).name} sapling is not unlocked."
        return None

    def can_unlock(self) -> bool:
        return self.unlocked and super().can_unlock()

    def unlock(self) -> Result:
        if not self.unlocked:
            return _fail("Unlock the orchard first.")
        return super().unlock()
