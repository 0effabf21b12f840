"""Static species catalog for idlefarm.

Crops grow once and leave the tile empty when harvested. Trees regrow on a
cooldown after every harvest. Both live in one ordered table, tagged by
``category``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .constants import (
    DAY,
    FALLBACK_GROW_TIME,
    FALLBACK_ICON,
    FALLBACK_VALUE,
    HOUR,
    MINUTE,
    RARITY_XP,
    SECOND,
    TREE_VALUE_MULTIPLIER,
    TREE_XP_MULTIPLIER,
)

CROP = "crop"
TREE = "tree"


@dataclass(frozen=True)
class Species:
    """Read-only description of one crop or tree."""

    id: str
    name: str
    category: str
    grow_time: int
    value: int
    icon: str
    rarity: str = "common"
    unlock_level: int = 0
    unlock_cost: int = 0
    cooldown_time: int = 0

    @property
    def is_tree(self) -> bool:
        return self.category == TREE


def tree_value_from_time(ms: int) -> float:
    """Base coin value of a tree, before rarity and tree multipliers."""

    return math.pow(ms / MINUTE, 0.9)


def _crop(id: str, name: str, grow_time: int, value: int, icon: str, rarity: str, unlock_level: int) -> Species:
    return Species(
        id=id,
        name=name,
        category=CROP,
        grow_time=grow_time,
        value=value,
        icon=icon,
        rarity=rarity,
        unlock_level=unlock_level,
    )


def _tree(id: str, name: str, grow_time: int, cooldown: int, icon: str, rarity: str, unlock_cost: int) -> Species:
    value = math.floor(tree_value_from_time(grow_time) * TREE_VALUE_MULTIPLIER * RARITY_XP[rarity])
    return Species(
        id=id,
        name=name,
        category=TREE,
        grow_time=grow_time,
        value=value,
        icon=icon,
        rarity=rarity,
        unlock_cost=unlock_cost,
        cooldown_time=cooldown,
    )


CROPS: List[Species] = [
    _crop("corn", "Corn", 20 * SECOND, 10, "🌽", "common", 0),
    _crop("carrot", "Carrot", 30 * SECOND, 17, "🥕", "common", 2),
    _crop("rice", "Rice", 1 * DAY, 760, "🌾", "rare", 3),
    _crop("barley", "Barley", 8 * HOUR, 360, "🌾", "rare", 3),
    _crop("cabbage", "Cabbage", 4 * MINUTE, 33, "🥬", "common", 4),
    _crop("peppers", "Peppers", 18 * MINUTE, 90, "🫑", "common", 4),
    _crop("coffee", "Coffee", 30 * MINUTE, 155, "☕", "uncommon", 5),
    _crop("cotton", "Cotton", 2 * DAY, 1850, "🌿", "uncommon", 6),
    _crop("cucumber", "Cucumber", 4 * HOUR, 210, "🥒", "common", 7),
    _crop("eggplant", "Eggplant", 12 * HOUR, 1100, "🍆", "uncommon", 8),
    _crop("garlic", "Garlic", 12 * MINUTE, 68, "🧄", "common", 10),
    _crop("lettuce", "Lettuce", 1 * HOUR, 225, "🥬", "common", 12),
    _crop("potato", "Potato", 10 * MINUTE, 66, "🥔", "common", 14),
    _crop("peas", "Peas", 5 * DAY, 4100, "🟢", "uncommon", 15),
    _crop("spinach", "Spinach", 2 * HOUR, 215, "🥬", "common", 15),
    _crop("strawberry", "Strawberry", 7 * DAY, 12000, "🍓", "rare", 17),
    _crop("sweet_potato", "Sweet Potato", 28 * HOUR, 2400, "🍠", "common", 18),
    _crop("tomato", "Tomato", 25 * MINUTE, 820, "🍅", "common", 18),
    _crop("watermelon", "Watermelon", 7 * MINUTE, 290, "🍉", "common", 19),
    _crop("wheat", "Wheat", 56 * HOUR, 9800, "🌾", "common", 20),
    # High-value crops
    _crop("golden_wheat", "Golden Wheat", 1 * HOUR, 420, "🌾", "legendary", 30),
    _crop("mystic_berry", "Mystic Berry", 1 * DAY, 5400, "🫐", "mythic", 35),
]

TREES: List[Species] = [
    _tree("oak", "Oak Tree", 12 * HOUR, 8 * HOUR, "🌳", "common", 10000),
    _tree("birch", "Birch Tree", 1 * DAY, 18 * HOUR, "🌳", "common", 25000),
    _tree("maple", "Maple Tree", 2 * DAY, 1 * DAY, "🍁", "uncommon", 75000),
    _tree("pine", "Pine Tree", 3 * DAY, 2 * DAY, "🌲", "rare", 180000),
    _tree("cedar", "Cedar Tree", 4 * DAY, 3 * DAY, "🌴", "epic", 400000),
    _tree("ebony", "Ebony Tree", 5 * DAY, 4 * DAY, "🪵", "legendary", 900000),
    _tree("worldTree", "World Tree", 7 * DAY, 5 * DAY, "🌎", "mythic", 2500000),
]


class Catalog:
    """Ordered lookup over species descriptors.

    The default catalog holds every crop and tree of the game. Tests and
    alternative rule sets can pass their own species list.
    """

    def __init__(self, species: Optional[Iterable[Species]] = None) -> None:
        if species is None:
            species = list(CROPS) + list(TREES)
        self._species: Dict[str, Species] = {}
        for s in species:
            if s.category not in (CROP, TREE):
                raise ValueError(f"Unknown species category: {s.category}")
            if s.rarity not in RARITY_XP:
                raise ValueError(f"Unknown rarity for {s.id}: {s.rarity}")
            self._species[s.id] = s

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get(self, species_id: Optional[str]) -> Optional[Species]:
        if not isinstance(species_id, str):
            return None
        return self._species.get(species_id)

    def is_valid(self, species_id: Optional[str]) -> bool:
        return self.get(species_id) is not None

    def is_valid_crop(self, species_id: Optional[str]) -> bool:
        s = self.get(species_id)
        return s is not None and s.category == CROP

    def is_valid_tree(self, species_id: Optional[str]) -> bool:
        s = self.get(species_id)
        return s is not None and s.category == TREE

    def all(self) -> List[str]:
        """Return every species id in catalog order."""

        return list(self._species)

    def crops(self) -> List[str]:
        return [k for k, s in self._species.items() if s.category == CROP]

    def trees(self) -> List[str]:
        return [k for k, s in self._species.items() if s.category == TREE]

    # ------------------------------------------------------------------
    # Accessors with fallbacks for unknown ids
    # ------------------------------------------------------------------
    def grow_time(self, species_id: Optional[str]) -> int:
        s = self.get(species_id)
        return s.grow_time if s else FALLBACK_GROW_TIME

    def cooldown_time(self, species_id: Optional[str]) -> int:
        """Regrowth time after harvest. Crops have none."""

        s = self.get(species_id)
        if s is None:
            return FALLBACK_GROW_TIME
        return s.cooldown_time if s.is_tree else 0

    def value(self, species_id: Optional[str]) -> int:
        s = self.get(species_id)
        return s.value if s else FALLBACK_VALUE

    def icon(self, species_id: Optional[str]) -> str:
        s = self.get(species_id)
        return s.icon if s else FALLBACK_ICON

    def is_crop_unlocked(self, species_id: Optional[str], level: int) -> bool:
        s = self.get(species_id)
        return s is not None and s.category == CROP and level >= s.unlock_level

    # ------------------------------------------------------------------
    # XP
    # ------------------------------------------------------------------
    def xp_for(self, species_id: Optional[str]) -> int:
        """XP awarded for one harvest of ``species_id``.

        Grows with the log of the growth time in minutes and scales with
        rarity. Trees earn an extra multiplier on top of the crop formula.
        """

        s = self.get(species_id)
        if s is None:
            return 0
        minutes = s.grow_time / MINUTE
        xp = math.floor(math.log2(minutes + 1) * 5 * RARITY_XP[s.rarity])
        if s.is_tree:
            xp = math.floor(xp * TREE_XP_MULTIPLIER)
        return xp
