"""Tile lifecycle for idlefarm grids.

A tile moves ``empty -> growing -> ready`` and back. Crops leave the tile
empty on harvest; trees go back to ``growing`` with ``is_cooldown`` set and
become ready again once their cooldown has elapsed.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .catalog import Catalog

EMPTY = "empty"
GROWING = "growing"
READY = "ready"


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""

    return int(time.time() * 1000)


def format_time_remaining(ms: float) -> str:
    """Format a remaining duration as a short string such as ``"2h 5m"``."""

    if ms <= 0:
        return "Ready!"

    total_seconds = math.ceil(ms / 1000)
    days = total_seconds // 86400
    hours = (total_seconds % 86400) // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60

    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


@dataclass
class Tile:
    """State of a single grid cell."""

    state: str = EMPTY
    species_id: Optional[str] = None
    planted_at: Optional[int] = None
    is_cooldown: bool = False

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------
    def is_empty(self) -> bool:
        return self.state == EMPTY

    def is_growing(self) -> bool:
        return self.state == GROWING

    def is_ready(self) -> bool:
        return self.state == READY

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def plant(self, species_id: str, now: Optional[int] = None) -> bool:
        """Start growing ``species_id``. Returns False if the tile is occupied."""

        if not self.is_empty():
            return False
        self.state = GROWING
        self.species_id = species_id
        self.planted_at = now_ms() if now is None else int(now)
        self.is_cooldown = False
        return True

    def evaluate_growth(self, catalog: Catalog, now: Optional[int] = None) -> bool:
        """Move a growing tile to ready once its required time has passed.

        Returns True if the state changed. Calling it again after the tile is
        ready does nothing.
        """

        if not self.is_growing() or self.planted_at is None or self.species_id is None:
            return False
        if now is None:
            now = now_ms()
        if now - self.planted_at >= self.required_duration(catalog):
            self.state = READY
            self.is_cooldown = False
            return True
        return False

    def harvest(self) -> bool:
        """Clear a ready crop tile."""

        if not self.is_ready():
            return False
        self.clear()
        return True

    def harvest_tree(self, now: Optional[int] = None) -> bool:
        """Restart a ready tree tile on its cooldown, keeping the species."""

        if not self.is_ready():
            return False
        self.state = GROWING
        self.planted_at = now_ms() if now is None else int(now)
        self.is_cooldown = True
        return True

    def clear(self) -> None:
        self.state = EMPTY
        self.species_id = None
        self.planted_at = None
        self.is_cooldown = False

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------
    def required_duration(self, catalog: Catalog) -> int:
        if self.is_cooldown:
            return catalog.cooldown_time(self.species_id)
        return catalog.grow_time(self.species_id)

    def remaining(self, catalog: Catalog, now: Optional[int] = None) -> int:
        if not self.is_growing() or self.planted_at is None or self.species_id is None:
            return 0
        if now is None:
            now = now_ms()
        elapsed = now - self.planted_at
        return max(self.required_duration(catalog) - elapsed, 0)

    def progress(self, catalog: Catalog, now: Optional[int] = None) -> float:
        """Fraction of the current growth phase completed, in ``[0, 1]``."""

        if not self.is_growing() or self.planted_at is None or self.species_id is None:
            return 0.0
        required = self.required_duration(catalog)
        if required <= 0:
            return 0.0
        if now is None:
            now = now_ms()
        elapsed = max(0, now - self.planted_at)
        return min(elapsed / required, 1.0)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def to_record(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "cropId": self.species_id,
            "plantedAt": self.planted_at,
            "isCooldown": self.is_cooldown,
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Tile":
        """Build a tile from an already sanitized record."""

        return cls(
            state=data.get("state") or EMPTY,
            species_id=data.get("cropId"),
            planted_at=data.get("plantedAt"),
            is_cooldown=bool(data.get("isCooldown", False)),
        )
