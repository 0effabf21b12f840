"""Player level and experience."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .constants import BASE_XP_TO_NEXT, EVENT_LEVELED_UP, MAX_LEVEL, XP_GROWTH_RATE
from .events import EventBus


def xp_for_level(level: int) -> int:
    """XP needed to go from ``level`` to the next one.

    Levels above ``MAX_LEVEL`` cost the same as ``MAX_LEVEL``.
    """

    level = max(1, min(int(level), MAX_LEVEL))
    return math.floor(BASE_XP_TO_NEXT * math.pow(XP_GROWTH_RATE, level - 1))


@dataclass
class Progression:
    """Level/XP tracker.

    After every mutation ``0 <= xp < xp_to_next`` holds: excess XP carries
    over into the next level instead of being dropped. At ``MAX_LEVEL`` XP
    stops just below the threshold.
    """

    level: int = 1
    xp: float = 0
    xp_to_next: int = BASE_XP_TO_NEXT
    bus: Optional[EventBus] = field(default=None, repr=False, compare=False)

    def gain_xp(self, amount: float) -> List[int]:
        """Add XP and resolve any level-ups.

        Returns the list of levels reached, one entry per level gained.
        """

        if amount < 0:
            raise ValueError(f"XP amount must be non-negative, got {amount}")

        self.xp += amount
        reached: List[int] = []
        while self.xp >= self.xp_to_next and self.level < MAX_LEVEL:
            self.xp -= self.xp_to_next
            self.level_up()
            reached.append(self.level)
        if self.xp >= self.xp_to_next:
            self.xp = self.xp_to_next - 1
        return reached

    def level_up(self) -> None:
        self.level += 1
        self.xp_to_next = xp_for_level(self.level)
        if self.bus is not None:
            self.bus.publish(EVENT_LEVELED_UP, {"level": self.level})

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def snapshot(self) -> Dict[str, Any]:
        return {"level": self.level, "xp": self.xp, "xpToNext": self.xp_to_next}

    @classmethod
    def restore(cls, data: Dict[str, Any], bus: Optional[EventBus] = None) -> "Progression":
        """Build a tracker from a sanitized ``player`` record.

        XP at or above the stored threshold is resolved into levels without
        publishing events.
        """

        progression = cls(
            level=int(data.get("level", 1)),
            xp=0,
            xp_to_next=int(data.get("xpToNext", BASE_XP_TO_NEXT)),
        )
        progression.gain_xp(data.get("xp", 0))
        progression.bus = bus
        return progression
