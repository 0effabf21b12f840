"""Game loop: growth ticks, display refresh and auto-save.

Everything runs on one asyncio event loop, so intervals never overlap with
each other or with user actions dispatched on the same loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from .config import Settings, settings as default_settings
from .grid import TileView
from .persistence import SaveManager
from .state import GameState
from .tile import now_ms

logger = logging.getLogger(__name__)

RenderCallback = Callable[[Dict[str, List[TileView]]], None]


class GameLoop:
    """Runs the periodic jobs of a game until stopped."""

    def __init__(
        self,
        game: GameState,
        manager: Optional[SaveManager] = None,
        settings: Optional[Settings] = None,
        on_render: Optional[RenderCallback] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.game = game
        self.manager = manager
        self.settings = settings or default_settings
        self.on_render = on_render
        self.clock = clock
        self._tasks: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------
    def _tick(self) -> None:
        ready = self.game.tick(self.clock())
        for grid, indices in ready.items():
            if indices:
                logger.debug("%s tiles ready: %s", grid, indices)

    def _render(self) -> None:
        # Read-only: views never change tile state.
        if self.on_render is not None:
            self.on_render(self.game.views(self.clock()))

    def _autosave(self) -> None:
        if self.manager is None:
            return
        result = self.manager.save(self.clock())
        if not result.ok:
            logger.warning("Auto-save failed: %s", result.reason)

    async def _every(self, interval: float, job: Callable[[], None], name: str) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                job()
            except Exception:
                logger.exception("Error in %s job", name)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Schedule all jobs on the running event loop."""

        if self.is_running:
            return
        self._tasks = [
            asyncio.create_task(self._every(self.settings.tick_interval_seconds, self._tick, "tick")),
            asyncio.create_task(self._every(self.settings.display_interval_seconds, self._render, "render")),
        ]
        if self.manager is not None:
            self._tasks.append(
                asyncio.create_task(
                    self._every(self.settings.autosave_interval_seconds, self._autosave, "autosave")
                )
            )
        logger.info("Game loop started")

    async def stop(self) -> None:
        """Cancel every job and wait until they have all finished."""

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Game loop stopped")
