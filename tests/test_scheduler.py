"""Tests for the asyncio game loop."""

import asyncio
import logging

import pytest

from idlefarm.config import Settings
from idlefarm.constants import FARM_GRID
from idlefarm.scheduler import GameLoop


def _fast_settings(**overrides):
    values = {
        "tick_interval_seconds": 0.01,
        "display_interval_seconds": 0.01,
        "autosave_interval_seconds": 0.01,
    }
    values.update(overrides)
    return Settings(**values)


class TestGameLoop:
    @pytest.mark.asyncio
    async def test_tick_job_grows_tiles(self, game, t0):
        game.click_tile(FARM_GRID, 0, t0)
        loop = GameLoop(game, settings=_fast_settings(), clock=lambda: t0 + 20000)

        loop.start()
        await asyncio.sleep(0.05)
        await loop.stop()

        assert game.farm.tiles[0].is_ready()

    @pytest.mark.asyncio
    async def test_render_does_not_advance_growth(self, game, t0):
        game.click_tile(FARM_GRID, 0, t0)
        frames = []
        loop = GameLoop(
            game,
            settings=_fast_settings(tick_interval_seconds=60),
            on_render=frames.append,
            clock=lambda: t0 + 20000,
        )

        loop.start()
        await asyncio.sleep(0.05)
        await loop.stop()

        assert frames
        assert frames[-1][FARM_GRID][0].label == "Ready!"
        assert game.farm.tiles[0].is_growing()

    @pytest.mark.asyncio
    async def test_autosave_writes_main_slot(self, manager, game, t0):
        game.wallet.credit(3)
        loop = GameLoop(game, manager, _fast_settings(), clock=lambda: t0)

        loop.start()
        await asyncio.sleep(0.05)
        await loop.stop()

        assert manager.has_save()

    @pytest.mark.asyncio
    async def test_autosave_failure_keeps_loop_running(self, manager, game, monkeypatch, caplog, t0):
        def broken_disk(target, text):
            raise OSError(5, "Input/output error")

        monkeypatch.setattr(manager, "_safe_write", broken_disk)
        loop = GameLoop(game, manager, _fast_settings(), clock=lambda: t0)

        with caplog.at_level(logging.WARNING, logger="idlefarm.scheduler"):
            loop.start()
            await asyncio.sleep(0.05)
            assert loop.is_running
            await loop.stop()

        assert "Auto-save failed" in caplog.text

    @pytest.mark.asyncio
    async def test_failing_job_is_logged(self, game, caplog, t0):
        def broken_display(views):
            raise RuntimeError("screen gone")

        loop = GameLoop(game, settings=_fast_settings(), on_render=broken_display, clock=lambda: t0)

        with caplog.at_level(logging.ERROR, logger="idlefarm.scheduler"):
            loop.start()
            await asyncio.sleep(0.05)
            assert loop.is_running
            await loop.stop()

        assert "Error in render job" in caplog.text

    @pytest.mark.asyncio
    async def test_stop_cancels_everything(self, manager, game, t0):
        loop = GameLoop(game, manager, _fast_settings(), clock=lambda: t0)
        loop.start()
        tasks = list(loop._tasks)
        assert len(tasks) == 3

        await loop.stop()

        assert not loop.is_running
        assert all(task.done() for task in tasks)

    @pytest.mark.asyncio
    async def test_no_autosave_without_manager(self, game, t0):
        loop = GameLoop(game, settings=_fast_settings(), clock=lambda: t0)
        loop.start()
        assert len(loop._tasks) == 2
        loop.start()
        assert len(loop._tasks) == 2
        await loop.stop()
