"""Headless entry point: load the game and keep it growing until interrupted."""

import asyncio
import logging
import signal
import sys

from idlefarm.config import settings
from idlefarm.persistence import SaveManager
from idlefarm.scheduler import GameLoop
from idlefarm.state import GameState


def setup_logging() -> None:
    """Configure logging for the game."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


async def main() -> None:
    """Run the game loop until SIGINT/SIGTERM."""
    setup_logging()
    logger = logging.getLogger(__name__)

    game = GameState()
    manager = SaveManager(game, settings.save_dir)
    result = manager.load()
    logger.info(result.reason)

    if result.failure in ("corrupt", "unsupported_version"):
        # Keep the broken file on disk; only auto-save once recovered.
        recovered = manager.recover("restore_backup")
        logger.info(recovered.reason)
        if not recovered.ok:
            logger.warning("Running without auto-save. Recovery options: %s", ", ".join(result.recovery_options))
            manager = None

    loop = GameLoop(game, manager, settings)
    stopped = asyncio.Event()
    running_loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        running_loop.add_signal_handler(sig, stopped.set)

    loop.start()
    await stopped.wait()
    await loop.stop()
    if manager is not None:
        logger.info(manager.save().reason)


def run() -> None:
    """Entry point for the game."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
