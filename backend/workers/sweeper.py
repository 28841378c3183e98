"""Background eviction worker.

Periodically asks the file store to delete files older than the retention
period. The store itself carries no timer; this loop is the only trigger in
a running server.
"""

import asyncio
import logging

from config import settings
from storage.file_store import FileStore

logger = logging.getLogger(__name__)


async def _run_sweep_cycle(store: FileStore) -> None:
    """Run one eviction sweep and log anything noteworthy."""
    result = await store.evict_expired()
    if result.failures:
        logger.warning(
            f"Sweep left {result.failures} expired files in place; they will be retried next cycle"
        )


async def _sweeper_loop(store: FileStore, interval_seconds: float):
    """Background loop that runs the sweep periodically."""
    while True:
        try:
            await _run_sweep_cycle(store)
        except Exception as e:
            logger.error(f"Sweep cycle error: {e}")
        await asyncio.sleep(interval_seconds)


def start_sweeper(store: FileStore, interval_seconds: float | None = None) -> asyncio.Task:
    """Start the background sweeper as an async task."""
    if interval_seconds is None:
        interval_seconds = settings.sweep_interval_seconds
    task = asyncio.get_running_loop().create_task(_sweeper_loop(store, interval_seconds))
    logger.info(f"Background sweeper scheduled every {interval_seconds:.0f}s")
    return task


async def stop_sweeper(task: asyncio.Task | None) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
