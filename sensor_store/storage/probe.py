"""
Bounded-time availability checks for the embedded database engines.

A probe decides backend eligibility only: it loads the engine's client
module, opens a throwaway in-memory connection, runs a trivial statement and
closes it again. It never raises; every failure reads as "unavailable".
"""

import asyncio
import importlib
from typing import Dict

from sensor_store.models import BackendKind
from sensor_store.utils import get_logger

logger = get_logger(__name__)

DEFAULT_PROBE_TIMEOUT = 10.0

ENGINE_MODULES: Dict[BackendKind, str] = {
    BackendKind.ANALYTICAL: "duckdb",
    BackendKind.RELATIONAL: "sqlite3",
}


def _check_connection_sync(module) -> bool:
    """Open, exercise and close an in-memory connection."""
    conn = module.connect(":memory:")
    try:
        conn.execute("SELECT 1").fetchone()
    finally:
        conn.close()
    return True


class BackendProbe:
    """Checks whether an engine can actually open a working connection."""

    def __init__(self, timeout: float = DEFAULT_PROBE_TIMEOUT):
        self.timeout = timeout

    async def probe(self, kind: BackendKind) -> bool:
        """
        Check one engine.

        Args:
            kind: Backend kind to check

        Returns:
            True if the engine loaded and a connection reached a ready state in time
        """
        if kind is BackendKind.FLATFILE:
            return True

        module_name = ENGINE_MODULES[kind]
        logger.info(f"Testing {module_name} availability...")

        try:
            module = importlib.import_module(module_name)
        except Exception as e:
            logger.warning(f"{module_name} module failed to load: {e}")
            return False

        task = asyncio.create_task(asyncio.to_thread(_check_connection_sync, module))
        done, _ = await asyncio.wait({task}, timeout=self.timeout)

        if task not in done:
            # The worker thread cannot be interrupted; its result is discarded.
            task.add_done_callback(_discard_result)
            logger.warning(f"{module_name} connection test timed out after {self.timeout:g} seconds")
            return False

        try:
            task.result()
        except Exception as e:
            logger.warning(f"{module_name} connection test failed: {e}")
            return False

        logger.info(f"{module_name} connection test successful")
        return True


def _discard_result(task: "asyncio.Task") -> None:
    if not task.cancelled():
        task.exception()
