"""
balancer/workers.py

PeriodicTask - background asyncio loop calling one job at a fixed interval.
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Runs `job` every `interval_sec` seconds until stopped.

    The job may be a plain function or a coroutine function. Exceptions are
    logged and the loop keeps going.
    """

    def __init__(self, name: str, job: Callable[[], Any], interval_sec: float, run_immediately: bool = False):
        self.name = name
        self._job = job
        self._interval_sec = interval_sec
        self._run_immediately = run_immediately
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name=self.name)
        logger.info(f"[workers] {self.name} started (every {self._interval_sec}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"[workers] {self.name} stopped")

    async def run_once(self) -> Any:
        result = self._job()
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _loop(self) -> None:
        if not self._run_immediately:
            await asyncio.sleep(self._interval_sec)
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[workers] {self.name} failed: {e}")
            await asyncio.sleep(self._interval_sec)
