"""
app/jobs/cleanup_cron.py

Purpose: Periodic profile cleanup loop

- One asyncio task per running cron, started from the app lifespan
- First run happens immediately, then every `interval_seconds`
- The next run is only scheduled once the previous one has settled
- A failed run is logged and the loop keeps going
- Stopping interrupts the wait between runs, never a run in progress
"""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from app.core.logging import get_logger, LogContext

logger = get_logger(__name__)

CleanupFn = Callable[[], Awaitable[Any]]


class CleanupCron:
    """
    stopped -> running -> stopped. start() and stop() are idempotent.
    """

    def __init__(self, run_fn: CleanupFn, interval_seconds: float = 300):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._run_fn = run_fn
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self.last_run_at: Optional[datetime] = None
        self.last_result: Any = None
        self.last_error: Optional[str] = None
        self.runs = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """
        Schedules the loop on the running event loop.

        Returns:
            False when the cron was already running
        """
        if self.is_running:
            logger.info("Cleanup cron already running")
            return False
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(self._stop_event), name="cleanup-cron")
        logger.info(f"Cleanup cron started (every {self.interval_seconds}s)")
        return True

    async def stop(self) -> bool:
        """
        Ends the loop. A run in progress is allowed to finish; a pending
        wait is cut short.

        Returns:
            False when the cron was not running
        """
        if not self.is_running:
            self._task = None
            return False
        task = self._task
        self._stop_event.set()
        await task
        self._task = None
        logger.info("Cleanup cron stopped")
        return True

    async def run_once(self) -> Any:
        """Runs one cleanup pass and records its outcome. Errors propagate."""
        with LogContext(job="cleanup_cron"):
            self.last_run_at = datetime.utcnow()
            self.runs += 1
            try:
                result = await self._run_fn()
            except Exception as e:
                self.last_error = str(e)
                raise
            self.last_result = result
            self.last_error = None
            return result

    async def _loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Cleanup run failed: {str(e)}", extra={"job": "cleanup_cron"}, exc_info=True)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "interval_seconds": self.interval_seconds,
            "last_run_at": self.last_run_at,
            "last_result": self.last_result,
            "last_error": self.last_error,
            "runs": self.runs,
        }
