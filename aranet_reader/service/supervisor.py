"""
Time-boxed execution of one discovery + session cycle.

Each attempt runs in its own asyncio task. The supervisor waits for that task
or the deadline, whichever comes first, and decides the outcome exactly once.
A task that finishes after its deadline has its result logged and dropped.
An attempt that outlives its teardown grace still owns the adapter: the next
attempt waits for it to finish, and that wait counts against its deadline.
"""

import asyncio
import time
from typing import Optional

from ..ble.decoder import Reading
from ..ble.session import SensorSession
from ..ble.watcher import DiscoveryWatcher
from ..exceptions.errors import AranetReaderError, AttemptCrashedError, ReadingTimeoutError
from ..utils.config import Config
from ..utils.logging import ProductionLogger, PerformanceMonitor


class ReadingSupervisor:
    """
    Runs bounded reading attempts, one at a time.
    """

    def __init__(self, config: Config, logger: ProductionLogger,
                 performance_monitor: PerformanceMonitor,
                 watcher: DiscoveryWatcher, session: SensorSession,
                 teardown_grace: Optional[float] = None):
        self.config = config
        self.logger = logger
        self.performance_monitor = performance_monitor
        self.watcher = watcher
        self.session = session

        self.reading_timeout = config.reading_timeout
        self.teardown_grace = config.shutdown_grace if teardown_grace is None else teardown_grace

        self._lock = asyncio.Lock()
        self._active: Optional[asyncio.Task] = None
        self._abandoned: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._lock.locked() or self._still_releasing()

    def _still_releasing(self) -> bool:
        return self._abandoned is not None and not self._abandoned.done()

    def cancel_active(self) -> bool:
        """Cancel the in-flight attempt; returns False when idle."""
        if self._active is None or self._active.done():
            return False
        self._active.cancel()
        return True

    async def _attempt(self) -> Reading:
        device = await self.watcher.wait_for_device()
        return await self.session.read_once(device)

    async def run_bounded(self, timeout: Optional[float] = None) -> Reading:
        """
        Run one discovery + read cycle under a hard deadline.

        Args:
            timeout: Deadline in seconds (uses config default if None)

        Returns:
            Reading: The decoded reading

        Raises:
            ReadingTimeoutError: If the deadline elapsed first
            AranetReaderError: Discovery, session or decode failure
            AttemptCrashedError: If the attempt died with any other error
        """
        timeout = timeout or self.reading_timeout

        async with self._lock:
            started = time.monotonic()
            if self._still_releasing():
                await self._wait_for_release(timeout)

            remaining = timeout - (time.monotonic() - started)
            if remaining <= 0:
                self.performance_monitor.log_ble_read(timeout, False, "adapter_busy")
                raise ReadingTimeoutError(timeout)

            task = asyncio.create_task(self._attempt())
            self._active = task

            try:
                done, _ = await asyncio.wait({task}, timeout=remaining)
            except asyncio.CancelledError:
                # Caller is shutting down; release the BLE handles first.
                task.cancel()
                await self._teardown(task)
                raise
            finally:
                self._active = None

            duration = time.monotonic() - started

            if not done:
                task.cancel()
                await self._teardown(task)
                self.performance_monitor.log_ble_read(duration, False, "timeout")
                raise ReadingTimeoutError(timeout)

            if task.cancelled():
                self.performance_monitor.log_ble_read(duration, False, "cancelled")
                raise AttemptCrashedError("Reading attempt was cancelled")

            error = task.exception()
            if error is None:
                self.performance_monitor.log_ble_read(duration, True, "success")
                return task.result()

            self.performance_monitor.log_ble_read(duration, False, type(error).__name__)
            if isinstance(error, AranetReaderError):
                raise error
            raise AttemptCrashedError(f"Reading attempt crashed: {error!r}") from error

    async def _wait_for_release(self, timeout: float):
        """Wait for an abandoned attempt to let go of the adapter."""
        self.logger.warning("Previous reading attempt still holds the adapter, waiting for it to finish")
        done, _ = await asyncio.wait({self._abandoned}, timeout=timeout)
        if not done:
            self.performance_monitor.log_ble_read(timeout, False, "adapter_busy")
            raise ReadingTimeoutError(timeout)
        self._abandoned = None

    async def _teardown(self, task: asyncio.Task):
        """Give a cancelled attempt time to disconnect, then abandon it."""
        done, _ = await asyncio.wait({task}, timeout=self.teardown_grace)
        if done:
            if not task.cancelled() and task.exception() is None:
                self.logger.warning("Discarding reading that completed after the deadline")
            return

        self.logger.error(
            f"Reading attempt did not stop within {self.teardown_grace:g}s of cancellation, abandoning it"
        )
        self._abandoned = task
        task.add_done_callback(self._discard_late_result)

    def _discard_late_result(self, task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            self.logger.warning("Discarding reading that completed after the deadline")
        else:
            self.logger.debug(f"Abandoned reading attempt ended with: {error!r}")
