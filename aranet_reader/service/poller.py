"""
Polling policies driving the reading supervisor.

FixedCadencePoller is the long-running daemon loop. BoundedRetryPoller makes a
limited number of attempts and stops. Both serialize attempts through the
supervisor and turn every attempt failure into an alert decision.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..ble.decoder import Reading, format_reading
from ..sinks.alerting import AlertingSink
from ..sinks.reporting import ReportingSink
from ..utils.config import Config
from ..utils.logging import ProductionLogger
from .supervisor import ReadingSupervisor


@dataclass
class AttemptResult:
    """Outcome of one bounded reading attempt."""
    reading: Optional[Reading] = None
    error: Optional[BaseException] = None
    attempts: int = 1
    reported: bool = False

    @property
    def success(self) -> bool:
        return self.reading is not None


class BasePoller:
    """Shared attempt handling for both polling policies."""

    def __init__(self, config: Config, logger: ProductionLogger,
                 supervisor: ReadingSupervisor,
                 reporting_sink: ReportingSink, alerting_sink: AlertingSink):
        self.config = config
        self.logger = logger
        self.supervisor = supervisor
        self.reporting_sink = reporting_sink
        self.alerting_sink = alerting_sink

        self.reading_timeout = config.reading_timeout

    async def attempt(self) -> AttemptResult:
        """Run one bounded reading and forward a success to the reporting sink."""
        try:
            reading = await self.supervisor.run_bounded(self.reading_timeout)
        except Exception as e:
            self.logger.error(f"Error during reading: {e}")
            return AttemptResult(error=e)

        for line in format_reading(reading):
            self.logger.info(line)

        reported = await self.reporting_sink.report(reading)
        return AttemptResult(reading=reading, reported=reported)


class FixedCadencePoller(BasePoller):
    """
    Reads once per polling interval, checking every tick.

    A failed attempt is alerted and retried on the next tick instead of
    waiting a full interval.
    """

    def __init__(self, config: Config, logger: ProductionLogger,
                 supervisor: ReadingSupervisor,
                 reporting_sink: ReportingSink, alerting_sink: AlertingSink,
                 clock: Callable[[], float] = time.monotonic):
        super().__init__(config, logger, supervisor, reporting_sink, alerting_sink)
        self.polling_interval = config.polling_interval
        self.tick = config.poll_tick
        self.clock = clock

        self.last_success: Optional[float] = None
        self.consecutive_failures = 0

    def due(self, now: float) -> bool:
        return self.last_success is None or now - self.last_success >= self.polling_interval

    async def run_cycle(self) -> Optional[AttemptResult]:
        """Run one tick; returns None when no reading was due."""
        now = self.clock()
        if not self.due(now):
            return None

        self.logger.info("Starting new reading cycle...")
        result = await self.attempt()

        if result.success:
            self.last_success = now
            self.consecutive_failures = 0
            self.logger.info(f"Waiting {self.polling_interval / 60:g} minutes until next reading...")
        else:
            self.consecutive_failures += 1
            self.logger.warning(
                f"Reading cycle failed ({self.consecutive_failures} consecutive), retrying in {self.tick:g}s"
            )
            await self.alerting_sink.alert(result.error)

        return result

    async def run(self, stop_event: asyncio.Event):
        """Poll until stop_event is set."""
        self.logger.info(
            f"Polling every {self.polling_interval:g}s (tick {self.tick:g}s, timeout {self.reading_timeout:g}s)"
        )
        while not stop_event.is_set():
            await self.run_cycle()

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.tick)
            except asyncio.TimeoutError:
                pass

        self.logger.info("Polling loop stopped")


class BoundedRetryPoller(BasePoller):
    """
    Makes up to max_attempts readings with a fixed delay between them and
    alerts once they are exhausted.
    """

    def __init__(self, config: Config, logger: ProductionLogger,
                 supervisor: ReadingSupervisor,
                 reporting_sink: ReportingSink, alerting_sink: AlertingSink,
                 max_attempts: Optional[int] = None,
                 retry_delay: Optional[float] = None):
        super().__init__(config, logger, supervisor, reporting_sink, alerting_sink)
        self.max_attempts = max_attempts or config.max_attempts
        self.retry_delay = config.retry_delay if retry_delay is None else retry_delay

    async def run(self) -> AttemptResult:
        result = AttemptResult()
        for attempt in range(1, self.max_attempts + 1):
            self.logger.info(f"Reading attempt {attempt}/{self.max_attempts}...")
            result = await self.attempt()
            result.attempts = attempt
            if result.success:
                return result

            if attempt < self.max_attempts:
                self.logger.info(f"Retrying in {self.retry_delay:g}s...")
                await asyncio.sleep(self.retry_delay)

        self.logger.error(f"All {self.max_attempts} reading attempts failed")
        await self.alerting_sink.alert(result.error)
        return result
