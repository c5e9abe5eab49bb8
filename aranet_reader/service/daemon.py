"""
Background daemon for the Aranet4 Reader Service.
Wires the components together, runs the fixed-cadence poller and handles
graceful shutdown.
"""

import asyncio
import os
import signal
import sys
from dataclasses import dataclass
from typing import Optional

from ..ble.session import SensorSession
from ..ble.watcher import DiscoveryWatcher
from ..exceptions.recovery import AdapterRecovery
from ..sinks.alerting import AlertingSink
from ..sinks.reporting import ReportingSink
from ..utils.config import Config, ConfigurationError
from ..utils.logging import PerformanceMonitor, ProductionLogger, setup_logging
from .poller import FixedCadencePoller
from .supervisor import ReadingSupervisor


@dataclass
class ReaderComponents:
    """Everything one reader process needs."""
    config: Config
    logger: ProductionLogger
    performance_monitor: PerformanceMonitor
    watcher: DiscoveryWatcher
    session: SensorSession
    supervisor: ReadingSupervisor
    reporting_sink: ReportingSink
    alerting_sink: AlertingSink

    def close(self):
        self.reporting_sink.close()
        self.alerting_sink.close()


def build_components(config: Optional[Config] = None,
                     logger: Optional[ProductionLogger] = None) -> ReaderComponents:
    """
    Load configuration and construct the reader components.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    config = config or Config()
    config.validate_environment()

    logger = logger or setup_logging(config)
    performance_monitor = PerformanceMonitor()

    recovery = AdapterRecovery(logger, config.ble_adapter)
    watcher = DiscoveryWatcher(config, logger, performance_monitor, recovery)
    session = SensorSession(config, logger, performance_monitor)
    supervisor = ReadingSupervisor(config, logger, performance_monitor, watcher, session)

    return ReaderComponents(
        config=config,
        logger=logger,
        performance_monitor=performance_monitor,
        watcher=watcher,
        session=session,
        supervisor=supervisor,
        reporting_sink=ReportingSink(config, logger, performance_monitor),
        alerting_sink=AlertingSink(config, logger, performance_monitor),
    )


class ReaderDaemonError(Exception):
    """Base exception for daemon operations."""
    pass


class ReaderDaemon:
    """
    Long-running Aranet4 reader.

    SIGINT/SIGTERM cancel the in-flight attempt, whose cleanup stops scanning
    and disconnects the sensor. If that takes longer than the shutdown grace
    period the process exits immediately.
    """

    def __init__(self, components: Optional[ReaderComponents] = None):
        self.components = components
        self.logger: Optional[ProductionLogger] = components.logger if components else None
        self.poller: Optional[FixedCadencePoller] = None

        self._running = False
        self._shutdown_requested = False
        self._stop_event: Optional[asyncio.Event] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._force_exit_handle: Optional[asyncio.TimerHandle] = None

    def _initialize_components(self):
        """Initialize all daemon components."""
        try:
            if self.components is None:
                self.components = build_components()
            self.logger = self.components.logger

            c = self.components
            self.poller = FixedCadencePoller(
                c.config, c.logger, c.supervisor, c.reporting_sink, c.alerting_sink
            )
            self.logger.info("Daemon components initialized successfully")

        except ConfigurationError as e:
            raise ReaderDaemonError(f"Initialization failed: {e}")

    def _setup_signal_handlers(self, loop: asyncio.AbstractEventLoop):
        """Set up signal handlers for graceful shutdown."""
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, self.request_shutdown, signum)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop):
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)

    def request_shutdown(self, signum: Optional[int] = None):
        """Stop polling and tear down the in-flight attempt."""
        if self._shutdown_requested:
            return
        self._shutdown_requested = True

        signal_name = signal.Signals(signum).name if signum else "shutdown request"
        if self.logger:
            self.logger.info(f"Received {signal_name}, cleaning up...")

        if self._stop_event:
            self._stop_event.set()
        if self.components and self.components.supervisor.cancel_active():
            if self.logger:
                self.logger.info("Cancelled in-flight reading attempt")
        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()

        loop = asyncio.get_running_loop()
        grace = self.components.config.shutdown_grace if self.components else 1.0
        self._force_exit_handle = loop.call_later(grace, self._force_exit)

    def _force_exit(self):
        if self.logger:
            self.logger.critical("Cleanup did not finish in time, forcing exit")
        os._exit(1)

    async def start(self):
        """Start the daemon and poll until shutdown."""
        if self._running:
            raise ReaderDaemonError("Daemon is already running")

        self._initialize_components()
        loop = asyncio.get_running_loop()
        self._setup_signal_handlers(loop)
        self._running = True
        self._stop_event = asyncio.Event()

        self.logger.info("Starting Aranet4 Reader Daemon...")
        try:
            if self.components.config.test_email:
                await self.components.alerting_sink.send_test()

            self._poll_task = asyncio.create_task(self.poller.run(self._stop_event))
            await self._poll_task

        except asyncio.CancelledError:
            if not self._shutdown_requested:
                raise
        finally:
            self._remove_signal_handlers(loop)
            await self.stop()

    async def stop(self):
        """Stop the daemon gracefully."""
        if not self._running:
            return
        self._running = False

        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass

        summary = self.components.performance_monitor.get_performance_summary()
        self.logger.info(
            f"Reads: {summary['ble_reads']['successful']}/{summary['ble_reads']['total']} successful, "
            f"reports: {summary['reports']['successful']}/{summary['reports']['total']} successful, "
            f"advertisements seen: {summary['advertisements_seen']}"
        )
        self.components.performance_monitor.log_system_resources()
        self.components.close()

        if self._force_exit_handle:
            self._force_exit_handle.cancel()
            self._force_exit_handle = None

        self.logger.info("Aranet4 Reader Daemon stopped")


# CLI entry point for daemon mode
async def run_daemon(components: Optional[ReaderComponents] = None):
    """Run the daemon from command line."""
    daemon = ReaderDaemon(components)

    try:
        await daemon.start()
    except ReaderDaemonError as e:
        print(f"Daemon initialization failed: {e}")
        sys.exit(1)
