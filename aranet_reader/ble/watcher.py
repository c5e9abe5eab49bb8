"""
Discovery of the Aranet4 peripheral over BLE advertisements.

The watcher resolves a one-shot future with the first advertised device whose
name contains the configured filter. Listeners are removed inside the same
callback that resolves the future, so no later advertisement can reach it.
"""

import asyncio
from enum import Enum
from typing import Callable, Optional

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

from ..exceptions.errors import DiscoveryError
from ..exceptions.recovery import AdapterRecovery
from ..utils.config import Config
from ..utils.logging import ProductionLogger, PerformanceMonitor


ADAPTER_RESET_SETTLE = 2.0


class DiscoveryState(Enum):
    """Discovery watcher lifecycle."""
    IDLE = "idle"
    ADAPTER_OFF = "adapter_off"
    SCANNING = "scanning"
    FOUND = "found"
    RESOLVED = "resolved"


class DiscoveryWatcher:
    """
    Waits for a named BLE peripheral to advertise.

    Adapter power-state changes and advertisements are delivered to the
    listeners registered for the current invocation. Both listeners are
    deregistered on the first match.
    """

    def __init__(self, config: Config, logger: ProductionLogger,
                 performance_monitor: PerformanceMonitor,
                 recovery: Optional[AdapterRecovery] = None):
        self.config = config
        self.logger = logger
        self.performance_monitor = performance_monitor
        self.recovery = recovery or AdapterRecovery(logger, config.ble_adapter)

        self.name_filter = config.device_name_filter
        self.adapter = config.ble_adapter
        self.adapter_reset_enabled = config.ble_adapter_reset
        self.adapter_poll_interval = config.ble_adapter_poll_interval

        self._state = DiscoveryState.IDLE
        self._state_listener: Optional[Callable[[bool], None]] = None
        self._advertisement_listener: Optional[Callable[[BLEDevice, AdvertisementData], None]] = None
        self._scanner_started = False
        self._start_task: Optional[asyncio.Task] = None
        self._monitor_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> DiscoveryState:
        return self._state

    def on_adapter_state(self, powered_on: bool):
        """Deliver an adapter power-state event to the active invocation."""
        if self._state_listener is not None:
            self._state_listener(powered_on)

    def _on_detection(self, device: BLEDevice, advertisement_data: AdvertisementData):
        """Bleak detection callback; forwards to the active invocation."""
        if self._advertisement_listener is not None:
            self._advertisement_listener(device, advertisement_data)

    def _remove_listeners(self):
        self._state_listener = None
        self._advertisement_listener = None

    async def wait_for_device(self, name_filter: Optional[str] = None,
                              adapter_ready: Optional[Callable[[], bool]] = None) -> BLEDevice:
        """
        Scan until a device advertising a matching name is seen.

        Args:
            name_filter: Case-sensitive substring of the advertised name
            adapter_ready: Predicate reporting whether the adapter is powered on

        Returns:
            BLEDevice: The first matching device

        Raises:
            DiscoveryError: If scanning cannot be started
        """
        name_filter = name_filter or self.name_filter
        adapter_ready = adapter_ready or self.recovery.adapter_ready

        loop = asyncio.get_running_loop()
        found: asyncio.Future = loop.create_future()
        scanner = BleakScanner(
            detection_callback=self._on_detection,
            adapter=self.adapter if self.adapter != "auto" else None
        )

        def on_advertisement(device: BLEDevice, advertisement_data: AdvertisementData):
            name = advertisement_data.local_name or device.name
            self.performance_monitor.record_metric("ble_advertisements_seen", 1)
            if not name or name_filter not in name:
                return

            self._remove_listeners()
            self._state = DiscoveryState.FOUND
            self.logger.info(f"Found Aranet4 device: {name} ({device.address})")
            found.set_result(device)

        def on_adapter_state(powered_on: bool):
            self.logger.info(f"Bluetooth adapter state: {'poweredOn' if powered_on else 'poweredOff'}")
            if powered_on and self._state in (DiscoveryState.IDLE, DiscoveryState.ADAPTER_OFF):
                self._state = DiscoveryState.SCANNING
                self._start_task = loop.create_task(self._start_scanning(scanner, found))
            elif not powered_on and self._state == DiscoveryState.IDLE:
                self._state = DiscoveryState.ADAPTER_OFF
                self._monitor_task = loop.create_task(self._watch_adapter(adapter_ready))

        self._state = DiscoveryState.IDLE
        self._scanner_started = False
        self._advertisement_listener = on_advertisement
        self._state_listener = on_adapter_state

        try:
            # Checked once here; later changes arrive through the adapter monitor.
            self.on_adapter_state(await loop.run_in_executor(None, adapter_ready))

            device = await found
            if self._start_task is not None:
                # scanner.start() may still be returning when the match arrives
                await self._start_task
            await self._stop_scanner(scanner)
            self._state = DiscoveryState.RESOLVED
            return device
        finally:
            self._remove_listeners()
            await self._cancel_tasks()
            await self._stop_scanner(scanner)

    async def _cancel_tasks(self):
        tasks = [task for task in (self._monitor_task, self._start_task)
                 if task is not None and not task.done()]
        self._monitor_task = None
        self._start_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _watch_adapter(self, adapter_ready: Callable[[], bool]):
        """Emit a power-on event once the adapter comes up."""
        loop = asyncio.get_running_loop()
        self.logger.warning("Bluetooth adapter is not powered on, waiting...")
        while self._state == DiscoveryState.ADAPTER_OFF:
            await asyncio.sleep(self.adapter_poll_interval)
            if await loop.run_in_executor(None, adapter_ready):
                self.on_adapter_state(True)

    async def _start_scanning(self, scanner: BleakScanner, found: asyncio.Future):
        """Start scanning, optionally resetting the adapter once on failure."""
        self.logger.info("Scanning for BLE devices...")
        try:
            await scanner.start()
        except Exception as e:
            self.logger.error(f"Error starting scan: {e}")
            if not self.adapter_reset_enabled:
                self._fail(found, DiscoveryError(f"Failed to start BLE scan: {e}"))
                return

            loop = asyncio.get_running_loop()
            reset_ok, message = await loop.run_in_executor(None, self.recovery.reset_adapter)
            if reset_ok:
                self.logger.info(message)
            else:
                self.logger.error(message)
            await asyncio.sleep(ADAPTER_RESET_SETTLE)

            try:
                await scanner.start()
            except Exception as retry_error:
                self._fail(found, DiscoveryError(f"Failed to start BLE scan after adapter reset: {retry_error}"))
                return

        self._scanner_started = True

    def _fail(self, found: asyncio.Future, error: DiscoveryError):
        self._remove_listeners()
        if not found.done():
            found.set_exception(error)

    async def _stop_scanner(self, scanner: BleakScanner):
        if not self._scanner_started:
            return
        self._scanner_started = False
        try:
            await scanner.stop()
        except Exception as e:
            self.logger.warning(f"Error stopping scanner: {e}")
