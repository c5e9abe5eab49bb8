"""
Single connect/read/disconnect session against an Aranet4 sensor.
"""

import asyncio
import contextlib
import sys
from typing import AsyncContextManager, Callable, Optional

from bleak import BleakClient, BleakError
from bleak.backends.device import BLEDevice
from bleak.uuids import normalize_uuid_str
from rich.prompt import Prompt

from .decoder import Reading, decode
from ..exceptions.errors import (
    CharacteristicNotFoundError,
    EmptyPayloadError,
    ServiceNotFoundError,
    TransportError,
)
from ..utils.config import Config
from ..utils.logging import ProductionLogger, PerformanceMonitor


# Aranet4 GATT identifiers
ARANET_SERVICE_UUID = normalize_uuid_str("fce0")
CURRENT_READINGS_CHAR_UUID = "f0cd1503-95da-4f4b-9ac8-aa55d312af0c"


def prompt_pin() -> str:
    """Ask the operator for the PIN shown on the sensor display."""
    return Prompt.ask("Enter the PIN shown on Aranet4 display")


def platform_pairing_agent(on_security_request: Callable[[str, Callable[[str], None]], bool],
                           logger: ProductionLogger) -> AsyncContextManager:
    """
    Pairing agent for the current platform.

    BlueZ only forwards PIN requests to a registered D-Bus agent. CoreBluetooth
    and WinRT show their own pairing dialog, so nothing is registered there.
    """
    if sys.platform.startswith("linux"):
        from .agent import BluezPairingAgent
        return BluezPairingAgent(on_security_request, logger)
    return contextlib.nullcontext()


class SensorSession:
    """
    Connects to one discovered Aranet4, reads the current readings
    characteristic once and disconnects.

    Any failure or cancellation after the connection is established
    disconnects the peripheral before the original error propagates.
    """

    def __init__(self, config: Config, logger: ProductionLogger,
                 performance_monitor: PerformanceMonitor,
                 pin_provider: Optional[Callable[[], str]] = None,
                 agent_factory: Optional[Callable[[], AsyncContextManager]] = None):
        self.config = config
        self.logger = logger
        self.performance_monitor = performance_monitor
        self.pin_provider = pin_provider or prompt_pin
        self.agent_factory = agent_factory or (
            lambda: platform_pairing_agent(self.on_security_request, self.logger)
        )

        self.adapter = config.ble_adapter
        self.settle_delay = config.ble_settle_delay
        self.pair = config.ble_pair

    def on_security_request(self, kind: str, respond: Callable[[str], None]) -> bool:
        """
        Answer a pairing/security challenge raised by the platform.

        Args:
            kind: Security request type reported by the platform
            respond: Callback submitting the PIN to the platform

        Returns:
            bool: True if a PIN was submitted
        """
        self.logger.info(f"Security request type: {kind}")
        if kind != "legacy":
            return False

        pin = self.pin_provider().strip()
        respond(pin)
        return True

    async def read_once(self, device: BLEDevice) -> Reading:
        """
        Read the current measurements from a discovered sensor.

        Args:
            device: Peripheral returned by the discovery watcher

        Returns:
            Reading: Decoded measurement

        Raises:
            SessionError: On missing service/characteristic, empty read or transport failure
            DecodeError: If the payload cannot be decoded
        """
        client = BleakClient(device, adapter=self.adapter if self.adapter != "auto" else None)
        completed = False

        try:
            self.logger.info("Attempting to connect...")
            await self._transport(client.connect(), "connect")
            self.logger.info("Connected, waiting for pairing...")

            if self.pair:
                async with self.agent_factory():
                    await self._transport(client.pair(), "pair")

            await asyncio.sleep(self.settle_delay)

            self.logger.info("Discovering services...")
            service = self._find_service(client)

            self.logger.info("Discovering characteristics...")
            characteristic = self._find_characteristic(service)

            data = await self._transport(client.read_gatt_char(characteristic), "read")
            if not data:
                raise EmptyPayloadError("Received empty data from sensor")

            reading = decode(data)

            await self._transport(client.disconnect(), "disconnect")
            self.logger.info("Successfully disconnected from device")
            completed = True
            return reading

        finally:
            if not completed:
                await self._cleanup(client)

    async def _transport(self, operation, step: str):
        try:
            return await operation
        except (BleakError, OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"BLE {step} failed: {e}") from e

    def _find_service(self, client: BleakClient):
        services = list(client.services)
        self.logger.info(f"Found {len(services)} services")

        for service in services:
            if normalize_uuid_str(str(service.uuid)) == ARANET_SERVICE_UUID:
                return service

        raise ServiceNotFoundError("Aranet service not found")

    def _find_characteristic(self, service):
        characteristics = list(service.characteristics)
        self.logger.info(f"Found {len(characteristics)} characteristics")

        for characteristic in characteristics:
            if normalize_uuid_str(str(characteristic.uuid)) == CURRENT_READINGS_CHAR_UUID:
                return characteristic

        raise CharacteristicNotFoundError("Current readings characteristic not found")

    async def _cleanup(self, client: BleakClient):
        """Disconnect after a failure; disconnect errors are logged only."""
        try:
            if client.is_connected:
                await client.disconnect()
                self.logger.info("Cleaned up connection after error")
        except Exception as e:
            self.logger.error(f"Error during disconnect: {e}")
