"""
BlueZ pairing agent for Aranet4 PIN pairing on Linux.

BlueZ asks the registered org.bluez.Agent1 for the passkey when the sensor
requests legacy pairing. The agent forwards each request to the session's
security hook and answers with the PIN read from the operator.
"""

import asyncio
from typing import Callable, Optional

from dbus_fast import BusType, DBusError
from dbus_fast.aio import MessageBus
from dbus_fast.service import ServiceInterface, method

from ..exceptions.errors import TransportError
from ..utils.logging import ProductionLogger


AGENT_PATH = "/org/aranet_reader/agent"
AGENT_CAPABILITY = "KeyboardOnly"
BLUEZ_SERVICE = "org.bluez"
REJECTED = "org.bluez.Error.Rejected"

SecurityHook = Callable[[str, Callable[[str], None]], bool]


class PinAgent(ServiceInterface):
    """org.bluez.Agent1 implementation backed by a security hook."""

    def __init__(self, on_security_request: SecurityHook, logger: ProductionLogger):
        super().__init__("org.bluez.Agent1")
        self.on_security_request = on_security_request
        self.logger = logger

    async def answer(self, kind: str, numeric: bool = False) -> str:
        """
        Run the security hook off the event loop and return the submitted PIN.

        Raises:
            DBusError: org.bluez.Error.Rejected if no usable PIN was submitted
        """
        submitted = []
        loop = asyncio.get_running_loop()
        handled = await loop.run_in_executor(None, self.on_security_request, kind, submitted.append)
        if not handled or not submitted:
            raise DBusError(REJECTED, f"Unsupported security request: {kind}")

        pin = submitted[0]
        if numeric and not pin.isdigit():
            raise DBusError(REJECTED, "PIN must be numeric")
        return pin

    @method()
    def Release(self):
        self.logger.debug("Pairing agent released by BlueZ")

    @method()
    async def RequestPinCode(self, device: 'o') -> 's':
        return await self.answer("legacy")

    @method()
    async def RequestPasskey(self, device: 'o') -> 'u':
        return int(await self.answer("legacy", numeric=True))

    @method()
    async def RequestConfirmation(self, device: 'o', passkey: 'u'):
        # Numeric comparison only happens with LE Secure Connections
        await self.answer("secure_connections")

    @method()
    def RequestAuthorization(self, device: 'o'):
        raise DBusError(REJECTED, "Unsolicited pairing is not accepted")

    @method()
    def AuthorizeService(self, device: 'o', uuid: 's'):
        pass

    @method()
    def Cancel(self):
        self.logger.warning("Pairing request cancelled by BlueZ")


class BluezPairingAgent:
    """
    Registers a PinAgent as the default BlueZ agent for the duration of an
    ``async with`` block.
    """

    def __init__(self, on_security_request: SecurityHook, logger: ProductionLogger,
                 path: str = AGENT_PATH):
        self.on_security_request = on_security_request
        self.logger = logger
        self.path = path

        self._bus: Optional[MessageBus] = None
        self._manager = None

    async def __aenter__(self) -> "BluezPairingAgent":
        try:
            self._bus = await MessageBus(bus_type=BusType.SYSTEM).connect()
            self._bus.export(self.path, PinAgent(self.on_security_request, self.logger))

            introspection = await self._bus.introspect(BLUEZ_SERVICE, "/org/bluez")
            proxy = self._bus.get_proxy_object(BLUEZ_SERVICE, "/org/bluez", introspection)
            self._manager = proxy.get_interface("org.bluez.AgentManager1")

            await self._manager.call_register_agent(self.path, AGENT_CAPABILITY)
            await self._manager.call_request_default_agent(self.path)
        except (DBusError, OSError) as e:
            self._disconnect()
            raise TransportError(f"BLE pairing agent registration failed: {e}") from e

        self.logger.info(f"Registered BlueZ pairing agent at {self.path}")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        try:
            if self._manager is not None:
                await self._manager.call_unregister_agent(self.path)
        except (DBusError, OSError) as e:
            self.logger.warning(f"Failed to unregister pairing agent: {e}")
        finally:
            self._disconnect()
        return False

    def _disconnect(self):
        if self._bus is not None:
            self._bus.disconnect()
        self._bus = None
        self._manager = None
