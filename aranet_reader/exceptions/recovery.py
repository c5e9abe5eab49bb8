"""
Bluetooth adapter checks and recovery for the Aranet4 Reader Service.

Provides the adapter power-state check used by the discovery watcher and the
optional adapter reset performed when starting a scan fails.
"""

import subprocess
import sys
from typing import Tuple

from ..utils.logging import ProductionLogger


class AdapterRecovery:
    """
    Adapter state check and reset hook.

    Only Linux (BlueZ) exposes the tools used here. Elsewhere the adapter is
    assumed to be powered and reset is unavailable.
    """

    def __init__(self, logger: ProductionLogger, adapter: str = "auto"):
        self.logger = logger
        self.adapter = "hci0" if adapter == "auto" else adapter

    def adapter_ready(self) -> bool:
        """Return True when the adapter reports a powered-on state."""
        if sys.platform != "linux":
            return True

        try:
            result = subprocess.run(['hciconfig', self.adapter],
                                    capture_output=True, text=True, timeout=5)
        except (OSError, subprocess.TimeoutExpired) as e:
            # No BlueZ tooling; let the scan attempt surface real problems.
            self.logger.debug(f"Unable to query adapter {self.adapter}: {e}")
            return True

        if result.returncode != 0:
            self.logger.warning(f"Adapter {self.adapter} not available: {result.stderr.strip()}")
            return False
        return "UP RUNNING" in result.stdout

    def reset_adapter(self) -> Tuple[bool, str]:
        """Attempt to reset the bluetooth adapter."""
        if sys.platform != "linux":
            return False, "Adapter reset is only supported on Linux"

        self.logger.info(f"Attempting to reset Bluetooth adapter {self.adapter}...")
        try:
            result = subprocess.run(['sudo', 'hciconfig', self.adapter, 'reset'],
                                    capture_output=True, text=True, timeout=10)
        except (OSError, subprocess.TimeoutExpired) as e:
            return False, f"Unable to reset bluetooth adapter: {e}"

        if result.returncode != 0:
            return False, f"Adapter reset failed: {result.stderr.strip()}"
        return True, "Bluetooth adapter reset completed"
