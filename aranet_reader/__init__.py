"""
Aranet4 Reader Service - BLE CO2 sensor polling and reporting.

Polls an Aranet4 environmental sensor over Bluetooth Low Energy on a fixed
interval, decodes its current readings characteristic and forwards each
reading to a remote HTTP endpoint, with email alerts on failure.

Features:
- Name-filtered BLE discovery with adapter power-state handling
- Single-read GATT sessions with guaranteed disconnect on failure
- Hard per-attempt deadline around discovery and read
- Fixed-cadence daemon loop and bounded-retry one-shot mode
- HTTP reporting with API key header and SendGrid email alerting
- Configuration with environment variables
"""

__version__ = "1.0.0"
__author__ = "Aranet4 Reader Team"
__description__ = "BLE CO2 sensor polling and reporting service"

from .utils.config import Config, ConfigurationError
from .utils.logging import ProductionLogger, PerformanceMonitor
from .ble.decoder import Reading, decode
from .ble.watcher import DiscoveryWatcher
from .ble.session import SensorSession
from .service.supervisor import ReadingSupervisor
from .service.poller import FixedCadencePoller, BoundedRetryPoller

__all__ = [
    "Config",
    "ConfigurationError",
    "ProductionLogger",
    "PerformanceMonitor",
    "Reading",
    "decode",
    "DiscoveryWatcher",
    "SensorSession",
    "ReadingSupervisor",
    "FixedCadencePoller",
    "BoundedRetryPoller",
]
