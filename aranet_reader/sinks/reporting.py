"""
HTTP reporting of decoded readings.
"""

import asyncio
import time
from typing import Dict, Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..ble.decoder import Reading
from ..exceptions.errors import ReportingError
from ..utils.config import Config
from ..utils.logging import ProductionLogger, PerformanceMonitor


class ReportingSink:
    """
    Posts readings to the remote API with a static API key.

    Best effort: failures are logged and reported through the return value,
    never raised.
    """

    def __init__(self, config: Config, logger: ProductionLogger,
                 performance_monitor: PerformanceMonitor,
                 session: Optional[requests.Session] = None):
        self.config = config
        self.logger = logger
        self.performance_monitor = performance_monitor

        self.endpoint = config.api_endpoint
        self.device_id = config.device_id
        self.timeout = config.api_timeout

        # HTTP session with retry strategy for transient gateway errors
        self.session = session or requests.Session()
        retry_strategy = Retry(
            total=config.api_retry_attempts,
            backoff_factor=1.0,
            status_forcelist=[502, 503, 504],
            allowed_methods=["POST"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)
        self.session.headers.update({
            'Content-Type': 'application/json',
            'X-API-Key': config.api_key,
        })

    def build_payload(self, reading: Reading) -> Dict[str, Any]:
        return {
            'deviceId': self.device_id,
            'readings': reading.to_payload(),
        }

    def _post(self, payload: Dict[str, Any]) -> requests.Response:
        return self.session.post(self.endpoint, json=payload, timeout=self.timeout)

    async def report(self, reading: Reading) -> bool:
        """
        Post one reading.

        Args:
            reading: Decoded reading

        Returns:
            bool: True if the endpoint answered 200
        """
        payload = self.build_payload(reading)
        loop = asyncio.get_running_loop()
        started = time.monotonic()

        try:
            response = await loop.run_in_executor(None, self._post, payload)
        except requests.exceptions.RequestException as e:
            error = ReportingError(f"Error posting to server: {e}")
            self.logger.error(str(error))
            self.performance_monitor.log_report(time.monotonic() - started, None, False)
            return False
        except Exception as e:
            self.logger.error(f"Unexpected error posting to server: {e!r}")
            self.performance_monitor.log_report(time.monotonic() - started, None, False)
            return False

        duration = time.monotonic() - started
        if response.status_code == 200:
            self.logger.info("Successfully posted to server")
            self.performance_monitor.log_report(duration, response.status_code, True)
            return True

        self.logger.warning(f"Server responded with status: {response.status_code}")
        self.performance_monitor.log_report(duration, response.status_code, False)
        return False

    def close(self):
        self.session.close()
