"""
Email alerting through the SendGrid v3 mail API.
"""

import asyncio
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

import requests

from ..exceptions.errors import AlertingError
from ..utils.config import Config
from ..utils.logging import ProductionLogger, PerformanceMonitor


ALERT_TEMPLATE = """
Error Report from Aranet Reader

Time: {time}
Device: {device_id}
Location: {location}

Error Details:
{message}

Stack Trace:
{stack}

System Info:
- Python Version: {python_version}
- Platform: {platform}
- Memory Usage: {memory_rss_mb}MB
- Uptime: {uptime_hours}h

Please check the device and restart if necessary.
"""


class AlertingSink:
    """
    Sends diagnostic emails on reading failures.

    Send failures are logged and swallowed; alerts are never retried.
    """

    def __init__(self, config: Config, logger: ProductionLogger,
                 performance_monitor: PerformanceMonitor,
                 session: Optional[requests.Session] = None):
        self.config = config
        self.logger = logger
        self.performance_monitor = performance_monitor

        self.device_id = config.device_id
        self.email_to = config.email_to
        self.email_from = config.email_from
        self.api_url = config.sendgrid_api_url
        self.timeout = config.api_timeout

        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f"Bearer {config.sendgrid_api_key}",
            'Content-Type': 'application/json',
        })

    def _recipients(self) -> List[str]:
        return [address.strip() for address in self.email_to.split(",") if address.strip()]

    def compose_alert(self, error: BaseException) -> Dict[str, Any]:
        """Build the {to, from, subject, text} message for an error."""
        diagnostics = self.performance_monitor.process_diagnostics()
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))

        return {
            'to': self._recipients(),
            'from': self.email_from,
            'subject': f"Aranet Reader Error - {self.device_id}",
            'text': ALERT_TEMPLATE.format(
                time=datetime.now(timezone.utc).isoformat(),
                device_id=self.device_id,
                location=self.device_id.replace('aranet4-', ''),
                message=str(error) or type(error).__name__,
                stack=stack.strip(),
                **diagnostics
            ),
        }

    def compose_test(self) -> Dict[str, Any]:
        return {
            'to': self._recipients(),
            'from': self.email_from,
            'subject': 'Aranet Reader - Email Test',
            'text': 'This is a test email from your Aranet Reader application.',
        }

    def _to_sendgrid(self, message: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'personalizations': [{'to': [{'email': address} for address in message['to']]}],
            'from': {'email': message['from']},
            'subject': message['subject'],
            'content': [{'type': 'text/plain', 'value': message['text']}],
        }

    def _send(self, message: Dict[str, Any]):
        response = self.session.post(self.api_url, json=self._to_sendgrid(message), timeout=self.timeout)
        if response.status_code >= 300:
            raise AlertingError(f"SendGrid responded with status {response.status_code}: {response.text}")

    async def _deliver(self, message: Dict[str, Any]) -> bool:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send, message)
        except (AlertingError, requests.exceptions.RequestException) as e:
            self.logger.error(f"Failed to send email '{message['subject']}': {e}")
            return False
        except Exception as e:
            self.logger.error(f"Unexpected error sending email '{message['subject']}': {e!r}")
            return False
        return True

    async def alert(self, error: BaseException) -> bool:
        """
        Email a diagnostic report for an error.

        Args:
            error: The failure that triggered the alert

        Returns:
            bool: True if the provider accepted the message
        """
        try:
            message = self.compose_alert(error)
        except Exception as e:
            self.logger.error(f"Failed to compose error notification: {e!r}")
            return False

        sent = await self._deliver(message)
        if sent:
            self.logger.info("Error notification email sent successfully")
        return sent

    async def send_test(self) -> bool:
        """Send the startup self-test email."""
        sent = await self._deliver(self.compose_test())
        if sent:
            self.logger.info("Test email sent successfully")
        return sent

    def close(self):
        self.session.close()
