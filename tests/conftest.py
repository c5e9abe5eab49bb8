"""
Pytest configuration and shared fixtures for Aranet4 Reader Service tests.
Provides common test fixtures, mock objects, and test utilities.
"""

import pytest
from pathlib import Path
from unittest.mock import Mock, AsyncMock

# Import the modules we're testing
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from aranet_reader.utils.config import Config
from aranet_reader.utils.logging import ProductionLogger, PerformanceMonitor
from aranet_reader.ble.decoder import Reading
from tests.fixtures.sensor_data import SensorDataFixtures


@pytest.fixture
def mock_config():
    """Create a mock configuration for testing."""
    config = Mock(spec=Config)

    # Reporting configuration
    config.api_endpoint = "https://example.test/api/readings"
    config.api_key = "test-api-key"
    config.api_timeout = 5.0
    config.api_retry_attempts = 0
    config.device_id = "aranet4-office"

    # Alerting configuration
    config.email_to = "ops@example.test, oncall@example.test"
    config.email_from = "aranet-reader@example.test"
    config.sendgrid_api_key = "SG.test-key"
    config.sendgrid_api_url = "https://sendgrid.example.test/v3/mail/send"
    config.test_email = False

    # BLE configuration
    config.device_name_filter = "Aranet4"
    config.ble_adapter = "auto"
    config.ble_settle_delay = 0.0
    config.ble_pair = False
    config.ble_adapter_reset = False
    config.ble_adapter_poll_interval = 0.01

    # Polling configuration
    config.reading_timeout = 2.0
    config.polling_interval = 1800.0
    config.poll_tick = 0.01
    config.max_attempts = 3
    config.retry_delay = 0.0
    config.shutdown_grace = 5.0

    # Logging configuration
    config.log_level = "DEBUG"
    config.log_dir = Path("./test_logs")
    config.log_max_file_size = 1024 * 1024  # 1MB
    config.log_backup_count = 2
    config.log_enable_console = False  # Disable console logging in tests
    config.log_enable_syslog = False

    return config


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    logger = Mock(spec=ProductionLogger)
    logger.debug = Mock()
    logger.info = Mock()
    logger.warning = Mock()
    logger.error = Mock()
    logger.critical = Mock()
    return logger


@pytest.fixture
def mock_performance_monitor():
    """Create a mock performance monitor for testing."""
    monitor = Mock(spec=PerformanceMonitor)
    monitor.record_metric = Mock()
    monitor.log_ble_read = Mock()
    monitor.log_report = Mock()
    monitor.process_diagnostics = Mock(return_value={
        'python_version': '3.12.0',
        'platform': 'linux',
        'memory_rss_mb': 42.5,
        'cpu_percent': 1.0,
        'uptime_hours': 0.5,
    })
    monitor.get_performance_summary = Mock(return_value={
        'ble_reads': {'total': 0, 'successful': 0},
        'reports': {'total': 0, 'successful': 0},
        'advertisements_seen': 0,
    })

    return monitor


@pytest.fixture
def mock_recovery():
    """Adapter recovery reporting a powered adapter."""
    recovery = Mock()
    recovery.adapter_ready = Mock(return_value=True)
    recovery.reset_adapter = Mock(return_value=(True, "Bluetooth adapter hci0 reset successfully"))
    return recovery


@pytest.fixture
def office_payload():
    """Current readings value: 1000 ppm, 12.0°C, 1018.4 hPa, 50 %RH."""
    return SensorDataFixtures.office_payload()


@pytest.fixture
def sample_reading():
    """A decoded reading for sink and poller tests."""
    return Reading(
        co2=1000,
        temperature=12.0,
        humidity=50,
        pressure=1018.4,
        timestamp="2024-01-15T10:30:00+00:00",
    )


@pytest.fixture
def mock_reporting_sink():
    sink = Mock()
    sink.report = AsyncMock(return_value=True)
    sink.close = Mock()
    return sink


@pytest.fixture
def mock_alerting_sink():
    sink = Mock()
    sink.alert = AsyncMock(return_value=True)
    sink.send_test = AsyncMock(return_value=True)
    sink.close = Mock()
    return sink


# Pytest markers for test categorization
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
    config.addinivalue_line("markers", "ble: Tests requiring BLE functionality")
