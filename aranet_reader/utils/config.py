"""
Configuration management for the Aranet4 Reader Service.
Loads configuration from environment variables with validation and defaults.
"""

import os
from pathlib import Path
from typing import Optional, Union
from dotenv import load_dotenv
import logging


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


class Config:
    """
    Configuration manager that loads settings from environment variables.
    Provides validation and type conversion for configuration values.
    """

    def __init__(self, env_file: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            env_file: Path to .env file (defaults to .env in project root)
        """
        self.logger = logging.getLogger(__name__)

        if env_file is None:
            env_file = Path(__file__).parent.parent.parent / ".env"

        if Path(env_file).exists():
            load_dotenv(env_file)
            self.logger.info(f"Loaded configuration from {env_file}")
        else:
            self.logger.warning(f"Environment file {env_file} not found, using system environment")

    def get_str(self, key: str, default: Optional[str] = None) -> str:
        """Get string configuration value."""
        value = os.getenv(key, default)
        if value is None:
            raise ConfigurationError(f"Required configuration key '{key}' not found")
        return value

    def get_int(self, key: str, default: Optional[int] = None) -> int:
        """Get integer configuration value."""
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise ConfigurationError(f"Required configuration key '{key}' not found")
            return default

        try:
            return int(value)
        except ValueError:
            raise ConfigurationError(f"Configuration key '{key}' must be an integer, got '{value}'")

    def get_float(self, key: str, default: Optional[float] = None) -> float:
        """Get float configuration value."""
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise ConfigurationError(f"Required configuration key '{key}' not found")
            return default

        try:
            return float(value)
        except ValueError:
            raise ConfigurationError(f"Configuration key '{key}' must be a float, got '{value}'")

    def get_bool(self, key: str, default: Optional[bool] = None) -> bool:
        """Get boolean configuration value."""
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise ConfigurationError(f"Required configuration key '{key}' not found")
            return default

        return value.lower() in ('true', '1', 'yes', 'on', 'enabled')

    def get_path(self, key: str, default: Optional[Union[str, Path]] = None) -> Path:
        """Get path configuration value."""
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise ConfigurationError(f"Required configuration key '{key}' not found")
            value = str(default)

        path = Path(value)
        if not path.is_absolute():
            # Make relative paths relative to project root
            project_root = Path(__file__).parent.parent.parent
            path = project_root / path

        return path

    # Reporting endpoint
    @property
    def api_endpoint(self) -> str:
        return self.get_str("API_ENDPOINT")

    @property
    def api_key(self) -> str:
        return self.get_str("API_KEY")

    @property
    def api_timeout(self) -> float:
        return self.get_float("API_TIMEOUT", 30.0)

    @property
    def api_retry_attempts(self) -> int:
        return self.get_int("API_RETRY_ATTEMPTS", 2)

    @property
    def device_id(self) -> str:
        return self.get_str("DEVICE_ID")

    # Email alerting
    @property
    def email_to(self) -> str:
        return self.get_str("EMAIL_TO")

    @property
    def email_from(self) -> str:
        return self.get_str("EMAIL_FROM")

    @property
    def sendgrid_api_key(self) -> str:
        return self.get_str("SENDGRID_API_KEY")

    @property
    def sendgrid_api_url(self) -> str:
        return self.get_str("SENDGRID_API_URL", "https://api.sendgrid.com/v3/mail/send")

    @property
    def test_email(self) -> bool:
        """Send a self-test email on daemon startup."""
        return self.get_bool("TEST_EMAIL", False)

    # BLE Configuration
    @property
    def device_name_filter(self) -> str:
        return self.get_str("DEVICE_NAME_FILTER", "Aranet4")

    @property
    def ble_adapter(self) -> str:
        return self.get_str("BLE_ADAPTER", "auto")

    @property
    def ble_settle_delay(self) -> float:
        return self.get_float("BLE_SETTLE_DELAY", 1.0)

    @property
    def ble_pair(self) -> bool:
        return self.get_bool("BLE_PAIR", False)

    @property
    def ble_adapter_reset(self) -> bool:
        return self.get_bool("BLE_ADAPTER_RESET", False)

    @property
    def ble_adapter_poll_interval(self) -> float:
        return self.get_float("BLE_ADAPTER_POLL_INTERVAL", 2.0)

    # Polling Configuration
    @property
    def reading_timeout(self) -> float:
        return self.get_float("READING_TIMEOUT_SECONDS", 60.0)

    @property
    def polling_interval(self) -> float:
        return self.get_float("POLLING_INTERVAL_SECONDS", 1800.0)

    @property
    def poll_tick(self) -> float:
        return self.get_float("POLL_TICK_SECONDS", 60.0)

    @property
    def max_attempts(self) -> int:
        return self.get_int("MAX_ATTEMPTS", 3)

    @property
    def retry_delay(self) -> float:
        return self.get_float("RETRY_DELAY_SECONDS", 10.0)

    @property
    def shutdown_grace(self) -> float:
        """Seconds allowed for BLE teardown on shutdown or after a missed deadline."""
        return self.get_float("SHUTDOWN_GRACE_SECONDS", 1.0)

    # Logging Configuration
    @property
    def log_level(self) -> str:
        return self.get_str("LOG_LEVEL", "INFO").upper()

    @property
    def log_dir(self) -> Path:
        return self.get_path("LOG_DIR", "./logs")

    @property
    def log_max_file_size(self) -> int:
        return self.get_int("LOG_MAX_FILE_SIZE", 10 * 1024 * 1024)  # 10MB

    @property
    def log_backup_count(self) -> int:
        return self.get_int("LOG_BACKUP_COUNT", 5)

    @property
    def log_enable_console(self) -> bool:
        return self.get_bool("LOG_ENABLE_CONSOLE", True)

    @property
    def log_enable_syslog(self) -> bool:
        return self.get_bool("LOG_ENABLE_SYSLOG", False)

    def validate_configuration(self) -> bool:
        """
        Validate all configuration values.

        Returns:
            bool: True if configuration is valid

        Raises:
            ConfigurationError: If configuration is invalid
        """
        errors = []

        # Validate reporting configuration
        try:
            if not self.api_endpoint.startswith(("http://", "https://")):
                errors.append("API_ENDPOINT must be an http(s) URL")
            if not self.api_key:
                errors.append("API_KEY cannot be empty")
            if not self.device_id:
                errors.append("DEVICE_ID cannot be empty")
            if self.api_timeout <= 0:
                errors.append("API_TIMEOUT must be positive")
        except ConfigurationError as e:
            errors.append(str(e))

        # Validate email configuration
        try:
            if "@" not in self.email_to:
                errors.append("EMAIL_TO must be an email address")
            if "@" not in self.email_from:
                errors.append("EMAIL_FROM must be an email address")
            if not self.sendgrid_api_key:
                errors.append("SENDGRID_API_KEY cannot be empty")
        except ConfigurationError as e:
            errors.append(str(e))

        # Validate BLE and polling configuration
        try:
            if not self.device_name_filter:
                errors.append("DEVICE_NAME_FILTER cannot be empty")
            if self.ble_settle_delay < 0:
                errors.append("BLE_SETTLE_DELAY cannot be negative")
            if self.reading_timeout <= 0:
                errors.append("READING_TIMEOUT_SECONDS must be positive")
            if self.polling_interval <= 0:
                errors.append("POLLING_INTERVAL_SECONDS must be positive")
            if self.poll_tick <= 0:
                errors.append("POLL_TICK_SECONDS must be positive")
            if self.max_attempts < 1:
                errors.append("MAX_ATTEMPTS must be at least 1")
            if self.retry_delay < 0:
                errors.append("RETRY_DELAY_SECONDS cannot be negative")
            if self.shutdown_grace <= 0:
                errors.append("SHUTDOWN_GRACE_SECONDS must be positive")
        except ConfigurationError as e:
            errors.append(str(e))

        # Validate log level
        try:
            valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
            if self.log_level not in valid_levels:
                errors.append(f"LOG_LEVEL must be one of {valid_levels}")
        except ConfigurationError as e:
            errors.append(str(e))

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors))

        return True

    def get_summary(self) -> dict:
        """Get configuration summary for logging/debugging. Secrets are redacted."""
        return {
            'reporting': {
                'endpoint': self.get_str("API_ENDPOINT", ""),
                'api_key': _redact(self.get_str("API_KEY", "")),
                'timeout': self.api_timeout,
                'device_id': self.get_str("DEVICE_ID", ""),
            },
            'alerting': {
                'to': self.get_str("EMAIL_TO", ""),
                'from': self.get_str("EMAIL_FROM", ""),
                'sendgrid_api_key': _redact(self.get_str("SENDGRID_API_KEY", "")),
                'test_email': self.test_email,
            },
            'ble': {
                'name_filter': self.device_name_filter,
                'adapter': self.ble_adapter,
                'settle_delay': self.ble_settle_delay,
                'pair': self.ble_pair,
                'adapter_reset': self.ble_adapter_reset,
            },
            'polling': {
                'reading_timeout': self.reading_timeout,
                'interval': self.polling_interval,
                'tick': self.poll_tick,
                'max_attempts': self.max_attempts,
                'retry_delay': self.retry_delay,
            },
            'logging': {
                'level': self.log_level,
                'dir': str(self.log_dir),
                'enable_console': self.log_enable_console,
                'enable_syslog': self.log_enable_syslog,
            },
        }

    def validate_environment(self):
        """Validate environment and configuration."""
        return self.validate_configuration()


def _redact(secret: str) -> str:
    if not secret:
        return ""
    return secret[:4] + "****"
