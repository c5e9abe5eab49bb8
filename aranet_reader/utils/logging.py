"""
Logging configuration for the Aranet4 Reader Service.
Provides logging setup with multiple handlers plus process diagnostics.
"""

import logging
import logging.handlers
import platform
import sys
from datetime import datetime
from pathlib import Path

import colorlog
import psutil


class ProductionLogger:
    """
    Logging setup for production deployment with console, rotating file
    and optional syslog handlers, plus a separate performance log.
    """

    def __init__(self,
                 app_name: str = "aranet_reader",
                 log_dir: str = "./logs",
                 log_level: str = "INFO",
                 max_file_size: int = 10 * 1024 * 1024,  # 10MB
                 backup_count: int = 5,
                 enable_console: bool = True,
                 enable_syslog: bool = False):

        self.app_name = app_name
        self.log_dir = Path(log_dir)
        self.log_level = getattr(logging, log_level.upper())
        self.max_file_size = max_file_size
        self.backup_count = backup_count
        self.enable_console = enable_console
        self.enable_syslog = enable_syslog

        self.log_dir.mkdir(parents=True, exist_ok=True)

        self._setup_root_logger()
        self._setup_performance_logger()

    def _setup_root_logger(self):
        """Configure root logger with multiple handlers."""
        root_logger = logging.getLogger()
        root_logger.setLevel(self.log_level)

        # Clear existing handlers
        root_logger.handlers.clear()

        if self.enable_console:
            console_handler = colorlog.StreamHandler(sys.stdout)
            console_handler.setLevel(self.log_level)
            console_formatter = colorlog.ColoredFormatter(
                '%(log_color)s%(asctime)s [%(levelname)8s] %(name)s: %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S',
                log_colors={
                    'DEBUG': 'cyan',
                    'INFO': 'green',
                    'WARNING': 'yellow',
                    'ERROR': 'red',
                    'CRITICAL': 'red,bg_white',
                }
            )
            console_handler.setFormatter(console_formatter)
            root_logger.addHandler(console_handler)

        # File handler with rotation
        file_handler = logging.handlers.RotatingFileHandler(
            self.log_dir / f"{self.app_name}.log",
            maxBytes=self.max_file_size,
            backupCount=self.backup_count
        )
        file_handler.setLevel(self.log_level)
        file_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)8s] %(name)s [%(process)d:%(thread)d] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

        # Syslog handler for systemd integration
        if self.enable_syslog:
            try:
                syslog_handler = logging.handlers.SysLogHandler(address='/dev/log')
                syslog_handler.setLevel(logging.WARNING)
                syslog_formatter = logging.Formatter(
                    f'{self.app_name}[%(process)d]: %(levelname)s - %(message)s'
                )
                syslog_handler.setFormatter(syslog_formatter)
                root_logger.addHandler(syslog_handler)
            except OSError as e:
                print(f"Warning: Could not setup syslog handler: {e}")

    def _setup_performance_logger(self):
        """Send attempt and report metrics to their own log file as well."""
        handler = logging.handlers.RotatingFileHandler(
            self.log_dir / "performance.log",
            maxBytes=self.max_file_size,
            backupCount=self.backup_count
        )
        handler.setFormatter(logging.Formatter('%(asctime)s PERF: %(message)s'))
        logging.getLogger('aranet.performance').addHandler(handler)

    def debug(self, message: str, *args, **kwargs):
        """Log debug message."""
        logging.getLogger().debug(message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs):
        """Log info message."""
        logging.getLogger().info(message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs):
        """Log warning message."""
        logging.getLogger().warning(message, *args, **kwargs)

    def error(self, message: str, *args, **kwargs):
        """Log error message."""
        logging.getLogger().error(message, *args, **kwargs)

    def critical(self, message: str, *args, **kwargs):
        """Log critical message."""
        logging.getLogger().critical(message, *args, **kwargs)


class PerformanceMonitor:
    """
    Metrics collection and process diagnostics for production debugging.
    """

    def __init__(self, logger=None):
        self.logger = logger or logging.getLogger('aranet.performance')
        self.metrics = {
            'ble_reads': [],
            'reports': [],
        }
        self.start_time = datetime.now()

    def log_ble_read(self, duration: float, success: bool, outcome: str = ""):
        """Log one bounded BLE reading attempt."""
        self.metrics['ble_reads'].append({
            'duration': duration,
            'success': success,
            'outcome': outcome,
            'timestamp': datetime.now()
        })

        self.logger.info(
            f"BLE_READ duration={duration:.2f}s success={success} outcome={outcome or '-'}"
        )

    def log_report(self, duration: float, status_code, success: bool):
        """Log one reporting POST."""
        self.metrics['reports'].append({
            'duration': duration,
            'status_code': status_code,
            'success': success,
            'timestamp': datetime.now()
        })

        self.logger.info(
            f"REPORT duration={duration:.2f}s status={status_code} success={success}"
        )

    def uptime_seconds(self) -> float:
        return (datetime.now() - self.start_time).total_seconds()

    def process_diagnostics(self) -> dict:
        """Collect runtime diagnostics for alert emails."""
        process = psutil.Process()
        memory_info = process.memory_info()
        return {
            'python_version': platform.python_version(),
            'platform': sys.platform,
            'memory_rss_mb': round(memory_info.rss / 1024 / 1024),
            'cpu_percent': process.cpu_percent(),
            'uptime_hours': round(self.uptime_seconds() / 3600),
        }

    def log_system_resources(self):
        """Log current system resource usage."""
        try:
            diagnostics = self.process_diagnostics()
            self.logger.info(
                f"RESOURCES memory_rss={diagnostics['memory_rss_mb']}MB "
                f"cpu={diagnostics['cpu_percent']:.1f}% uptime={diagnostics['uptime_hours']}h"
            )
        except psutil.Error as e:
            self.logger.error(f"Failed to log system resources: {e}")

    def get_performance_summary(self) -> dict:
        """Summarize attempts and reports since startup."""
        reads = self.metrics['ble_reads']
        reports = self.metrics['reports']
        successful_reads = [read for read in reads if read['success']]

        summary = {
            'uptime_seconds': self.uptime_seconds(),
            'ble_reads': {
                'total': len(reads),
                'successful': len(successful_reads),
                'avg_duration': 0,
            },
            'reports': {
                'total': len(reports),
                'successful': sum(1 for report in reports if report['success']),
            },
            'advertisements_seen': sum(entry['value'] for entry in self.metrics.get('ble_advertisements_seen', [])),
        }

        if successful_reads:
            summary['ble_reads']['avg_duration'] = sum(read['duration'] for read in successful_reads) / len(successful_reads)

        return summary

    def record_metric(self, metric_name: str, value: float):
        """Record a metric value."""
        if metric_name not in self.metrics:
            self.metrics[metric_name] = []

        self.metrics[metric_name].append({
            'value': value,
            'timestamp': datetime.now()
        })

        self.logger.debug(f"METRIC {metric_name}={value}")


def setup_logging(config) -> ProductionLogger:
    """
    Setup logging for the Aranet4 Reader Service using configuration.

    Args:
        config: Configuration instance

    Returns:
        ProductionLogger instance
    """
    return ProductionLogger(
        log_level=config.log_level,
        log_dir=str(config.log_dir),
        max_file_size=config.log_max_file_size,
        backup_count=config.log_backup_count,
        enable_console=config.log_enable_console,
        enable_syslog=config.log_enable_syslog
    )
