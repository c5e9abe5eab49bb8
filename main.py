#!/usr/bin/env python3
"""
Aranet4 Reader Service - Main Entry Point

Polls an Aranet4 CO2 sensor over Bluetooth Low Energy and forwards readings
to the configured HTTP endpoint, emailing an alert when readings fail.

Usage:
    python main.py --help                 # Show help
    python main.py run                    # Poll until interrupted
    python main.py read                   # One reading with retries
    python main.py test-email             # Send a test alert email
    python main.py config                 # Show configuration

Environment Setup:
    Copy and configure the environment file:
    cp .env.sample .env
    # Edit .env with your settings

Requirements:
    - Python 3.10+
    - Bluetooth adapter available
    - Proper permissions for BLE access
"""

import sys
from pathlib import Path

from aranet_reader.cli.commands import cli


def check_environment():
    """Check if the environment is properly set up."""
    issues = []

    if sys.version_info < (3, 10):
        issues.append(f"Python 3.10+ required, found {sys.version_info.major}.{sys.version_info.minor}")

    env_file = Path(__file__).parent / ".env"
    if not env_file.exists():
        print("Note: .env file not found, using system environment")

    log_dir = Path("logs")
    if not log_dir.exists():
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            issues.append(f"Cannot create directory {log_dir}: {e}")

    return issues


def main():
    """Main entry point with environment validation."""
    issues = check_environment()
    if issues:
        print("Environment Issues Found:")
        for issue in issues:
            print(f"   - {issue}")
        print("\nQuick Setup:")
        print("1. Install dependencies: pip install -e .")
        print("2. Copy environment file: cp .env.sample .env")
        print("3. Edit .env with your endpoint, API key and email settings")
        print("4. Run again: python main.py run")
        sys.exit(1)

    try:
        cli()
    except KeyboardInterrupt:
        print("\n\nApplication interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
