"""
Unit tests for Bluetooth adapter probing and reset.
"""

import subprocess
import sys
import pytest
from unittest.mock import Mock, patch

from aranet_reader.exceptions.recovery import AdapterRecovery


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


HCI_UP = """hci0:	Type: Primary  Bus: USB
	BD Address: 00:1A:7D:DA:71:13  ACL MTU: 310:10  SCO MTU: 64:8
	UP RUNNING
	RX bytes:1234 acl:0 sco:0 events:56 errors:0
"""

HCI_DOWN = """hci0:	Type: Primary  Bus: USB
	BD Address: 00:1A:7D:DA:71:13  ACL MTU: 310:10  SCO MTU: 64:8
	DOWN
"""


@pytest.fixture
def linux(monkeypatch):
    monkeypatch.setattr(sys, "platform", "linux")


@pytest.fixture
def recovery(mock_logger):
    return AdapterRecovery(mock_logger, "auto")


class TestAdapterReady:

    def test_auto_maps_to_hci0(self, recovery):
        assert recovery.adapter == "hci0"

    def test_powered_adapter(self, linux, recovery):
        with patch('aranet_reader.exceptions.recovery.subprocess.run', return_value=completed(stdout=HCI_UP)) as run:
            assert recovery.adapter_ready() is True

        assert run.call_args.args[0] == ['hciconfig', 'hci0']

    def test_adapter_down(self, linux, recovery):
        with patch('aranet_reader.exceptions.recovery.subprocess.run', return_value=completed(stdout=HCI_DOWN)):
            assert recovery.adapter_ready() is False

    def test_adapter_missing(self, linux, recovery, mock_logger):
        result = completed(returncode=1, stderr="Can't get device info: No such device")
        with patch('aranet_reader.exceptions.recovery.subprocess.run', return_value=result):
            assert recovery.adapter_ready() is False

        mock_logger.warning.assert_called_once()

    def test_no_bluez_tools(self, linux, recovery):
        with patch('aranet_reader.exceptions.recovery.subprocess.run',
                   side_effect=FileNotFoundError("hciconfig")):
            assert recovery.adapter_ready() is True

    def test_non_linux_assumed_ready(self, monkeypatch, recovery):
        monkeypatch.setattr(sys, "platform", "darwin")
        run = Mock()
        with patch('aranet_reader.exceptions.recovery.subprocess.run', run):
            assert recovery.adapter_ready() is True
        run.assert_not_called()


class TestResetAdapter:

    def test_reset_success(self, linux, mock_logger):
        recovery = AdapterRecovery(mock_logger, "hci1")
        with patch('aranet_reader.exceptions.recovery.subprocess.run', return_value=completed()) as run:
            ok, message = recovery.reset_adapter()

        assert ok is True
        assert run.call_args.args[0] == ['sudo', 'hciconfig', 'hci1', 'reset']

    def test_reset_failure(self, linux, recovery):
        result = completed(returncode=1, stderr="Operation not permitted")
        with patch('aranet_reader.exceptions.recovery.subprocess.run', return_value=result):
            ok, message = recovery.reset_adapter()

        assert ok is False
        assert "Operation not permitted" in message

    def test_reset_timeout(self, linux, recovery):
        with patch('aranet_reader.exceptions.recovery.subprocess.run',
                   side_effect=subprocess.TimeoutExpired(cmd="hciconfig", timeout=10)):
            ok, message = recovery.reset_adapter()

        assert ok is False

    def test_reset_unsupported_platform(self, monkeypatch, recovery):
        monkeypatch.setattr(sys, "platform", "win32")
        ok, message = recovery.reset_adapter()

        assert ok is False
        assert "only supported on Linux" in message
