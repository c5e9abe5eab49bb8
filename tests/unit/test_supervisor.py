"""
Unit tests for bounded reading attempts: deadlines, late results,
crash wrapping and serialization.
"""

import asyncio
import pytest
from unittest.mock import Mock, AsyncMock

from aranet_reader.exceptions.errors import (
    AttemptCrashedError,
    DiscoveryError,
    ReadingTimeoutError,
    ServiceNotFoundError,
)
from aranet_reader.service.supervisor import ReadingSupervisor
from tests.mocks.mock_ble import make_device


@pytest.fixture
def watcher():
    watcher = Mock()
    watcher.wait_for_device = AsyncMock(return_value=make_device())
    return watcher


@pytest.fixture
def session(sample_reading):
    session = Mock()
    session.read_once = AsyncMock(return_value=sample_reading)
    return session


@pytest.fixture
def supervisor(mock_config, mock_logger, mock_performance_monitor, watcher, session):
    return ReadingSupervisor(mock_config, mock_logger, mock_performance_monitor,
                             watcher, session, teardown_grace=0.5)


class TestOutcomes:

    @pytest.mark.asyncio
    async def test_success(self, supervisor, sample_reading, mock_performance_monitor):
        reading = await supervisor.run_bounded(timeout=1.0)

        assert reading is sample_reading
        mock_performance_monitor.log_ble_read.assert_called_once()
        assert mock_performance_monitor.log_ble_read.call_args.args[1] is True

    @pytest.mark.asyncio
    async def test_reader_error_propagates_unchanged(self, supervisor, session):
        error = ServiceNotFoundError("Aranet service not found")
        session.read_once.side_effect = error

        with pytest.raises(ServiceNotFoundError) as exc_info:
            await supervisor.run_bounded(timeout=1.0)

        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_discovery_error_skips_session(self, supervisor, watcher, session):
        watcher.wait_for_device.side_effect = DiscoveryError("Failed to start BLE scan")

        with pytest.raises(DiscoveryError):
            await supervisor.run_bounded(timeout=1.0)

        session.read_once.assert_not_called()

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(self, supervisor, session):
        session.read_once.side_effect = KeyError("boom")

        with pytest.raises(AttemptCrashedError) as exc_info:
            await supervisor.run_bounded(timeout=1.0)

        assert isinstance(exc_info.value.__cause__, KeyError)

    @pytest.mark.asyncio
    async def test_default_timeout_from_config(self, supervisor, mock_config):
        assert supervisor.reading_timeout == mock_config.reading_timeout

    @pytest.mark.asyncio
    async def test_teardown_grace_follows_shutdown_grace(self, mock_config, mock_logger,
                                                         mock_performance_monitor, watcher, session):
        mock_config.shutdown_grace = 1.5
        supervisor = ReadingSupervisor(mock_config, mock_logger, mock_performance_monitor,
                                       watcher, session)

        assert supervisor.teardown_grace == 1.5


class TestDeadline:

    @pytest.mark.asyncio
    async def test_timeout_cancels_attempt(self, supervisor, session, mock_performance_monitor):
        cancelled = asyncio.Event()

        async def hang(device):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        session.read_once.side_effect = hang

        with pytest.raises(ReadingTimeoutError) as exc_info:
            await supervisor.run_bounded(timeout=0.05)

        assert exc_info.value.timeout == 0.05
        assert cancelled.is_set()
        assert mock_performance_monitor.log_ble_read.call_args.args[2] == "timeout"

    @pytest.mark.asyncio
    async def test_result_after_deadline_discarded(self, supervisor, session, sample_reading, mock_logger):
        async def finishes_during_teardown(device):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                await asyncio.sleep(0.01)
                return sample_reading

        session.read_once.side_effect = finishes_during_teardown

        with pytest.raises(ReadingTimeoutError):
            await supervisor.run_bounded(timeout=0.05)

        warnings = [c.args[0] for c in mock_logger.warning.call_args_list]
        assert any("after the deadline" in message for message in warnings)

    @pytest.mark.asyncio
    async def test_stuck_attempt_abandoned(self, supervisor, session, sample_reading, mock_logger):
        supervisor.teardown_grace = 0.02
        finished = asyncio.Event()

        async def ignores_cancellation(device):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                await asyncio.sleep(0.1)
                finished.set()
                return sample_reading

        session.read_once.side_effect = ignores_cancellation

        with pytest.raises(ReadingTimeoutError):
            await supervisor.run_bounded(timeout=0.05)

        assert "abandoning" in mock_logger.error.call_args.args[0]
        # The abandoned attempt still owns the adapter
        assert supervisor.busy

        await asyncio.wait_for(finished.wait(), timeout=1.0)
        await asyncio.sleep(0.01)
        assert not supervisor.busy
        warnings = [c.args[0] for c in mock_logger.warning.call_args_list]
        assert any("after the deadline" in message for message in warnings)

    @pytest.mark.asyncio
    async def test_caller_cancellation_tears_down(self, supervisor, session):
        cancelled = asyncio.Event()

        async def hang(device):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        session.read_once.side_effect = hang

        task = asyncio.create_task(supervisor.run_bounded(timeout=5.0))
        await asyncio.sleep(0.02)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert cancelled.is_set()
        assert not supervisor.busy


class TestSerialization:

    @pytest.mark.asyncio
    async def test_attempts_never_overlap(self, supervisor, session, sample_reading):
        active = 0
        peak = 0

        async def slow_read(device):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1
            return sample_reading

        session.read_once.side_effect = slow_read

        results = await asyncio.gather(*(supervisor.run_bounded(timeout=1.0) for _ in range(3)))

        assert results == [sample_reading] * 3
        assert peak == 1
        assert session.read_once.await_count == 3

    @pytest.mark.asyncio
    async def test_busy_while_running(self, supervisor, session, sample_reading):
        gate = asyncio.Event()

        async def gated_read(device):
            await gate.wait()
            return sample_reading

        session.read_once.side_effect = gated_read

        task = asyncio.create_task(supervisor.run_bounded(timeout=1.0))
        await asyncio.sleep(0.01)
        assert supervisor.busy

        gate.set()
        await task
        assert not supervisor.busy


class TestCancelActive:

    @pytest.mark.asyncio
    async def test_idle_supervisor(self, supervisor):
        assert supervisor.cancel_active() is False

    @pytest.mark.asyncio
    async def test_cancels_in_flight_attempt(self, supervisor, session):
        cancelled = asyncio.Event()

        async def hang(device):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        session.read_once.side_effect = hang

        task = asyncio.create_task(supervisor.run_bounded(timeout=5.0))
        await asyncio.sleep(0.02)
        assert supervisor.cancel_active() is True

        with pytest.raises(AttemptCrashedError, match="cancelled"):
            await task

        assert cancelled.is_set()


class TestAbandonedAttempt:

    @pytest.mark.asyncio
    async def test_next_attempt_waits_for_adapter(self, supervisor, session, sample_reading, mock_logger):
        supervisor.teardown_grace = 0.02
        active = 0
        peak = 0

        async def first_ignores_cancellation(device):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            try:
                if session.read_once.call_count == 1:
                    try:
                        await asyncio.sleep(10)
                    except asyncio.CancelledError:
                        await asyncio.sleep(0.2)
                return sample_reading
            finally:
                active -= 1

        session.read_once.side_effect = first_ignores_cancellation

        with pytest.raises(ReadingTimeoutError):
            await supervisor.run_bounded(timeout=0.05)

        reading = await supervisor.run_bounded(timeout=1.0)

        assert reading is sample_reading
        assert peak == 1
        assert session.read_once.call_count == 2
        warnings = [c.args[0] for c in mock_logger.warning.call_args_list]
        assert any("still holds the adapter" in message for message in warnings)

    @pytest.mark.asyncio
    async def test_adapter_held_past_next_deadline(self, supervisor, session, sample_reading,
                                                   mock_performance_monitor):
        supervisor.teardown_grace = 0.02
        release = asyncio.Event()

        async def ignores_cancellation(device):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                await release.wait()
            return sample_reading

        session.read_once.side_effect = ignores_cancellation

        with pytest.raises(ReadingTimeoutError):
            await supervisor.run_bounded(timeout=0.05)

        with pytest.raises(ReadingTimeoutError):
            await supervisor.run_bounded(timeout=0.05)

        # No second session was opened
        assert session.read_once.call_count == 1
        assert mock_performance_monitor.log_ble_read.call_args.args[2] == "adapter_busy"

        release.set()
        await asyncio.sleep(0.01)
        assert not supervisor.busy
