"""Tests for sensor.py — facade lifecycle, restart, bounded close."""

import threading
import time
from unittest.mock import MagicMock

from conftest import FakeTransport, TransportFactory, make_report

from gaii.constants import SENSOR_ID, SENSOR_NAME
from gaii.exceptions import ReadTimeout
from gaii.poller import LoopResult, SensorPollLoop
from gaii.pump import PumpCommandChannel
from gaii.sensor import CoolantSensor


def _channel():
    channel = MagicMock(spec=PumpCommandChannel)
    channel.send.return_value = True
    return channel


def _finished_loop(reading=None, result=None):
    """Loop double whose run() returns immediately."""
    loop = MagicMock(spec=SensorPollLoop)
    loop.reading = reading
    loop.run.return_value = result or LoopResult()
    return loop


def _wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class BlockingTransport(FakeTransport):
    """Read blocks until released, ignoring the stop signal."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def read(self, length=64, timeout_ms=None):
        self.entered.set()
        self.release.wait(5.0)
        raise ReadTimeout("released")


class TestIdentity:

    def test_id_and_name(self):
        sensor = CoolantSensor(_channel(), autostart=False)
        assert sensor.id == SENSOR_ID == "LianLiCoolantTemp"
        assert sensor.name == SENSOR_NAME == "GA II Coolant Temp"

    def test_value_none_before_start(self):
        sensor = CoolantSensor(_channel(), autostart=False)
        assert sensor.value is None
        assert not sensor.is_running


class TestLifecycle:

    def test_value_from_live_loop(self):
        reports = [make_report(37)]
        factory = TransportFactory(FakeTransport(reports, idle_sleep=0.01))
        sensor = CoolantSensor(
            _channel(),
            loop_factory=lambda: SensorPollLoop(_channel(), factory),
        )
        try:
            assert _wait_until(lambda: sensor.value == 37.0)
            assert sensor.is_running
        finally:
            sensor.close()
        assert not sensor.is_running
        assert not factory.created[0].is_open
        assert sensor.value is None

    def test_ensure_running_idempotent(self):
        loops = []

        def _factory():
            loop = SensorPollLoop(_channel(), TransportFactory(FakeTransport(idle_sleep=0.01)))
            loops.append(loop)
            return loop

        sensor = CoolantSensor(_channel(), loop_factory=_factory)
        try:
            sensor.ensure_running()
            sensor.update()
            assert len(loops) == 1
        finally:
            sensor.close()

    def test_update_restarts_dead_loop(self):
        first = _finished_loop(reading=20.0)
        second = _finished_loop(reading=21.0)
        pending = [first, second]
        sensor = CoolantSensor(_channel(), loop_factory=lambda: pending.pop(0))

        assert _wait_until(lambda: not sensor.is_running)
        assert sensor.value == 20.0

        sensor.update()
        assert sensor.loop is second
        first.request_stop.assert_called_once()
        first.disconnect.assert_called_once()
        assert _wait_until(lambda: second.run.called)
        sensor.close()

    def test_terminal_error_recorded(self):
        boom = RuntimeError("bug")
        loop = _finished_loop(result=LoopResult(stopped=False, error=boom))
        sensor = CoolantSensor(_channel(), loop_factory=lambda: loop)
        assert _wait_until(lambda: sensor.last_result is not None)
        assert sensor.last_result.error is boom
        sensor.close()


class TestClose:

    def test_close_bounded_when_thread_stuck(self):
        transport = BlockingTransport()
        sensor = CoolantSensor(
            _channel(),
            loop_factory=lambda: SensorPollLoop(_channel(), TransportFactory(transport)),
            join_timeout_s=0.2,
        )
        try:
            assert transport.entered.wait(2.0)
            started = time.monotonic()
            sensor.close()
            elapsed = time.monotonic() - started
            assert elapsed < 1.0
            assert not transport.is_open
            assert sensor.value is None
        finally:
            transport.release.set()

    def test_close_clears_value(self):
        sensor = CoolantSensor(_channel(), loop_factory=lambda: _finished_loop(reading=20.0))
        assert _wait_until(lambda: not sensor.is_running)
        assert sensor.value == 20.0
        sensor.close()
        assert sensor.value is None

    def test_close_idempotent(self):
        sensor = CoolantSensor(_channel(), loop_factory=lambda: _finished_loop())
        sensor.close()
        sensor.close()
        assert not sensor.is_running

    def test_close_without_start(self):
        CoolantSensor(_channel(), autostart=False).close()
