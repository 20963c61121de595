#
# This file is part of the tempdisplay project
#
# Copyright (c) 2023 Tiago Coutinho
# Distributed under the GPLv3 license. See LICENSE for more info.

import asyncio
import logging
from unittest import mock

import pytest
import serial

from tempdisplay.config import MonitorConfig
from tempdisplay.error import ProviderError
from tempdisplay.monitor import BACKOFF, Monitor, State, format_line, open_resources
from tempdisplay.sensor import Category, SensorReading
from tempdisplay.transport import SerialTransport


class Reader:
    """Sensor reader replaying a script of (cpu, gpu) temperatures. None means absent"""

    def __init__(self, *script):
        self.script = list(script)
        self.calls = []

    def read_temperature(self, category):
        self.calls.append(category)
        cycle = (len(self.calls) - 1) // 2
        cpu, gpu = self.script[min(cycle, len(self.script) - 1)]
        value = cpu if category == Category.CPU else gpu
        if isinstance(value, Exception):
            raise value
        if value is None:
            return None
        return SensorReading(category, f"{category.value} sensor", value)


@pytest.fixture
def transport():
    transport = mock.Mock(spec=SerialTransport)
    transport.write_line.return_value = True
    return transport


async def wait_for_cycles(monitor, n, timeout=1):
    async def wait():
        while monitor.cycles < n:
            await asyncio.sleep(0.001)

    await asyncio.wait_for(wait(), timeout)


@pytest.mark.parametrize(
    "cpu, gpu, expected",
    [
        (72.46, 65.34, "CPU:72.5,GPU:65.3\n"),
        (45.0, 38.0, "CPU:45.0,GPU:38.0\n"),
        (100.04, 9.96, "CPU:100.0,GPU:10.0\n"),
        (0.0, 0.25, "CPU:0.0,GPU:0.2\n"),
    ],
)
def test_format_line(cpu, gpu, expected):
    assert format_line(cpu, gpu) == expected


@pytest.mark.asyncio
async def test_poll(transport, caplog):
    monitor = Monitor(Reader((72.46, 65.34)), transport)
    with caplog.at_level(logging.INFO):
        line = await monitor.poll()
    assert line == "CPU:72.5,GPU:65.3\n"
    transport.write_line.assert_called_once_with("CPU:72.5,GPU:65.3\n")
    assert "Sent: CPU:72.5,GPU:65.3" in caplog.text


@pytest.mark.asyncio
async def test_poll_reads_both_categories(transport):
    reader = Reader((50.0, 40.0))
    await Monitor(reader, transport).poll()
    assert sorted(reader.calls, key=lambda c: c.value) == [Category.CPU, Category.GPU]


@pytest.mark.asyncio
@pytest.mark.parametrize("cpu, gpu", [(None, 40.0), (50.0, None), (None, None)])
async def test_poll_absent(transport, cpu, gpu):
    monitor = Monitor(Reader((cpu, gpu)), transport)
    assert await monitor.poll() is None
    transport.write_line.assert_not_called()


@pytest.mark.asyncio
async def test_poll_with_closed_transport(caplog):
    serial_class = mock.Mock(side_effect=serial.SerialException("no such port"))
    transport = SerialTransport("/dev/ttyACM9", serial_class=serial_class)
    with mock.patch("tempdisplay.transport.iter_port_names", return_value=iter(())):
        transport.open()
    monitor = Monitor(Reader((72.46, 65.34), (50.0, 40.0)), transport)
    with caplog.at_level(logging.INFO):
        assert await monitor.poll() == "CPU:72.5,GPU:65.3\n"
        assert await monitor.poll() == "CPU:50.0,GPU:40.0\n"
    assert "Sent: CPU:72.5,GPU:65.3" in caplog.text
    assert "Sent: CPU:50.0,GPU:40.0" in caplog.text


@pytest.mark.asyncio
async def test_run_and_stop(transport):
    monitor = Monitor(Reader((50.0, 40.0), (51.0, None), (52.0, 42.0)), transport, poll_interval_ms=0)
    assert monitor.state == State.IDLE
    task = asyncio.create_task(monitor.run())
    await wait_for_cycles(monitor, 3)
    assert monitor.state == State.RUNNING
    monitor.stop()
    await asyncio.wait_for(task, 1)
    assert monitor.state == State.STOPPED
    assert monitor.errors == 0
    lines = [call.args[0] for call in transport.write_line.call_args_list]
    assert lines[:2] == ["CPU:50.0,GPU:40.0\n", "CPU:52.0,GPU:42.0\n"]


@pytest.mark.asyncio
async def test_stop_while_sleeping(transport):
    monitor = Monitor(Reader((50.0, 40.0)), transport, poll_interval_ms=60_000)
    task = asyncio.create_task(monitor.run())
    await wait_for_cycles(monitor, 1)
    monitor.stop()
    monitor.stop()
    await asyncio.wait_for(task, 1)
    assert monitor.cycles == 1
    assert monitor.state == State.STOPPED
    transport.write_line.assert_called_once()


@pytest.mark.asyncio
async def test_stop_before_run(transport):
    monitor = Monitor(Reader((50.0, 40.0)), transport)
    monitor.stop()
    await asyncio.wait_for(monitor.run(), 1)
    assert monitor.cycles == 0
    assert monitor.state == State.STOPPED
    transport.write_line.assert_not_called()


@pytest.mark.asyncio
async def test_cancel(transport):
    monitor = Monitor(Reader((50.0, 40.0)), transport, poll_interval_ms=60_000)
    task = asyncio.create_task(monitor.run())
    await wait_for_cycles(monitor, 1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert monitor.state == State.STOPPED


@pytest.mark.asyncio
async def test_run_once_only(transport):
    monitor = Monitor(Reader((50.0, 40.0)), transport, poll_interval_ms=60_000)
    task = asyncio.create_task(monitor.run())
    await wait_for_cycles(monitor, 1)
    with pytest.raises(RuntimeError):
        await monitor.run()
    monitor.stop()
    await task
    with pytest.raises(RuntimeError):
        await monitor.run()


@pytest.mark.asyncio
async def test_transient_fault(transport, caplog):
    reader = Reader((ProviderError("sensor read failed"), 40.0), (50.0, 40.0))
    monitor = Monitor(reader, transport, poll_interval_ms=5000)
    delays = []

    async def sleep(delay):
        delays.append(delay)
        if len(delays) == 2:
            monitor.stop()

    with mock.patch.object(monitor, "_sleep", sleep):
        with caplog.at_level(logging.ERROR):
            await asyncio.wait_for(monitor.run(), 1)
    assert delays == [BACKOFF, 5.0]
    assert BACKOFF == 1.0
    assert monitor.errors == 1
    assert monitor.cycles == 2
    assert "Error monitoring temperatures: sensor read failed" in caplog.text
    transport.write_line.assert_called_once_with("CPU:50.0,GPU:40.0\n")


@pytest.mark.asyncio
async def test_write_fault_does_not_stop(transport):
    writes = []

    def write_line(line):
        writes.append(line)
        if len(writes) == 1:
            raise serial.SerialException("write timeout")
        return True

    transport.write_line.side_effect = write_line
    monitor = Monitor(Reader((50.0, 40.0)), transport, poll_interval_ms=0, backoff=0)
    task = asyncio.create_task(monitor.run())
    await wait_for_cycles(monitor, 3)
    monitor.stop()
    await asyncio.wait_for(task, 1)
    assert monitor.errors == 1
    assert len(writes) >= 3


def test_from_config(transport):
    config = MonitorConfig(poll_interval_ms=2500, preferences={Category.GPU: ["edge"]})
    provider = mock.Mock()
    monitor = Monitor.from_config(config, provider, transport)
    assert monitor.poll_interval == 2.5
    assert monitor.reader.provider is provider
    assert monitor.reader.preferences == {Category.GPU: ("edge",)}
    assert monitor.transport is transport


class Resource:
    def __init__(self, events, name, fail=False):
        self.events = events
        self.name = name
        self.fail = fail

    def __enter__(self):
        if self.fail:
            raise ProviderError(f"{self.name} failed")
        self.events.append(f"open {self.name}")
        return self

    def __exit__(self, *exc):
        self.events.append(f"close {self.name}")


def test_open_resources_order():
    events = []
    config = MonitorConfig(address="/dev/ttyACM0")
    with open_resources(
        config,
        provider_class=lambda: Resource(events, "provider"),
        transport_class=lambda address, baudrate: Resource(events, address),
    ) as (provider, transport):
        assert transport.name == "/dev/ttyACM0"
        events.append("run")
    assert events == ["open provider", "open /dev/ttyACM0", "run", "close /dev/ttyACM0", "close provider"]


def test_open_resources_error_in_body():
    events = []
    with pytest.raises(RuntimeError):
        with open_resources(
            MonitorConfig(),
            provider_class=lambda: Resource(events, "provider"),
            transport_class=lambda address, baudrate: Resource(events, "transport"),
        ):
            raise RuntimeError("boom")
    assert events == ["open provider", "open transport", "close transport", "close provider"]


def test_open_resources_provider_failure():
    events = []
    with pytest.raises(ProviderError):
        with open_resources(
            MonitorConfig(),
            provider_class=lambda: Resource(events, "provider", fail=True),
            transport_class=lambda address, baudrate: Resource(events, "transport"),
        ):
            pass
    assert events == []


def test_open_resources_transport_unavailable(desktop):
    serial_class = mock.Mock(side_effect=serial.SerialException("no such port"))
    config = MonitorConfig(address="/dev/ttyACM9")

    def transport_class(address, baudrate):
        return SerialTransport(address, baudrate, serial_class=serial_class)

    with mock.patch("tempdisplay.transport.iter_port_names", return_value=iter(())):
        with open_resources(config, transport_class=transport_class) as (provider, transport):
            assert not provider.closed
            assert transport.closed
    assert provider.closed
    assert transport.closed


@pytest.mark.asyncio
async def test_stop_closes_unavailable_transport_once(desktop):
    serial_class = mock.Mock(side_effect=serial.SerialException("no such port"))
    config = MonitorConfig(poll_interval_ms=60_000, address="/dev/ttyACM9")

    def transport_class(address, baudrate):
        return SerialTransport(address, baudrate, serial_class=serial_class)

    real_close = SerialTransport.close
    with mock.patch("tempdisplay.transport.iter_port_names", return_value=iter(())):
        with mock.patch.object(SerialTransport, "close", autospec=True, side_effect=real_close) as close:
            with open_resources(config, transport_class=transport_class) as (provider, transport):
                monitor = Monitor.from_config(config, provider, transport)
                task = asyncio.create_task(monitor.run())
                await wait_for_cycles(monitor, 1)
                monitor.stop()
                await asyncio.wait_for(task, 1)
                assert close.call_count == 0
            close.assert_called_once_with(transport)
    assert monitor.state == State.STOPPED
    assert monitor.cycles == 1
    assert monitor.errors == 0
    assert provider.closed
