#
# This file is part of the tempdisplay project
#
# Copyright (c) 2023 Tiago Coutinho
# Distributed under the GPLv3 license. See LICENSE for more info.

"""
Poll loop: read CPU and GPU temperatures, send them to the display, sleep.

Each successful cycle writes one line with the format `CPU:72.5,GPU:65.3\\n`.
Nothing is written when one of the temperatures is not available.

```python
import asyncio

from tempdisplay.config import MonitorConfig
from tempdisplay.monitor import Monitor, open_resources

config = MonitorConfig(address="/dev/ttyACM0", poll_interval_ms=2000)

async def main():
    with open_resources(config) as (provider, transport):
        monitor = Monitor.from_config(config, provider, transport)
        await monitor.run()

asyncio.run(main())
```
"""

import asyncio
import contextlib
import enum
import logging

from .config import DEFAULT_POLL_INTERVAL_MS, MonitorConfig
from .hwmon import HwmonProvider
from .sensor import Category, SensorReader, SensorReading
from .transport import SerialTransport
from .types import Optional
from .util import single

# seconds to wait after a failed cycle
BACKOFF = 1.0

log = logging.getLogger(__name__)


class State(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


def format_line(cpu: float, gpu: float) -> str:
    """Serial line for the given temperatures (always one decimal digit)"""
    return f"CPU:{single(cpu):.1f},GPU:{single(gpu):.1f}\n"


class Monitor:
    """
    Cancellable poll loop. Only one run() per monitor.

    Cancellation is cooperative: stop() is observed at the top of each
    cycle and while sleeping. A sensor read or serial write in progress
    is allowed to finish.
    """

    def __init__(
        self,
        reader: SensorReader,
        transport: SerialTransport,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        backoff: float = BACKOFF,
    ):
        self.reader = reader
        self.transport = transport
        self.poll_interval = poll_interval_ms / 1000
        self.backoff = backoff
        self.state = State.IDLE
        self.cycles = 0
        self.errors = 0
        self._stop = asyncio.Event()

    def __repr__(self):
        return f"<{type(self).__name__} state={self.state.value} cycles={self.cycles} errors={self.errors}>"

    @classmethod
    def from_config(cls, config: MonitorConfig, provider: HwmonProvider, transport: SerialTransport, **kwargs):
        reader = SensorReader(provider, config.preferences)
        return cls(reader, transport, config.poll_interval_ms, **kwargs)

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self):
        """Request the loop to stop. Safe to call at any time, any number of times"""
        if self.state == State.RUNNING:
            log.info("stopping monitor")
            self.state = State.STOPPING
        self._stop.set()

    async def read(self) -> tuple[Optional[SensorReading], Optional[SensorReading]]:
        """Read CPU and GPU concurrently. Returns (or raises) only when both reads are done"""
        results = await asyncio.gather(
            asyncio.to_thread(self.reader.read_temperature, Category.CPU),
            asyncio.to_thread(self.reader.read_temperature, Category.GPU),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return tuple(results)

    async def poll(self) -> Optional[str]:
        """
        Execute one poll cycle (without the sleep).
        Returns the line sent or None if a temperature was missing.
        """
        cpu, gpu = await self.read()
        if cpu is None or gpu is None:
            log.debug("skipping cycle: cpu=%s gpu=%s", cpu, gpu)
            return None
        line = format_line(cpu.celsius, gpu.celsius)
        self.transport.write_line(line)
        log.info("Sent: %s", line.rstrip())
        return line

    async def _sleep(self, seconds: float):
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop.wait(), seconds)

    async def run(self):
        """Run poll cycles until stop() is called or the task is cancelled"""
        if self.state != State.IDLE:
            raise RuntimeError(f"monitor cannot run (state is {self.state.value})")
        self.state = State.RUNNING
        log.info("monitoring temperatures every %.1fs", self.poll_interval)
        try:
            while not self.stopped:
                try:
                    await self.poll()
                    delay = self.poll_interval
                except Exception as error:
                    self.errors += 1
                    log.error("Error monitoring temperatures: %s", error)
                    log.debug("cycle error details", exc_info=error)
                    delay = self.backoff
                self.cycles += 1
                await self._sleep(delay)
        finally:
            self.state = State.STOPPED
            log.info("monitor stopped after %d cycle(s)", self.cycles)


@contextlib.contextmanager
def open_resources(config: MonitorConfig, provider_class=HwmonProvider, transport_class=SerialTransport):
    """
    Acquire the hwmon provider and the serial transport.
    On exit the transport is closed first, then the provider, on every exit path.
    A transport that fails to open stays closed (writes are dropped).
    """
    with contextlib.ExitStack() as stack:
        provider = stack.enter_context(provider_class())
        transport = stack.enter_context(transport_class(config.address, config.baudrate))
        yield provider, transport
