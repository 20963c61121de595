#
# This file is part of the tempdisplay project
#
# Copyright (c) 2023 Tiago Coutinho
# Distributed under the GPLv3 license. See LICENSE for more info.

"""
Serial line to the display microcontroller.

The line is best effort: if the port cannot be opened the transport stays
closed and every write is silently dropped.

```python
with SerialTransport("/dev/ttyACM0") as transport:
    transport.write_line("CPU:45.0,GPU:38.5\\n")
```
"""

import logging

import serial
import serial.tools.list_ports

from .device import ReentrantOpen
from .types import Iterable, Optional

BAUDRATE = 115200

log = logging.getLogger(__name__)


def iter_port_names() -> Iterable[str]:
    """Names of all serial ports discoverable on this system"""
    yield from sorted(port.device for port in serial.tools.list_ports.comports())


class SerialTransport(ReentrantOpen):
    """
    Optionally connected serial line (8 data bits, no parity, 1 stop bit).

    An empty address means console only: the line is never opened.
    """

    def __init__(self, address: Optional[str], baudrate: int = BAUDRATE, serial_class=None):
        super().__init__()
        self.address = address or None
        self.baudrate = baudrate
        self.serial_class = serial_class or serial.Serial
        self.log = log.getChild(self.address.rsplit("/", 1)[-1]) if self.address else log
        self._port = None

    def __repr__(self):
        return f"<{type(self).__name__} address={self.address}, closed={self.closed}>"

    @property
    def closed(self) -> bool:
        return self._port is None or not self._port.is_open

    def open(self) -> bool:
        """Open the line if not already open. Returns True if the line is open"""
        if not self.closed:
            return True
        if self.address is None:
            self.log.info("no serial address given: console only")
            return False
        try:
            self._port = self.serial_class(
                port=self.address,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
            )
        except (serial.SerialException, OSError, ValueError) as error:
            self._port = None
            self.log.error("Failed to open serial port %s: %s", self.address, error)
            self.log.error("Available ports: %s", ", ".join(iter_port_names()) or "none")
            return False
        self.log.info("connected to %s", self.address)
        return True

    def close(self):
        """Close the line if open. Safe to call any number of times"""
        port, self._port = self._port, None
        if port is not None and port.is_open:
            self.log.info("closing %s", self.address)
            port.close()
            self.log.info("closed %s", self.address)

    def write_line(self, text: str) -> bool:
        """
        Write text (which should be newline terminated) to the line.
        Returns False without writing if the line is closed.
        """
        if self.closed:
            return False
        self._port.write(text.encode("ascii"))
        self._port.flush()
        return True
