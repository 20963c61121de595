#
# This file is part of the tempdisplay project
#
# Copyright (c) 2023 Tiago Coutinho
# Distributed under the GPLv3 license. See LICENSE for more info.

"""
Human friendly interface to the linux hardware monitoring (hwmon) subsystem.

Each hwmon device is exposed by the kernel as a directory with one file
per sensor channel (`temp1_input`, `fan2_input`, ...). The
[`HwmonProvider`][tempdisplay.hwmon.HwmonProvider] owns the list of
devices found on the system:

```python
with HwmonProvider() as provider:
    for device in provider.enumerate_devices():
        device.refresh()
        for sensor in device.sensors:
            print(f"{device.name} {sensor.name}: {sensor.value}")
```
"""

import enum
import logging
import pathlib
import re

from .device import ReentrantOpen, device_number
from .error import ProviderError
from .sysfs import Device, Str, class_path, is_available, iter_class_paths, read_attr
from .types import Callable, Iterable, NamedTuple, Optional, Union
from .util import make_find

HWMON = "hwmon"

log = logging.getLogger(__name__)


class HardwareType(enum.Enum):
    CPU = "cpu"
    GPU_NVIDIA = "gpu-nvidia"
    GPU_AMD = "gpu-amd"
    GPU_INTEL = "gpu-intel"
    OTHER = "other"


class SensorType(enum.Enum):
    TEMPERATURE = "temp"
    FAN = "fan"
    VOLTAGE = "in"
    POWER = "power"


# hwmon driver name -> hardware type
DRIVER_TYPES = {
    "coretemp": HardwareType.CPU,
    "k10temp": HardwareType.CPU,
    "k8temp": HardwareType.CPU,
    "zenpower": HardwareType.CPU,
    "cpu_thermal": HardwareType.CPU,
    "via_cputemp": HardwareType.CPU,
    "nouveau": HardwareType.GPU_NVIDIA,
    "nvidia": HardwareType.GPU_NVIDIA,
    "amdgpu": HardwareType.GPU_AMD,
    "radeon": HardwareType.GPU_AMD,
    "i915": HardwareType.GPU_INTEL,
    "xe": HardwareType.GPU_INTEL,
}

# raw sysfs unit per sensor type (milli-celsius, rpm, milli-volt, micro-watt)
SCALE = {
    SensorType.TEMPERATURE: 1_000,
    SensorType.FAN: 1,
    SensorType.VOLTAGE: 1_000,
    SensorType.POWER: 1_000_000,
}

_CHANNEL = re.compile(r"^(?P<type>temp|fan|in|power)(?P<channel>\d+)_input$")


class Sensor(NamedTuple):
    type: SensorType
    name: str
    value: Optional[float]


def _read_input(path: pathlib.Path, scale: int) -> Optional[float]:
    try:
        with path.open() as f:
            return int(f.read().strip()) / scale
    except OSError as error:
        # ENODATA, EAGAIN, EPERM (suspended device), ...: no value for this channel right now
        log.debug("could not read %s: %s", path, error)
        return None
    except ValueError:
        return None


class HwmonDevice(Device):
    """
    Hardware monitoring device

    Attributes:
        name (str): driver name (ex: coretemp, k10temp, amdgpu)
        index (int): hwmon number (3 for hwmon3)
        hardware_type (HardwareType): what kind of hardware the driver monitors
        sensors (list[Sensor]): sensor values from the last refresh
    """

    name = Str("name")

    def __init__(self, syspath):
        super().__init__(syspath)
        self.index = device_number(self.syspath.name)
        self.sensors: list[Sensor] = []

    def __repr__(self):
        return f"<{type(self).__name__} {self.syspath.name} name={self.name}>"

    @classmethod
    def from_id(cls, n):
        return cls.from_syspath(class_path(HWMON) / f"hwmon{n}")

    @property
    def hardware_type(self) -> HardwareType:
        return DRIVER_TYPES.get(self.name, HardwareType.OTHER)

    def iter_channels(self) -> Iterable[tuple[SensorType, int, pathlib.Path]]:
        """Iterate over (type, channel number, input path) of every sensor of this device"""
        for path in self.syspath.glob("*_input"):
            match = _CHANNEL.match(path.name)
            if match:
                yield SensorType(match["type"]), int(match["channel"]), path

    def refresh(self) -> list[Sensor]:
        """Read the current value of every sensor. Returns the new sensor list"""
        order = list(SensorType)
        channels = sorted(self.iter_channels(), key=lambda item: (order.index(item[0]), item[1]))
        sensors = []
        for sensor_type, channel, path in channels:
            prefix = f"{sensor_type.value}{channel}"
            label = read_attr(self.syspath / f"{prefix}_label", default=prefix)
            sensors.append(Sensor(sensor_type, label, _read_input(path, SCALE[sensor_type])))
        self.sensors = sensors
        return sensors

    def temperatures(self) -> list[Sensor]:
        """Temperature sensors from the last refresh"""
        return [sensor for sensor in self.sensors if sensor.type == SensorType.TEMPERATURE]


def iter_hwmon_paths() -> Iterable[pathlib.Path]:
    """Returns an iterator over all hwmon device paths"""
    yield from iter_class_paths(HWMON, "hwmon*")


def iter_hwmon_devices() -> Iterable[HwmonDevice]:
    """Returns an iterator over all hwmon devices"""
    return (HwmonDevice.from_syspath(path) for path in iter_hwmon_paths())


_find = make_find(iter_hwmon_devices)


def find(
    find_all: bool = False, custom_match: Optional[Callable] = None, **kwargs
) -> Union[HwmonDevice, Iterable[HwmonDevice], None]:
    """
    If find_all is False:

    Find a device following the criteria matched by custom_match and kwargs.
    If no device is found matching the criteria it returns None.
    Default is to return a random first device.

    If find_all is True:

    The result is an iterator.
    Find all devices that match the criteria custom_match and kwargs.
    If no device is found matching the criteria it returns an empty iterator.
    Default is to return an iterator over all hwmon devices found on the system.
    """
    return _find(find_all, custom_match, **kwargs)


class HwmonProvider(ReentrantOpen):
    """
    Owner of the hwmon device list.

    Opening scans the system for hwmon devices. Opening fails with
    ProviderError if the hwmon class is not available (ex: not linux or
    sysfs not mounted).
    """

    def __init__(self):
        super().__init__()
        self._devices: Optional[list[HwmonDevice]] = None

    def __repr__(self):
        return f"<{type(self).__name__} closed={self.closed}>"

    @property
    def closed(self) -> bool:
        return self._devices is None

    def open(self):
        if not self.closed:
            return
        if not is_available(HWMON):
            raise ProviderError(f"hwmon not available at {class_path(HWMON)}")
        devices = sorted(iter_hwmon_devices(), key=lambda dev: dev.index)
        self._devices = devices
        log.info("found %d hwmon device(s): %s", len(devices), ", ".join(dev.name for dev in devices))

    def close(self):
        if not self.closed:
            log.info("closing hwmon provider")
            self._devices = None

    def enumerate_devices(self) -> list[HwmonDevice]:
        if self.closed:
            raise ProviderError("hwmon provider is closed")
        return list(self._devices)

    def find(self, *hardware_types: HardwareType) -> Optional[HwmonDevice]:
        """First device (in hwmon order) of any of the given hardware types"""
        for device in self.enumerate_devices():
            if device.hardware_type in hardware_types:
                return device
        return None
