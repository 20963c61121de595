#
# This file is part of the tempdisplay project
#
# Copyright (c) 2023 Tiago Coutinho
# Distributed under the GPLv3 license. See LICENSE for more info.

"""
Temperature lookup per hardware category.

```python
from tempdisplay.hwmon import HwmonProvider
from tempdisplay.sensor import Category, SensorReader

with HwmonProvider() as provider:
    reader = SensorReader(provider, {Category.CPU: ("Core", "Tdie")})
    reading = reader.read_temperature(Category.CPU)
    if reading is not None:
        print(f"{reading.label}: {reading.celsius:.1f} C")
```
"""

import enum
import logging

from .hwmon import HardwareType, HwmonDevice, HwmonProvider, Sensor, SensorType
from .types import Mapping, NamedTuple, Optional, Sequence
from .util import single

log = logging.getLogger(__name__)


class Category(enum.Enum):
    CPU = "CPU"
    GPU = "GPU"


# hardware types accepted for each category, first device of any of them wins
CATEGORY_TYPES = {
    Category.CPU: (HardwareType.CPU,),
    Category.GPU: (HardwareType.GPU_NVIDIA, HardwareType.GPU_AMD),
}


class SensorReading(NamedTuple):
    category: Category
    label: str
    celsius: float
    present: bool = True


def select_sensor(sensors: Sequence[Sensor], preferences: Sequence[str] = ()) -> Optional[Sensor]:
    """
    First temperature sensor with a value. If preferences are given, only
    sensors whose name contains one of the preferred substrings qualify.
    """
    for sensor in sensors:
        if sensor.type != SensorType.TEMPERATURE or sensor.value is None:
            continue
        if not preferences or any(text in sensor.name for text in preferences):
            return sensor
    return None


def make_reading(category: Category, device: HwmonDevice, sensor: Sensor) -> SensorReading:
    return SensorReading(category, f"{device.name} {sensor.name}", single(sensor.value))


class SensorReader:
    """
    Reads the temperature of a hardware category from the given provider.

    The provider is owned by the caller and must be open while reading.
    """

    def __init__(self, provider: HwmonProvider, preferences: Optional[Mapping[Category, Sequence[str]]] = None):
        self.provider = provider
        self.preferences = {category: tuple(texts) for category, texts in (preferences or {}).items()}

    def device(self, category: Category) -> Optional[HwmonDevice]:
        return self.provider.find(*CATEGORY_TYPES[category])

    def read_temperature(self, category: Category) -> Optional[SensorReading]:
        """Current temperature of the category or None if no device or sensor was found"""
        device = self.device(category)
        if device is None:
            log.debug("no %s device found", category.value)
            return None
        device.refresh()
        sensor = select_sensor(device.sensors, self.preferences.get(category, ()))
        if sensor is None:
            log.debug("no %s temperature sensor found on %s", category.value, device.name)
            return None
        return make_reading(category, device, sensor)

    def read_all(self, category: Category) -> list[SensorReading]:
        """All present temperatures of the category device"""
        device = self.device(category)
        if device is None:
            return []
        device.refresh()
        return [
            make_reading(category, device, sensor) for sensor in device.temperatures() if sensor.value is not None
        ]
