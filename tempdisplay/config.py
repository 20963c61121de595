#
# This file is part of the tempdisplay project
#
# Copyright (c) 2023 Tiago Coutinho
# Distributed under the GPLv3 license. See LICENSE for more info.

import dataclasses
import types

from .sensor import Category
from .transport import BAUDRATE
from .types import Mapping, Optional, Sequence

DEFAULT_ADDRESS = "/dev/ttyACM0"
DEFAULT_POLL_INTERVAL_MS = 10_000
DEFAULT_PREFERENCES = {Category.CPU: ("Core", "Tdie")}


@dataclasses.dataclass(frozen=True)
class MonitorConfig:
    """
    Monitor settings. Immutable once created.

    Attributes:
        poll_interval_ms (int): time between poll cycles (>= 0)
        address (str): serial port (ex: /dev/ttyACM0). None means console only
        preferences (Mapping[Category, Sequence[str]]): per category list of
            preferred sensor name substrings
        baudrate (int): serial line speed
    """

    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    address: Optional[str] = DEFAULT_ADDRESS
    preferences: Mapping[Category, Sequence[str]] = dataclasses.field(
        default_factory=lambda: dict(DEFAULT_PREFERENCES)
    )
    baudrate: int = BAUDRATE

    def __post_init__(self):
        if self.poll_interval_ms < 0:
            raise ValueError(f"poll interval must be >= 0 (got {self.poll_interval_ms})")
        if self.baudrate <= 0:
            raise ValueError(f"baudrate must be > 0 (got {self.baudrate})")
        preferences = {Category(category): tuple(texts) for category, texts in self.preferences.items()}
        object.__setattr__(self, "address", self.address or None)
        object.__setattr__(self, "preferences", types.MappingProxyType(preferences))

    @property
    def poll_interval(self) -> float:
        """poll interval in seconds"""
        return self.poll_interval_ms / 1000
