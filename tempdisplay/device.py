#
# This file is part of the tempdisplay project
#
# Copyright (c) 2023 Tiago Coutinho
# Distributed under the GPLv3 license. See LICENSE for more info.

import contextlib

from .types import Optional, PathLike, Self


class ReentrantOpen(contextlib.AbstractContextManager):
    """Base for a reusable, reentrant (but not thread safe) open/close context manager"""

    def __init__(self):
        self._context_level = 0

    def __enter__(self) -> Self:
        if not self._context_level:
            self.open()
        self._context_level += 1
        return self

    def __exit__(self, *exc):
        self._context_level -= 1
        if not self._context_level:
            self.close()

    def open(self):
        """Mandatory override for concrete sub-class"""
        raise NotImplementedError

    def close(self):
        """Mandatory override for concrete sub-class"""
        raise NotImplementedError


def device_number(path: PathLike) -> Optional[int]:
    """Retrieves device number from a path like. Example: gives 3 for /sys/class/hwmon/hwmon3"""
    num = ""
    for c in str(path)[::-1]:
        if c.isdigit():
            num = c + num
        else:
            break
    return int(num) if num else None
