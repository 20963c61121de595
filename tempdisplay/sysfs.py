#
# This file is part of the tempdisplay project
#
# Copyright (c) 2023 Tiago Coutinho
# Distributed under the GPLv3 license. See LICENSE for more info.

import functools
import os
import pathlib

from .types import Callable, Iterable, Optional, Self

SYSFS_ENV = "TEMPDISPLAY_SYSFS"


def mount_path() -> pathlib.Path:
    """sysfs mount point. Can be redirected with the TEMPDISPLAY_SYSFS environment variable"""
    return pathlib.Path(os.environ.get(SYSFS_ENV) or "/sys")


def class_path(name: str) -> pathlib.Path:
    return mount_path() / "class" / name


def is_available(name: str) -> bool:
    """True if the given sysfs class is present on this system"""
    return class_path(name).is_dir()


class Attr:
    def __init__(self, filename: Optional[str] = None, decode: Callable = str):
        self.filename = filename
        self.decode = decode

    def __set_name__(self, owner, name):
        if self.filename is None:
            self.filename = name

    def _path(self, obj):
        return obj.syspath / self.filename

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        with self._path(obj).open() as f:
            return self.decode(f.read().strip())


Str = functools.partial(Attr, decode=str)


def read_attr(path: os.PathLike, decode: Callable = str, default=None):
    """Read a single sysfs attribute file. Returns default if it does not exist"""
    path = pathlib.Path(path)
    try:
        with path.open() as f:
            return decode(f.read().strip())
    except FileNotFoundError:
        return default


class Device:
    syspath: pathlib.Path

    def __init__(self, syspath: os.PathLike):
        self.syspath = pathlib.Path(syspath)

    def __enter__(self):
        return self

    def __exit__(self, *_):
        pass

    @classmethod
    def from_syspath(cls, syspath) -> Self:
        syspath = pathlib.Path(syspath)
        if not syspath.exists():
            raise ValueError("Unknown syspath")
        syspath = syspath.resolve()
        return cls(syspath)


def iter_class_paths(name: str, pattern: str = "*") -> Iterable[pathlib.Path]:
    """Iterable of entries of the given sysfs class"""
    yield from class_path(name).glob(pattern)
