#
# This file is part of the tempdisplay project
#
# Copyright (c) 2023 Tiago Coutinho
# Distributed under the GPLv3 license. See LICENSE for more info.

import pathlib

import pytest

from tempdisplay.sysfs import SYSFS_ENV


class FakeSysfs:
    """A sysfs like tree with hwmon devices under a temporary directory"""

    def __init__(self, root: pathlib.Path):
        self.root = root
        self.hwmon = root / "class" / "hwmon"
        self.hwmon.mkdir(parents=True)

    def add(self, index, name, **files):
        path = self.hwmon / f"hwmon{index}"
        path.mkdir()
        (path / "name").write_text(f"{name}\n")
        for filename, value in files.items():
            (path / filename).write_text(f"{value}\n")
        return path


@pytest.fixture
def sysfs(tmp_path, monkeypatch):
    monkeypatch.setenv(SYSFS_ENV, str(tmp_path))
    return FakeSysfs(tmp_path)


@pytest.fixture
def desktop(sysfs):
    """AMD CPU with an integrated intel GPU and a discrete AMD GPU"""
    sysfs.add(0, "acpitz", temp1_input=27800)
    sysfs.add(1, "i915", temp1_input=51000)
    sysfs.add(
        2,
        "k10temp",
        temp1_input=72460,
        temp1_label="Tctl",
        temp2_input=69125,
        temp2_label="Tdie",
        temp3_input=61000,
        temp3_label="Tccd1",
    )
    sysfs.add(3, "amdgpu", temp1_input=65340, temp1_label="edge", temp2_input=70000, temp2_label="junction")
    return sysfs
