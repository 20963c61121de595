#
# This file is part of the tempdisplay project
#
# Copyright (c) 2023 Tiago Coutinho
# Distributed under the GPLv3 license. See LICENSE for more info.


class TempDisplayError(Exception):
    """Base for all errors raised by tempdisplay"""


class ProviderError(TempDisplayError):
    """The hardware monitoring provider is unavailable or misbehaved"""
