#
# This file is part of the tempdisplay project
#
# Copyright (c) 2023 Tiago Coutinho
# Distributed under the GPLv3 license. See LICENSE for more info.

import sys

from .cli import main

sys.exit(main())
