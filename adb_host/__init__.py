# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""ADB host-server client.

"""


__version__ = '0.1.0'
