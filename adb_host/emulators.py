# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Decide whether a device is an emulator.

"""


from collections import namedtuple

from . import constants


#: ``port`` is the emulator's console port
EmulatorInfo = namedtuple('EmulatorInfo', ['id', 'type', 'port'])


class EmulatorManager(object):
    """Recognize AVD emulators by their ``emulator-<console port>`` serial numbers.

    Subclasses can look emulators up elsewhere (e.g., Genymotion via VirtualBox) by overriding
    :meth:`EmulatorManager.is_emulator`.

    """
    async def is_emulator(self, device_id):
        """Determine whether a device is an emulator.

        Parameters
        ----------
        device_id : str
            The serial number of the device

        Returns
        -------
        EmulatorInfo, bool
            Information about the emulator, or ``False`` if the device is not an emulator

        """
        if device_id.startswith(constants.EMULATOR_SERIAL_PREFIX):
            port = device_id[len(constants.EMULATOR_SERIAL_PREFIX):]
            if port.isdigit():
                return EmulatorInfo(device_id, 'avd', int(port))

        return False
