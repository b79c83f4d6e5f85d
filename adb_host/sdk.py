# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Locate the ``adb`` executable.

"""


import logging
import os
import shutil

import aiofiles.os

from . import constants
from .exceptions import AdbExecutableNotFoundError


_LOGGER = logging.getLogger(__name__)

ADB_EXECUTABLE = 'adb.exe' if os.name == 'nt' else 'adb'


def sdk_adb_path(sdk_path):
    """Get the path where an Android SDK keeps ``adb``.

    Parameters
    ----------
    sdk_path : str
        The root of the Android SDK; ``~`` is expanded

    Returns
    -------
    str
        ``<sdk_path>/platform-tools/adb``

    """
    return os.path.join(os.path.abspath(os.path.expanduser(sdk_path)), 'platform-tools', ADB_EXECUTABLE)


async def find_adb(adb_path=None, sdk_path=None):
    """Find the ``adb`` executable.

    The candidates, in order, are:

    1. ``adb_path``
    2. ``<sdk_path>/platform-tools/adb``
    3. ``platform-tools/adb`` in the SDKs named by the ``ANDROID_SDK_ROOT``, ``ANDROID_HOME``, and ``ANDROID_SDK`` environment variables
    4. ``adb`` on the ``PATH``


    Parameters
    ----------
    adb_path : str, None
        An explicit path to ``adb``
    sdk_path : str, None
        The root of an Android SDK

    Returns
    -------
    str
        The path to ``adb``

    Raises
    ------
    adb_host.exceptions.AdbExecutableNotFoundError
        ``adb`` could not be found

    """
    candidates = []
    if adb_path:
        candidates.append(os.path.abspath(os.path.expanduser(adb_path)))

    sdk_paths = [sdk_path] + [os.environ.get(env_var) for env_var in constants.SDK_ENV_VARS]
    candidates.extend(sdk_adb_path(path) for path in sdk_paths if path)

    for candidate in candidates:
        if await aiofiles.os.path.isfile(candidate):
            _LOGGER.debug("Found adb at %s", candidate)
            return candidate

    on_path = shutil.which(ADB_EXECUTABLE)
    if on_path:
        _LOGGER.debug("Found adb on the PATH at %s", on_path)
        return on_path

    raise AdbExecutableNotFoundError('Unable to find {} (tried {})'.format(ADB_EXECUTABLE, ', '.join(candidates + ['PATH'])))
