# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Constants used throughout the code.

"""


#: Address of the local ADB server
DEFAULT_ADB_HOST = '127.0.0.1'

#: Port on which the ADB server listens
DEFAULT_ADB_PORT = 5037

#: Environment variable that overrides :const:`DEFAULT_ADB_PORT`
ADB_PORT_ENV_VAR = 'ANDROID_ADB_SERVER_PORT'

#: Environment variables that may point to an Android SDK, in order of preference
SDK_ENV_VARS = ('ANDROID_SDK_ROOT', 'ANDROID_HOME', 'ANDROID_SDK')

#: Response status words
OKAY = b'OKAY'
FAIL = b'FAIL'

STATUSES = (OKAY, FAIL)

#: Size of the status word that starts every response
STATUS_SIZE = 4

#: Size of the hex length prefix on requests and responses
LENGTH_PREFIX_SIZE = 4

#: The largest command that fits in a 4 hex digit length prefix
MAX_COMMAND_LENGTH = 0xFFFF

#: Maximum amount of data requested from the socket per read
MAX_READ_SIZE = 4096

#: The ``adb version`` string is ``1.0.<server version>``
VERSION_PREFIX = '1.0.'

#: Host services
HOST_VERSION = 'host:version'
HOST_DEVICES = 'host:devices'
HOST_TRANSPORT = 'host:transport:'

#: Device services
SHELL = 'shell:'

#: The state of a device that accepts shell commands (others are e.g. ``offline`` or ``unauthorized``)
DEVICE_STATE_ONLINE = 'device'

#: Where device properties are read from
BUILD_PROP_COMMAND = 'cat /system/build.prop'

#: ``build.prop`` keys that are copied onto a :class:`~adb_host.devices.Device` under the last dotted component
BUILD_PROP_KEYS = ('ro.build.version.release',
                   'ro.build.version.sdk',
                   'ro.product.brand',
                   'ro.product.device',
                   'ro.product.manufacturer',
                   'ro.product.model',
                   'ro.product.name')

BUILD_PROP_MODEL_NUMBER = 'ro.product.model.internal'
BUILD_PROP_GENYMOTION = 'ro.genymotion.version'
BUILD_PROP_ABI_PREFIX = 'ro.product.cpu.abi'

#: Serial numbers of AVD emulators look like ``emulator-5554``
EMULATOR_SERIAL_PREFIX = 'emulator-'
