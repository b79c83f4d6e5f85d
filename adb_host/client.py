# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Implement the :class:`AdbClient` class, which talks to devices and emulators through the ADB server.

Commands such as ``version``, ``devices``, and ``shell`` are sent to the ADB server over a
:class:`~adb_host.connection.Connection`.  File transfers, installs, port forwarding, logcat, and
starting or stopping the server are done by running the ``adb`` executable.

* :class:`AdbClient`

    * :meth:`AdbClient._add_device_info`
    * :meth:`AdbClient._find_adb`
    * :meth:`AdbClient._list_devices`
    * :meth:`AdbClient._run_adb`
    * :meth:`AdbClient.connection`
    * :meth:`AdbClient.devices`
    * :meth:`AdbClient.forward`
    * :meth:`AdbClient.get_pid`
    * :meth:`AdbClient.install_app`
    * :meth:`AdbClient.logcat`
    * :meth:`AdbClient.pull`
    * :meth:`AdbClient.push`
    * :meth:`AdbClient.shell`
    * :meth:`AdbClient.start_app`
    * :meth:`AdbClient.start_server`
    * :meth:`AdbClient.stop_app`
    * :meth:`AdbClient.stop_server`
    * :meth:`AdbClient.version`

"""


import asyncio
import logging
import os

import aiofiles.os

from . import constants
from . import exceptions
from . import process
from .connection import Connection
from .devices import parse_build_prop, parse_devices, parse_pid
from .emulators import EmulatorManager
from .framing import ResponseShape
from .sdk import find_adb


_LOGGER = logging.getLogger(__name__)


def _check_arg(name, value):
    if not isinstance(value, str) or not value:
        raise exceptions.InvalidCommandError('Expected {} to be a non-empty string'.format(name))


def _default_port():
    port = os.environ.get(constants.ADB_PORT_ENV_VAR)
    if not port:
        return constants.DEFAULT_ADB_PORT

    try:
        return int(port)
    except ValueError:
        raise ValueError('{} must be a port number, not {!r}'.format(constants.ADB_PORT_ENV_VAR, port))


class AdbClient(object):
    """A client for the local ADB server.

    Parameters
    ----------
    host : str
        The address of the ADB server
    port : int, None
        The port on which the ADB server listens; if it is ``None``, the ``ANDROID_ADB_SERVER_PORT``
        environment variable is used, falling back to 5037
    adb_path : str, None
        The path to the ``adb`` executable; if it is ``None``, it is located via :func:`adb_host.sdk.find_adb`
    sdk_path : str, None
        The root of an Android SDK in which to look for ``adb``
    emulator_manager : EmulatorManager, None
        Decides which devices are emulators; defaults to :class:`~adb_host.emulators.EmulatorManager`
    log_callback : function, None
        Passed to every :class:`~adb_host.connection.Connection` as its diagnostic sink
    default_transport_timeout_s : float, None
        Default timeout in seconds for TCP operations, or ``None``
    process_timeout_s : float, None
        The total time in seconds to wait for ``adb`` to exit, or ``None`` to wait forever

    Attributes
    ----------
    _adb_path : str, None
        The path to the ``adb`` executable, once it is known
    _default_transport_timeout_s : float, None
        Default timeout in seconds for TCP operations, or ``None``
    _emulator_manager : EmulatorManager
        Decides which devices are emulators
    _host : str
        The address of the ADB server
    _log_callback : function, None
        Passed to every :class:`~adb_host.connection.Connection` as its diagnostic sink
    _port : int
        The port on which the ADB server listens
    _process_timeout_s : float, None
        The total time in seconds to wait for ``adb`` to exit
    _sdk_path : str, None
        The root of an Android SDK in which to look for ``adb``

    """
    def __init__(self, host=constants.DEFAULT_ADB_HOST, port=None, adb_path=None, sdk_path=None, emulator_manager=None, log_callback=None, default_transport_timeout_s=None, process_timeout_s=None):
        self._host = host
        self._port = _default_port() if port is None else port
        self._adb_path = adb_path
        self._sdk_path = sdk_path
        self._emulator_manager = emulator_manager or EmulatorManager()
        self._log_callback = log_callback
        self._default_transport_timeout_s = default_transport_timeout_s
        self._process_timeout_s = process_timeout_s

    def connection(self):
        """Create a new connection to the ADB server.

        If the server is not running, the connection starts it via :meth:`AdbClient.start_server`.

        Returns
        -------
        Connection
            A connection that has not yet been opened

        """
        return Connection(self._host, self._port, server_starter=self.start_server, log_callback=self._log_callback, default_transport_timeout_s=self._default_transport_timeout_s)

    # ======================================================================= #
    #                                                                         #
    #                            ADB server commands                          #
    #                                                                         #
    # ======================================================================= #
    async def version(self):
        """Get the version of the ADB server.

        Returns
        -------
        str
            The version, e.g., ``'1.0.41'``

        Raises
        ------
        adb_host.exceptions.InvalidResponseError
            The server's response is not a hex number

        """
        conn = self.connection()
        try:
            data = await conn.exec(constants.HOST_VERSION)
        finally:
            await conn.end()

        try:
            return constants.VERSION_PREFIX + str(int(data, 16))
        except (TypeError, ValueError):
            raise exceptions.InvalidResponseError('Invalid version response {!r}'.format(data))

    async def devices(self):
        """Get the devices and emulators that are connected to the ADB server.

        The ``build.prop`` of every online device is read concurrently, each over its own connection.

        Returns
        -------
        list[Device]
            The devices, including their ``build.prop`` information and whether they are emulators

        """
        devices = await self._list_devices()
        await asyncio.gather(*[self._add_device_info(device) for device in devices])
        return devices

    async def shell(self, device_id, cmd):
        """Run a shell command on a device.

        Note that ADB converts all ``\\n`` to ``\\r\\n``, so the output will probably be larger than
        the output on the device.

        Parameters
        ----------
        device_id : str
            The serial number of the device
        cmd : str
            The command to run; a leading ``shell:`` is removed

        Returns
        -------
        bytes
            The output of the command

        Raises
        ------
        adb_host.exceptions.InvalidCommandError
            ``device_id`` or ``cmd`` is not a non-empty string

        """
        _check_arg('device_id', device_id)
        _check_arg('cmd', cmd)

        if cmd.startswith(constants.SHELL):
            cmd = cmd[len(constants.SHELL):]

        conn = self.connection()
        try:
            await conn.exec(constants.HOST_TRANSPORT + device_id, ResponseShape.NO_PAYLOAD)
            data = await conn.exec(constants.SHELL + cmd, ResponseShape.STREAM_UNTIL_CLOSE)
        finally:
            await conn.end()

        return data or b''

    async def get_pid(self, device_id, app_id):
        """Get the pid of an app that is running on a device.

        Parameters
        ----------
        device_id : str
            The serial number of the device
        app_id : str
            The application's id

        Returns
        -------
        int
            The pid, or 0 if the app is not running

        """
        _check_arg('app_id', app_id)
        return parse_pid(await self.shell(device_id, 'ps'), app_id)

    async def start_app(self, device_id, app_id, activity):
        """Start an app's activity on a device.

        Parameters
        ----------
        device_id : str
            The serial number of the device
        app_id : str
            The application's id
        activity : str
            The name of the activity; a leading ``.`` is optional

        Returns
        -------
        bytes
            The output of ``am start``

        """
        _check_arg('app_id', app_id)
        _check_arg('activity', activity)

        if activity.startswith('.'):
            activity = activity[1:]

        return await self.shell(device_id, 'am start -n {}/.{}'.format(app_id, activity))

    async def stop_app(self, device_id, app_id):
        """Force-stop an app on a device.

        Parameters
        ----------
        device_id : str
            The serial number of the device
        app_id : str
            The application's id

        Returns
        -------
        bytes
            The output of ``am force-stop``

        """
        pid = await self.get_pid(device_id, app_id)
        _LOGGER.debug("Stopping %s (pid %d) on %s", app_id, pid, device_id)
        return await self.shell(device_id, 'am force-stop ' + app_id)

    # ======================================================================= #
    #                                                                         #
    #                              adb executable                             #
    #                                                                         #
    # ======================================================================= #
    async def start_server(self):
        """Run ``adb start-server``.

        Returns
        -------
        ProcessResult
            The exit code and output of ``adb``

        """
        return await self._run_adb(['start-server'], check=False)

    async def stop_server(self):
        """Run ``adb kill-server``.

        Returns
        -------
        ProcessResult
            The exit code and output of ``adb``

        """
        return await self._run_adb(['kill-server'], check=False)

    async def forward(self, device_id, src, dest):
        """Forward a device's socket connections.

        Parameters
        ----------
        device_id : str
            The serial number of the device
        src : str
            The local socket, e.g., ``'tcp:5000'``
        dest : str
            The device socket, e.g., ``'tcp:5000'`` or ``'jdwp:<pid>'``

        Returns
        -------
        ProcessResult
            The exit code and output of ``adb``

        """
        _check_arg('device_id', device_id)
        _check_arg('src', src)
        _check_arg('dest', dest)
        return await self._run_adb(['-s', device_id, 'forward', src, dest])

    async def push(self, device_id, src, dest):
        """Copy a file to a device.

        Parameters
        ----------
        device_id : str
            The serial number of the device
        src : str
            The local file
        dest : str
            The path on the device

        Returns
        -------
        ProcessResult
            The exit code and output of ``adb``

        Raises
        ------
        adb_host.exceptions.DevicePathInvalidError
            ``src`` does not exist

        """
        _check_arg('device_id', device_id)
        _check_arg('src', src)
        _check_arg('dest', dest)

        src = os.path.abspath(os.path.expanduser(src))
        if not await aiofiles.os.path.exists(src):
            raise exceptions.DevicePathInvalidError('Source file "{}" does not exist'.format(src))

        return await self._run_adb(['-s', device_id, 'push', src, dest])

    async def pull(self, device_id, src, dest):
        """Copy a file from a device, creating the local directory if necessary.

        Parameters
        ----------
        device_id : str
            The serial number of the device
        src : str
            The path on the device
        dest : str
            The local file

        Returns
        -------
        ProcessResult
            The exit code and output of ``adb``

        """
        _check_arg('device_id', device_id)
        _check_arg('src', src)
        _check_arg('dest', dest)

        dest = os.path.abspath(os.path.expanduser(dest))
        dest_dir = os.path.dirname(dest)
        if not await aiofiles.os.path.isdir(dest_dir):
            await aiofiles.os.makedirs(dest_dir, exist_ok=True)

        return await self._run_adb(['-s', device_id, 'pull', src, dest])

    async def install_app(self, device_id, apk_file):
        """Install (or reinstall) an app on a device.

        Parameters
        ----------
        device_id : str
            The serial number of the device
        apk_file : str
            The APK file

        Returns
        -------
        ProcessResult
            The exit code and output of ``adb``

        Raises
        ------
        adb_host.exceptions.AdbDeviceNotFoundError
            The device is not connected
        adb_host.exceptions.DevicePathInvalidError
            ``apk_file`` does not exist

        """
        _check_arg('device_id', device_id)
        _check_arg('apk_file', apk_file)

        apk_file = os.path.abspath(os.path.expanduser(apk_file))
        if not await aiofiles.os.path.isfile(apk_file):
            raise exceptions.DevicePathInvalidError('APK file "{}" does not exist'.format(apk_file))

        if not any(device.id == device_id for device in await self._list_devices()):
            raise exceptions.AdbDeviceNotFoundError('Device "{}" not found'.format(device_id))

        return await self._run_adb(['-s', device_id, 'install', '-r', apk_file])

    async def logcat(self, device_id):
        """Stream a device's log until ``adb logcat`` exits or the generator is closed.

        Parameters
        ----------
        device_id : str
            The serial number of the device

        Yields
        ------
        str
            A line of the log

        Raises
        ------
        adb_host.exceptions.AdbProcessError
            ``adb logcat`` exited with a non-zero code

        """
        _check_arg('device_id', device_id)
        adb = await self._find_adb()
        lines = process.stream_lines(adb, ['-s', device_id, 'logcat'])
        try:
            async for line in lines:
                yield line
        finally:
            # Kills ``adb logcat`` if it is still running
            await lines.aclose()

    # ======================================================================= #
    #                                                                         #
    #                              Hidden Methods                             #
    #                                                                         #
    # ======================================================================= #
    async def _add_device_info(self, device):
        """Read a device's ``build.prop`` and find out whether it is an emulator.

        ``build.prop`` is only read from devices in the ``device`` state; the ADB server refuses shell
        commands for ``offline`` and ``unauthorized`` devices.

        Parameters
        ----------
        device : Device
            The device, which is updated in place

        """
        if device.state == constants.DEVICE_STATE_ONLINE:
            data = await self.shell(device.id, constants.BUILD_PROP_COMMAND)
            device.update(parse_build_prop(data))
        else:
            _LOGGER.debug("Not reading build.prop of %s because it is %s", device.id, device.state)

        device.emulator = await self._emulator_manager.is_emulator(device.id) or False

    async def _find_adb(self):
        """Locate the ``adb`` executable, remembering the result.

        Returns
        -------
        str
            The path to ``adb``

        """
        if not self._adb_path or not await aiofiles.os.path.isfile(self._adb_path):
            self._adb_path = await find_adb(self._adb_path, self._sdk_path)

        return self._adb_path

    async def _list_devices(self):
        """Send ``host:devices`` and parse the response.

        Returns
        -------
        list[Device]
            The devices, without any ``build.prop`` information

        """
        conn = self.connection()
        try:
            data = await conn.exec(constants.HOST_DEVICES)
        finally:
            await conn.end()

        return parse_devices(data)

    async def _run_adb(self, args, check=True):
        """Run ``adb`` with the given arguments.

        Parameters
        ----------
        args : list[str]
            The command line arguments
        check : bool
            Whether to raise an exception if ``adb`` exits with a non-zero code

        Returns
        -------
        ProcessResult
            The exit code and output of ``adb``

        Raises
        ------
        adb_host.exceptions.AdbProcessError
            ``check`` is true and ``adb`` exited with a non-zero code

        """
        adb = await self._find_adb()
        result = await process.run(adb, args, self._process_timeout_s)
        if check:
            process.check_result(result, adb, args)

        return result
