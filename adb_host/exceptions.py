# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""ADB-related exceptions.

"""


class AdbCommandFailureException(Exception):
    """A ``b'FAIL'`` response was received.

    The message is the literal error text sent by the ADB server.

    """


class AdbConnectionError(Exception):
    """The command could not be sent or completed over the connection to the ADB server.

    """


class AdbDeviceNotFoundError(Exception):
    """The requested device is not connected to the ADB server.

    """


class AdbExecutableNotFoundError(Exception):
    """The ``adb`` executable could not be located.

    """


class AdbProcessError(Exception):
    """A spawned ``adb`` process exited with a non-zero code.

    Parameters
    ----------
    msg : str
        The error message
    code : int
        The exit code of the process
    stdout : str
        What the process wrote to stdout
    stderr : str
        What the process wrote to stderr

    Attributes
    ----------
    code : int
        The exit code of the process
    stdout : str
        What the process wrote to stdout
    stderr : str
        What the process wrote to stderr

    """
    def __init__(self, msg, code, stdout='', stderr=''):
        super(AdbProcessError, self).__init__(msg, code, stdout, stderr)
        self.code = code
        self.stdout = stdout
        self.stderr = stderr

    def __str__(self):
        return '%s (exit code %s)' % self.args[:2]


class AdbServerStartError(Exception):
    """The ADB server was not running and ``adb start-server`` failed.

    Parameters
    ----------
    code : int
        The exit code of ``adb start-server``

    Attributes
    ----------
    code : int
        The exit code of ``adb start-server``

    """
    def __init__(self, code):
        super(AdbServerStartError, self).__init__(code)
        self.code = code

    def __str__(self):
        return 'Unable to start Android Debug Bridge server (exit code %s)' % self.code


class AdbTimeoutError(Exception):
    """ADB command did not complete within the specified time.

    """


class DevicePathInvalidError(Exception):
    """A file command was passed a local path that does not exist.

    """


class InvalidCommandError(TypeError):
    """A command or one of its arguments is missing or has the wrong type.

    """


class InvalidTransportError(Exception):
    """The provided transport does not implement the necessary methods: ``close``, ``connect``, ``bulk_read``, and ``bulk_write``.

    """


class InvalidResponseError(Exception):
    """The ADB server sent something that does not follow the protocol.

    """


class TcpTimeoutException(Exception):
    """TCP connection timed read/write operation exceeded the allowed time.

    """
