# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Implement the :class:`Connection` class, which sends commands to the ADB server and reads the responses.

* :class:`Connection`

    * :meth:`Connection._connect`
    * :meth:`Connection._debug`
    * :meth:`Connection._read_response`
    * :meth:`Connection._resend`
    * :meth:`Connection._send`
    * :meth:`Connection._start_server`
    * :attr:`Connection.connected`
    * :meth:`Connection.end`
    * :meth:`Connection.exec`
    * :attr:`Connection.state`

"""


import asyncio
import itertools
import logging

from . import constants
from . import exceptions
from .framing import Outcome, ResponseFramer, ResponseShape, encode_request
from .transport.base_transport_async import BaseTransportAsync
from .transport.tcp_transport_async import TcpTransportAsync


_LOGGER = logging.getLogger(__name__)

_CONNECTION_COUNTER = itertools.count(1)

#: How many times ``adb start-server`` is run when the ADB server refuses a connection
MAX_SERVER_START_ATTEMPTS = 1


class Connection(object):
    """A connection to the ADB server that runs one command at a time.

    The socket is opened by the first call to :meth:`Connection.exec` and is reused by the following
    calls until the server closes it or :meth:`Connection.end` is called.  Commands must not be run
    concurrently on the same instance; :meth:`Connection.exec` raises
    :class:`~adb_host.exceptions.AdbConnectionError` if a command is still pending.

    Parameters
    ----------
    host : str
        The address of the ADB server
    port : int
        The port on which the ADB server listens (default is 5037)
    server_starter : function, None
        A coroutine function that runs ``adb start-server`` and returns a
        :class:`~adb_host.process.ProcessResult`; it is awaited if the server refuses the connection
    log_callback : function, None
        Called with a diagnostic message whenever the connection sends, receives, or closes
    transport : BaseTransportAsync, None
        The transport to use instead of a :class:`~adb_host.transport.tcp_transport_async.TcpTransportAsync`
    default_transport_timeout_s : float, None
        Default timeout in seconds for TCP operations, or ``None``

    Raises
    ------
    TypeError
        ``port`` is not an integer
    ValueError
        ``port`` is not between 1 and 65535
    adb_host.exceptions.InvalidTransportError
        The passed ``transport`` is not an instance of a subclass of :class:`~adb_host.transport.base_transport_async.BaseTransportAsync`

    Attributes
    ----------
    _conn_num : int
        A number that identifies this connection in log messages
    _framer : ResponseFramer
        The state machine that parses responses
    _generation : int
        Incremented whenever the socket is closed, so that a pending read can tell that it was abandoned
    _log_callback : function, None
        Called with a diagnostic message whenever the connection sends, receives, or closes
    _pending : bool
        Whether a command is in progress
    _server_starter : function, None
        A coroutine function that runs ``adb start-server``
    _transport : BaseTransportAsync
        The transport that is used to talk to the ADB server

    """
    def __init__(self, host=constants.DEFAULT_ADB_HOST, port=constants.DEFAULT_ADB_PORT, server_starter=None, log_callback=None, transport=None, default_transport_timeout_s=None):
        if transport is None:
            if isinstance(port, bool) or not isinstance(port, int):
                raise TypeError('Expected port to be a number')

            if not 0 < port < 65536:
                raise ValueError('Port must be between 1 and 65535')

            transport = TcpTransportAsync(host, port, default_transport_timeout_s)

        elif not isinstance(transport, BaseTransportAsync):
            raise exceptions.InvalidTransportError('`transport` must be an instance of a subclass of `BaseTransportAsync`')

        self._transport = transport
        self._server_starter = server_starter
        self._log_callback = log_callback

        self._framer = ResponseFramer()
        self._pending = False
        self._conn_num = next(_CONNECTION_COUNTER)
        self._generation = 0

    @property
    def connected(self):
        """Whether the socket to the ADB server is open.

        Returns
        -------
        bool
            Whether the transport is connected

        """
        return self._transport.connected

    @property
    def state(self):
        """The state of the response parser.

        Returns
        -------
        ConnectionState
            The state of ``self._framer``

        """
        return self._framer.state

    async def end(self):
        """Close the socket and go back to the ``IDLE`` state.

        This may be called any number of times.  If a command is pending, it raises :class:`~adb_host.exceptions.AdbConnectionError`.

        """
        if self._transport.connected:
            self._debug('SOCKET CLOSED')

        self._generation += 1

        try:
            await self._transport.close()
        except OSError:
            pass

        self._framer.reset()

    async def exec(self, command, shape=ResponseShape.FIXED_LENGTH):
        """Send a command to the ADB server and return the response.

        1. Validate ``command``
        2. Connect to the ADB server if there is no open socket (see :meth:`Connection._connect`)
        3. Send the length-prefixed command (see :meth:`Connection._send`)
        4. Read data until the :class:`~adb_host.framing.ResponseFramer` has a complete response (see :meth:`Connection._read_response`)

        If a reused socket turns out to have been closed by the server before any of the response arrived, the
        command never reached the server; it is sent again once on a new socket.


        Parameters
        ----------
        command : str
            The command, e.g., ``'host:version'``
        shape : ResponseShape
            What the server is expected to send after ``b'OKAY'``

        Returns
        -------
        bytes, None
            The payload of the response, or ``None`` if there was none

        Raises
        ------
        adb_host.exceptions.AdbCommandFailureException
            The server responded with ``b'FAIL'``
        adb_host.exceptions.AdbConnectionError
            Another command is pending, the connection was closed by :meth:`Connection.end`, or the server could not be reached
        adb_host.exceptions.AdbServerStartError
            The server was not running and ``adb start-server`` failed
        adb_host.exceptions.InvalidCommandError
            ``command`` is not a non-empty string
        adb_host.exceptions.InvalidResponseError
            The server's response does not follow the protocol

        """
        frame = encode_request(command)

        if self._pending:
            raise exceptions.AdbConnectionError('Command {!r} not sent because another command is pending on connection {}'.format(command, self._conn_num))

        self._pending = True
        try:
            reused = await self._connect()

            try:
                await self._send(command, frame, shape)
            except ConnectionError:
                if not reused:
                    raise

                await self._resend(command, frame, shape)
                reused = False

            return await self._read_response(command, frame, shape, reused)

        except (exceptions.InvalidResponseError, exceptions.TcpTimeoutException, OSError, asyncio.CancelledError):
            await self.end()
            raise

        finally:
            self._pending = False

    async def _connect(self):
        """Open the socket if it is not already open, starting the ADB server if it refuses the connection.

        Returns
        -------
        bool
            Whether an open socket is being reused

        Raises
        ------
        adb_host.exceptions.AdbConnectionError
            The server refused the connection again after it was started, or there is no ``server_starter``
        adb_host.exceptions.AdbServerStartError
            ``adb start-server`` exited with a non-zero code

        """
        if self._transport.connected:
            self._debug('SOCKET ALREADY OPEN, REUSING IT')
            return True

        # The server may have closed the previous socket
        await self.end()

        attempts = 0
        while True:
            try:
                await self._transport.connect()
                self._debug('CONNECTED')
                return False

            except ConnectionRefusedError as exc:
                await self.end()

                if self._server_starter is None or attempts >= MAX_SERVER_START_ATTEMPTS:
                    raise exceptions.AdbConnectionError('Unable to connect to the ADB server via {!r}'.format(self._transport)) from exc

                attempts += 1
                await self._start_server()

    async def _read_response(self, command, frame, shape, reused):
        """Feed data from the socket to the :class:`~adb_host.framing.ResponseFramer` until the response is complete.

        Parameters
        ----------
        command : str
            The command that was sent
        frame : bytes
            The encoded command, for sending it again
        shape : ResponseShape
            What the server is expected to send after ``b'OKAY'``
        reused : bool
            Whether the command was sent on a socket that had already carried a response

        Returns
        -------
        bytes, None
            The payload of the response, or ``None`` if there was none

        """
        generation = self._generation
        while True:
            try:
                data = await self._transport.bulk_read(constants.MAX_READ_SIZE)
            except ConnectionError:
                if not (reused and self._framer.is_fresh):
                    raise

                data = b''

            if self._generation != generation:
                raise exceptions.AdbConnectionError('Connection {} was closed while {!r} was pending'.format(self._conn_num, command))

            if not data and reused and self._framer.is_fresh:
                await self._resend(command, frame, shape)
                reused = False
                generation = self._generation
                continue

            if data:
                _LOGGER.debug("bulk_read(%d): %.1000s", constants.MAX_READ_SIZE, repr(data))
                self._debug('RECEIVED %d BYTES (state=%s) (cmd=%s)', len(data), self._framer.state.value, command)
                result = self._framer.feed(data)
            else:
                self._debug('SOCKET CLOSED BY SERVER (buffered=%d)', len(self._framer.buffer))
                result = self._framer.end()
                await self.end()

            if result.outcome is Outcome.NEED_MORE:
                continue

            if result.outcome is Outcome.FAILED:
                self._debug('ERROR! %s', result.error)
                await self.end()
                raise exceptions.AdbCommandFailureException(result.error)

            return result.payload

    async def _resend(self, command, frame, shape):
        """Send a command again on a new socket because the server closed the reused one.

        Parameters
        ----------
        command : str
            The command
        frame : bytes
            The encoded command
        shape : ResponseShape
            What the server is expected to send after ``b'OKAY'``

        """
        self._debug('SOCKET CLOSED BY SERVER BEFORE %s WAS ANSWERED, RECONNECTING', command)
        await self.end()
        await self._connect()
        await self._send(command, frame, shape)

    async def _send(self, command, frame, shape):
        """Prepare the :class:`~adb_host.framing.ResponseFramer` and write a command to the socket.

        Parameters
        ----------
        command : str
            The command
        frame : bytes
            The encoded command
        shape : ResponseShape
            What the server is expected to send after ``b'OKAY'``

        """
        self._debug('SENDING %s', command)
        self._framer.start(shape)
        _LOGGER.debug("bulk_write: %s", repr(frame))
        await self._transport.bulk_write(frame)

    async def _start_server(self):
        """Run ``adb start-server`` via ``self._server_starter``.

        Raises
        ------
        adb_host.exceptions.AdbServerStartError
            ``adb start-server`` exited with a non-zero code

        """
        _LOGGER.warning("The ADB server refused the connection via %r; starting it", self._transport)
        result = await self._server_starter()
        _LOGGER.debug("adb start-server: code=%s, stdout=%r, stderr=%r", result.code, result.stdout, result.stderr)

        if result.code:
            raise exceptions.AdbServerStartError(result.code)

    def _debug(self, msg, *args):
        """Log a diagnostic message and pass it to ``self._log_callback``.

        Parameters
        ----------
        msg : str
            A ``%``-style format string
        *args
            Arguments for ``msg``

        """
        _LOGGER.debug('[%d] ' + msg, self._conn_num, *args)
        if self._log_callback is not None:
            self._log_callback('[{}] {}'.format(self._conn_num, msg % args))
