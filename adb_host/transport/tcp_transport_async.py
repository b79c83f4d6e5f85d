# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""An asyncio streams transport for talking to the ADB server on its TCP port.

* :class:`TcpTransportAsync`

    * :meth:`TcpTransportAsync._wait`
    * :meth:`TcpTransportAsync.bulk_read`
    * :meth:`TcpTransportAsync.bulk_write`
    * :meth:`TcpTransportAsync.close`
    * :meth:`TcpTransportAsync.connect`
    * :attr:`TcpTransportAsync.connected`

"""


import asyncio
import socket

from .base_transport_async import BaseTransportAsync
from .. import constants
from ..exceptions import TcpTimeoutException


class TcpTransportAsync(BaseTransportAsync):
    """A socket connection to the ADB server.

    The ADB server closes the socket after it answers most ``host:`` services, so :attr:`TcpTransportAsync.connected`
    also checks whether the server has sent EOF.

    Parameters
    ----------
    host : str
        The address of the ADB server
    port : int
        The ADB server's port (default is 5037)
    default_transport_timeout_s : float, None
        Timeout in seconds for connecting, reading, and writing when no timeout is passed to those methods;
        ``None`` means wait forever

    Attributes
    ----------
    _default_transport_timeout_s : float, None
        Timeout in seconds for connecting, reading, and writing when no timeout is passed to those methods
    _host : str
        The address of the ADB server
    _port : int
        The ADB server's port
    _reader : asyncio.StreamReader, None
        The incoming side of the socket
    _writer : asyncio.StreamWriter, None
        The outgoing side of the socket

    """
    def __init__(self, host=constants.DEFAULT_ADB_HOST, port=constants.DEFAULT_ADB_PORT, default_transport_timeout_s=None):
        self._host = host
        self._port = port
        self._default_transport_timeout_s = default_transport_timeout_s

        self._reader = None
        self._writer = None

    def __repr__(self):
        return '{}({!r}, {!r})'.format(type(self).__name__, self._host, self._port)

    @property
    def connected(self):
        """Whether the socket is open and the server has not closed its end.

        Returns
        -------
        bool
            ``False`` before :meth:`TcpTransportAsync.connect`, after :meth:`TcpTransportAsync.close`, and once
            everything the server sent before closing the socket has been read

        """
        return self._writer is not None and not self._reader.at_eof()

    async def close(self):
        """Close the socket, if there is one.

        """
        writer = self._writer
        self._reader = None
        self._writer = None

        if writer is not None:
            try:
                writer.close()
                await writer.wait_closed()
            except OSError:
                pass

    async def connect(self, transport_timeout_s=None):
        """Open a socket to the ADB server, with Nagle's algorithm off and TCP keepalive on.

        Parameters
        ----------
        transport_timeout_s : float, None
            Overrides ``default_transport_timeout_s`` for this call

        Raises
        ------
        ConnectionRefusedError
            The ADB server is not running
        TcpTimeoutException
            The connection was not established in time

        """
        self._reader, self._writer = await self._wait(asyncio.open_connection(self._host, self._port), transport_timeout_s, 'Connecting to')

        sock = self._writer.get_extra_info('socket')
        if sock is not None:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)

    async def bulk_read(self, numbytes, transport_timeout_s=None):
        """Read whatever the server has sent, up to ``numbytes`` bytes.

        Parameters
        ----------
        numbytes : int
            The most bytes to return
        transport_timeout_s : float, None
            Overrides ``default_transport_timeout_s`` for this call

        Returns
        -------
        bytes
            The data, or ``b''`` once the server has closed the socket

        Raises
        ------
        TcpTimeoutException
            Nothing arrived in time

        """
        return await self._wait(self._reader.read(numbytes), transport_timeout_s, 'Reading from')

    async def bulk_write(self, data, transport_timeout_s=None):
        """Write ``data`` and wait until it has been flushed to the socket.

        Parameters
        ----------
        data : bytes
            A request frame
        transport_timeout_s : float, None
            Overrides ``default_transport_timeout_s`` for this call

        Returns
        -------
        int
            ``len(data)``

        Raises
        ------
        TcpTimeoutException
            The data could not be flushed in time

        """
        self._writer.write(data)
        await self._wait(self._writer.drain(), transport_timeout_s, 'Sending data to')
        return len(data)

    async def _wait(self, awaitable, transport_timeout_s, action):
        """Await ``awaitable``, turning a timeout into a :class:`~adb_host.exceptions.TcpTimeoutException`.

        Parameters
        ----------
        awaitable : coroutine
            The socket operation
        transport_timeout_s : float, None
            The timeout, or ``None`` to use ``self._default_transport_timeout_s``
        action : str
            Describes the operation in the exception message

        Returns
        -------
        object
            The result of ``awaitable``

        """
        timeout = self._default_transport_timeout_s if transport_timeout_s is None else transport_timeout_s

        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError:
            raise TcpTimeoutException('{} {}:{} timed out ({} seconds)'.format(action, self._host, self._port, timeout))
