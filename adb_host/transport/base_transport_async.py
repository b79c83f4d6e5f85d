# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""A base class for transports used to communicate with the ADB server.

* :class:`BaseTransportAsync`

    * :meth:`BaseTransportAsync.bulk_read`
    * :meth:`BaseTransportAsync.bulk_write`
    * :meth:`BaseTransportAsync.close`
    * :meth:`BaseTransportAsync.connect`
    * :attr:`BaseTransportAsync.connected`

"""


from abc import ABC, abstractmethod


class BaseTransportAsync(ABC):
    """A base transport class.

    """

    @property
    @abstractmethod
    def connected(self):
        """Whether the transport has a connection that can carry another request.

        Returns
        -------
        bool
            Whether :meth:`BaseTransportAsync.connect` succeeded, :meth:`BaseTransportAsync.close` has not been called
            since, and the server has not closed its end

        """

    @abstractmethod
    async def close(self):
        """Close the connection.  Calling this when there is no open connection does nothing.

        """

    @abstractmethod
    async def connect(self, transport_timeout_s=None):
        """Create a connection to the ADB server.

        Parameters
        ----------
        transport_timeout_s : float, None
            A connection timeout

        Raises
        ------
        ConnectionRefusedError
            The ADB server is not running

        """

    @abstractmethod
    async def bulk_read(self, numbytes, transport_timeout_s=None):
        """Read data from the ADB server.

        Parameters
        ----------
        numbytes : int
            The maximum amount of data to be received
        transport_timeout_s : float, None
            A timeout for the read operation

        Returns
        -------
        bytes
            The received data, or ``b''`` if the server closed the connection

        """

    @abstractmethod
    async def bulk_write(self, data, transport_timeout_s=None):
        """Send data to the ADB server.

        Parameters
        ----------
        data : bytes
            The data to be sent
        transport_timeout_s : float, None
            A timeout for the write operation

        Returns
        -------
        int
            The number of bytes sent

        """
