from unittest.mock import AsyncMock, MagicMock, patch

from adb_host.process import ProcessResult
from adb_host.transport.tcp_transport_async import TcpTransportAsync


class FakeSocket:
    def __init__(self):
        self.setsockopt = MagicMock()


class FakeStreamWriter:
    def __init__(self):
        self.socket = FakeSocket()
        self.written = b''

    def close(self):
        pass

    async def wait_closed(self):
        pass

    def get_extra_info(self, name, default=None):
        return self.socket if name == 'socket' else default

    def write(self, data):
        self.written += data

    async def drain(self):
        pass


class FakeStreamReader:
    def __init__(self):
        self.eof = False

    def at_eof(self):
        return self.eof

    async def read(self, numbytes):
        return b'OKAY'


class FakeTcpTransportAsync(TcpTransportAsync):
    """A transport that replays ``bulk_read_data`` one chunk per read.

    An empty chunk, or running out of chunks, looks like the server closing the socket.  ``connected``
    stays true until :meth:`close` is called, as if the EOF had not arrived yet.

    """
    def __init__(self, *args, **kwargs):
        TcpTransportAsync.__init__(self, *args, **kwargs)
        self.bulk_read_data = []
        self.bulk_write_data = b''
        self.connect_count = 0
        self.refusals = 0

    @property
    def connected(self):
        return self._writer is not None

    async def close(self):
        self._reader = None
        self._writer = None

    async def connect(self, transport_timeout_s=None):
        self.connect_count += 1
        if self.refusals:
            self.refusals -= 1
            raise ConnectionRefusedError(111, 'Connection refused')

        self._reader = True
        self._writer = True

    async def bulk_read(self, numbytes, transport_timeout_s=None):
        if not self.bulk_read_data:
            return b''

        return self.bulk_read_data.pop(0)

    async def bulk_write(self, data, transport_timeout_s=None):
        self.bulk_write_data += data
        return len(data)


def async_patch(*args, **kwargs):
    return patch(*args, new_callable=AsyncMock, **kwargs)


def server_starter(code=0):
    return AsyncMock(return_value=ProcessResult(code, '', '* daemon started successfully\n' if not code else 'error'))
