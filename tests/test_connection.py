import asyncio
import logging
import sys
import unittest

from adb_host import exceptions
from adb_host.connection import Connection
from adb_host.framing import ConnectionState, ResponseShape

from .async_patchers import FakeTcpTransportAsync, async_patch, server_starter
from .async_wrapper import awaiter
from .mock_adb_server import MockAdbServer, PS


_LOGGER = logging.getLogger('adb_host.connection')
_LOGGER.setLevel(logging.DEBUG)
_LOGGER.addHandler(logging.StreamHandler(sys.stdout))


class BlockingTransport(FakeTcpTransportAsync):
    def __init__(self, *args, **kwargs):
        FakeTcpTransportAsync.__init__(self, *args, **kwargs)
        self.reading = asyncio.Event()
        self.release = asyncio.Event()

    async def bulk_read(self, numbytes, transport_timeout_s=None):
        self.reading.set()
        await self.release.wait()
        return b'OKAY00040030'


class ResettingTransport(FakeTcpTransportAsync):
    def __init__(self, *args, **kwargs):
        FakeTcpTransportAsync.__init__(self, *args, **kwargs)
        self.resets = 0

    async def bulk_write(self, data, transport_timeout_s=None):
        if self.resets:
            self.resets -= 1
            raise BrokenPipeError(32, 'Broken pipe')

        return await FakeTcpTransportAsync.bulk_write(self, data, transport_timeout_s)


class TestConnectionInit(unittest.TestCase):
    def test_invalid_port(self):
        with self.assertRaises(TypeError):
            Connection(port='foo')

        with self.assertRaises(ValueError):
            Connection(port=-1)

        with self.assertRaises(ValueError):
            Connection(port=1000000)

    def test_invalid_transport(self):
        with self.assertRaises(exceptions.InvalidTransportError):
            Connection(transport=object())

    def test_initial_state(self):
        conn = Connection(port=5037)
        self.assertEqual(conn.state, ConnectionState.IDLE)
        self.assertFalse(conn.connected)


class TestConnection(unittest.TestCase):
    def setUp(self):
        self.transport = FakeTcpTransportAsync('host', 5037)
        self.messages = []
        self.conn = Connection(transport=self.transport, log_callback=self.messages.append)

    @awaiter
    async def test_invalid_command(self):
        with self.assertRaises(exceptions.InvalidCommandError):
            await self.conn.exec(123)

        with self.assertRaises(exceptions.InvalidCommandError):
            await self.conn.exec('')

        self.assertEqual(self.transport.connect_count, 0)
        self.assertEqual(self.transport.bulk_write_data, b'')

    @awaiter
    async def test_version(self):
        self.transport.bulk_read_data = [b'OKAY0004', b'0030']
        self.assertEqual(await self.conn.exec('host:version'), b'0030')
        self.assertEqual(self.transport.bulk_write_data, b'000Chost:version')
        self.assertEqual(self.conn.state, ConnectionState.IDLE)
        self.assertTrue(self.conn.connected)

    @awaiter
    async def test_reuse_socket(self):
        self.transport.bulk_read_data = [b'OKAY', b'OKAYline 1\n', b'line 2\n', b'']
        self.assertIsNone(await self.conn.exec('host:transport:emulator-5554', ResponseShape.NO_PAYLOAD))
        self.assertEqual(await self.conn.exec('shell:ls', ResponseShape.STREAM_UNTIL_CLOSE), b'line 1\nline 2\n')

        self.assertEqual(self.transport.connect_count, 1)
        self.assertEqual(self.transport.bulk_write_data, b'001Chost:transport:emulator-5554' + b'0008shell:ls')
        self.assertFalse(self.conn.connected)

    @awaiter
    async def test_reconnect_after_server_closes(self):
        self.transport.bulk_read_data = [b'OKAYa', b'', b'OKAYb', b'']
        self.assertEqual(await self.conn.exec('shell:echo a', ResponseShape.STREAM_UNTIL_CLOSE), b'a')
        self.assertFalse(self.conn.connected)

        self.assertEqual(await self.conn.exec('shell:echo b', ResponseShape.STREAM_UNTIL_CLOSE), b'b')
        self.assertEqual(self.transport.connect_count, 2)

    @awaiter
    async def test_stream_resolves_on_close(self):
        self.transport.bulk_read_data = [b'OKAY'] + PS + [b'']
        self.assertEqual(await self.conn.exec('shell:ps', ResponseShape.STREAM_UNTIL_CLOSE), b''.join(PS))
        self.assertEqual(self.transport.bulk_read_data, [])

    @awaiter
    async def test_closed_without_response(self):
        self.transport.bulk_read_data = []
        self.assertIsNone(await self.conn.exec('host:version'))
        self.assertFalse(self.conn.connected)

    @awaiter
    async def test_fail(self):
        self.transport.bulk_read_data = [b'FAIL0014unknown ', b'host service']
        with self.assertRaises(exceptions.AdbCommandFailureException) as cm:
            await self.conn.exec('host:fake')

        self.assertEqual(str(cm.exception), 'unknown host service')
        self.assertFalse(self.conn.connected)
        self.assertEqual(self.conn.state, ConnectionState.IDLE)

    @awaiter
    async def test_unknown_status(self):
        self.transport.bulk_read_data = [b'HUH?']
        with self.assertRaises(exceptions.InvalidResponseError):
            await self.conn.exec('host:version')

        self.assertFalse(self.conn.connected)

    @awaiter
    async def test_transport_error(self):
        with async_patch('{}.FakeTcpTransportAsync.bulk_read'.format(FakeTcpTransportAsync.__module__), side_effect=ConnectionResetError):
            with self.assertRaises(ConnectionResetError):
                await self.conn.exec('host:version')

        self.assertFalse(self.conn.connected)

    @awaiter
    async def test_timeout(self):
        with async_patch('{}.FakeTcpTransportAsync.bulk_read'.format(FakeTcpTransportAsync.__module__), side_effect=exceptions.TcpTimeoutException):
            with self.assertRaises(exceptions.TcpTimeoutException):
                await self.conn.exec('host:version')

        self.assertFalse(self.conn.connected)

    @awaiter
    async def test_end_twice(self):
        self.transport.bulk_read_data = [b'OKAY00040030']
        await self.conn.exec('host:version')

        await self.conn.end()
        self.assertEqual(self.conn.state, ConnectionState.IDLE)
        self.assertFalse(self.conn.connected)

        await self.conn.end()
        self.assertEqual(self.conn.state, ConnectionState.IDLE)

    @awaiter
    async def test_end_swallows_oserror(self):
        with async_patch('{}.FakeTcpTransportAsync.close'.format(FakeTcpTransportAsync.__module__), side_effect=OSError):
            await self.conn.end()

        self.assertEqual(self.conn.state, ConnectionState.IDLE)

    @awaiter
    async def test_log_callback(self):
        self.transport.bulk_read_data = [b'OKAY00040030']
        await self.conn.exec('host:version')
        await self.conn.end()

        self.assertTrue(any('CONNECTED' in msg for msg in self.messages))
        self.assertTrue(any('SENDING host:version' in msg for msg in self.messages))
        self.assertTrue(any('RECEIVED 12 BYTES' in msg for msg in self.messages))
        self.assertTrue(any('SOCKET CLOSED' in msg for msg in self.messages))

    @awaiter
    async def test_resend_when_reused_socket_was_closed(self):
        self.transport.bulk_read_data = [b'OKAY00040030', b'', b'OKAY00040030']
        self.assertEqual(await self.conn.exec('host:version'), b'0030')
        self.assertEqual(await self.conn.exec('host:version'), b'0030')

        self.assertEqual(self.transport.connect_count, 2)
        self.assertEqual(self.transport.bulk_write_data, b'000Chost:version' * 3)
        self.assertTrue(any('RECONNECTING' in msg for msg in self.messages))

    @awaiter
    async def test_resend_only_once(self):
        self.transport.bulk_read_data = [b'OKAY', b'', b'']
        self.assertIsNone(await self.conn.exec('host:transport:emulator-5554', ResponseShape.NO_PAYLOAD))
        self.assertIsNone(await self.conn.exec('host:version'))

        self.assertEqual(self.transport.connect_count, 2)
        self.assertFalse(self.conn.connected)

    @awaiter
    async def test_resend_when_write_to_reused_socket_fails(self):
        transport = ResettingTransport('host', 5037)
        conn = Connection(transport=transport)
        transport.bulk_read_data = [b'OKAY', b'OKAY00040030']

        self.assertIsNone(await conn.exec('host:transport:emulator-5554', ResponseShape.NO_PAYLOAD))
        transport.resets = 1
        self.assertEqual(await conn.exec('host:version'), b'0030')

        self.assertEqual(transport.connect_count, 2)
        self.assertEqual(transport.bulk_write_data, b'001Chost:transport:emulator-5554' + b'000Chost:version')

    @awaiter
    async def test_no_resend_on_new_socket(self):
        transport = ResettingTransport('host', 5037)
        conn = Connection(transport=transport)
        transport.resets = 1

        with self.assertRaises(BrokenPipeError):
            await conn.exec('host:version')

        self.assertEqual(transport.connect_count, 1)
        self.assertFalse(conn.connected)

    @awaiter
    async def test_no_resend_after_partial_response(self):
        self.transport.bulk_read_data = [b'OKAY', b'OK', b'']
        self.assertIsNone(await self.conn.exec('host:transport:emulator-5554', ResponseShape.NO_PAYLOAD))

        with self.assertRaises(exceptions.InvalidResponseError):
            await self.conn.exec('host:version')

        self.assertEqual(self.transport.connect_count, 1)


class TestConnectionServerStart(unittest.TestCase):
    def setUp(self):
        self.transport = FakeTcpTransportAsync('host', 5037)

    @awaiter
    async def test_start_server_and_retry(self):
        starter = server_starter(0)
        conn = Connection(transport=self.transport, server_starter=starter)
        self.transport.refusals = 1
        self.transport.bulk_read_data = [b'OKAY00040030']

        self.assertEqual(await conn.exec('host:version'), b'0030')
        starter.assert_awaited_once()
        self.assertEqual(self.transport.connect_count, 2)
        self.assertEqual(self.transport.bulk_write_data, b'000Chost:version')

    @awaiter
    async def test_start_server_fails(self):
        starter = server_starter(1)
        conn = Connection(transport=self.transport, server_starter=starter)
        self.transport.refusals = 1

        with self.assertRaises(exceptions.AdbServerStartError) as cm:
            await conn.exec('host:version')

        self.assertEqual(cm.exception.code, 1)
        self.assertEqual(str(cm.exception), 'Unable to start Android Debug Bridge server (exit code 1)')
        self.assertEqual(self.transport.connect_count, 1)
        self.assertEqual(self.transport.bulk_write_data, b'')

    @awaiter
    async def test_retry_only_once(self):
        starter = server_starter(0)
        conn = Connection(transport=self.transport, server_starter=starter)
        self.transport.refusals = 5

        with self.assertRaises(exceptions.AdbConnectionError):
            await conn.exec('host:version')

        starter.assert_awaited_once()
        self.assertEqual(self.transport.connect_count, 2)
        self.assertFalse(conn.connected)

    @awaiter
    async def test_refused_without_server_starter(self):
        conn = Connection(transport=self.transport)
        self.transport.refusals = 1

        with self.assertRaises(exceptions.AdbConnectionError):
            await conn.exec('host:version')

        self.assertEqual(self.transport.connect_count, 1)


class TestConnectionBusy(unittest.TestCase):
    @awaiter
    async def test_busy_and_end_while_pending(self):
        transport = BlockingTransport('host', 5037)
        conn = Connection(transport=transport)

        pending = asyncio.ensure_future(conn.exec('host:version'))
        await transport.reading.wait()

        with self.assertRaises(exceptions.AdbConnectionError):
            await conn.exec('host:devices')

        self.assertEqual(transport.bulk_write_data, b'000Chost:version')

        await conn.end()
        transport.release.set()

        with self.assertRaises(exceptions.AdbConnectionError):
            await pending

        self.assertEqual(conn.state, ConnectionState.IDLE)

    @awaiter
    async def test_not_busy_after_failure(self):
        transport = FakeTcpTransportAsync('host', 5037)
        conn = Connection(transport=transport)
        transport.bulk_read_data = [b'FAIL0005error', b'OKAY00040030']

        with self.assertRaises(exceptions.AdbCommandFailureException):
            await conn.exec('host:fake')

        self.assertEqual(await conn.exec('host:version'), b'0030')

    @awaiter
    async def test_cancel_closes_the_socket(self):
        transport = BlockingTransport('host', 5037)
        conn = Connection(transport=transport)

        pending = asyncio.ensure_future(conn.exec('host:version'))
        await transport.reading.wait()
        pending.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await pending

        self.assertFalse(conn.connected)


class TestConnectionMockServer(unittest.TestCase):
    @awaiter
    async def test_version(self):
        async with MockAdbServer() as server:
            conn = Connection(port=server.port)
            self.assertEqual(await conn.exec('host:version'), b'0030')
            await conn.end()

        self.assertEqual(server.commands, ['host:version'])

    @awaiter
    async def test_fail(self):
        async with MockAdbServer() as server:
            conn = Connection(port=server.port)
            with self.assertRaises(exceptions.AdbCommandFailureException) as cm:
                await conn.exec('host:fake')

            self.assertIn('unknown host service', str(cm.exception))

    @awaiter
    async def test_no_devices(self):
        async with MockAdbServer() as server:
            conn = Connection(port=server.port)
            self.assertIsNone(await conn.exec('host:nodevices'))
            await conn.end()

    @awaiter
    async def test_devices(self):
        async with MockAdbServer() as server:
            conn = Connection(port=server.port)
            self.assertEqual(await conn.exec('host:devices'), b'emulator-5556\tdevice\nemulator-5554\tdevice\n')
            await conn.end()

    @awaiter
    async def test_shell_stream(self):
        async with MockAdbServer() as server:
            conn = Connection(port=server.port)
            self.assertEqual(await conn.exec('shell:ps', ResponseShape.STREAM_UNTIL_CLOSE), b''.join(PS))
            self.assertFalse(conn.connected)

    @awaiter
    async def test_transport_then_shell_on_same_socket(self):
        async with MockAdbServer() as server:
            conn = Connection(port=server.port)
            self.assertIsNone(await conn.exec('host:transport:emulator-5554', ResponseShape.NO_PAYLOAD))
            self.assertTrue(conn.connected)
            self.assertEqual(await conn.exec('shell:ps', ResponseShape.STREAM_UNTIL_CLOSE), b''.join(PS))

        self.assertEqual(server.commands, ['host:transport:emulator-5554', 'shell:ps'])

    @awaiter
    async def test_sequential_host_services(self):
        async with MockAdbServer() as server:
            conn = Connection(port=server.port)
            self.assertEqual(await conn.exec('host:version'), b'0030')
            await asyncio.sleep(0.1)
            self.assertEqual(await conn.exec('host:version'), b'0030')
            self.assertEqual(await conn.exec('host:version'), b'0030')
            await conn.end()

        self.assertEqual(server.commands, ['host:version'] * 3)

    @awaiter
    async def test_transport_after_host_service(self):
        async with MockAdbServer() as server:
            conn = Connection(port=server.port)
            self.assertEqual(await conn.exec('host:devices'), b'emulator-5556\tdevice\nemulator-5554\tdevice\n')
            await asyncio.sleep(0.1)
            self.assertIsNone(await conn.exec('host:transport:emulator-5554', ResponseShape.NO_PAYLOAD))
            self.assertTrue(conn.connected)
            self.assertEqual(await conn.exec('shell:ps', ResponseShape.STREAM_UNTIL_CLOSE), b''.join(PS))

        self.assertEqual(server.commands, ['host:devices', 'host:transport:emulator-5554', 'shell:ps'])

    @awaiter
    async def test_sequential_commands_on_new_sockets(self):
        async with MockAdbServer() as server:
            conn = Connection(port=server.port)
            first = await conn.exec('shell:ps', ResponseShape.STREAM_UNTIL_CLOSE)
            second = await conn.exec('shell:ps', ResponseShape.STREAM_UNTIL_CLOSE)

        self.assertEqual(first, second)
        self.assertEqual(server.commands, ['shell:ps', 'shell:ps'])


if __name__ == '__main__':
    unittest.main()
