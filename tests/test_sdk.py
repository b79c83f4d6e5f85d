import os
import tempfile
import unittest
from unittest.mock import patch

from adb_host.exceptions import AdbExecutableNotFoundError
from adb_host.sdk import ADB_EXECUTABLE, find_adb, sdk_adb_path

from .async_wrapper import awaiter


def make_sdk(root):
    os.makedirs(os.path.join(root, 'platform-tools'))
    adb = os.path.join(root, 'platform-tools', ADB_EXECUTABLE)
    open(adb, 'w').close()
    return adb


class TestFindAdb(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.environ = patch.dict(os.environ, {}, clear=True)
        self.environ.start()

    def tearDown(self):
        self.environ.stop()
        self.tmp.cleanup()

    def test_sdk_adb_path(self):
        self.assertEqual(sdk_adb_path('/opt/android-sdk'), os.path.join('/opt/android-sdk', 'platform-tools', ADB_EXECUTABLE))

    @awaiter
    async def test_adb_path(self):
        adb = make_sdk(self.tmp.name)
        self.assertEqual(await find_adb(adb_path=adb, sdk_path='/nonexistent'), adb)

    @awaiter
    async def test_sdk_path(self):
        adb = make_sdk(self.tmp.name)
        self.assertEqual(await find_adb(adb_path=os.path.join(self.tmp.name, 'missing'), sdk_path=self.tmp.name), adb)

    @awaiter
    async def test_environment(self):
        adb = make_sdk(self.tmp.name)
        os.environ['ANDROID_SDK_ROOT'] = '/nonexistent'
        os.environ['ANDROID_HOME'] = self.tmp.name
        self.assertEqual(await find_adb(), adb)

    @awaiter
    async def test_path(self):
        with patch('shutil.which', return_value='/usr/bin/adb') as which:
            self.assertEqual(await find_adb(sdk_path=self.tmp.name), '/usr/bin/adb')

        which.assert_called_once_with(ADB_EXECUTABLE)

    @awaiter
    async def test_not_found(self):
        with patch('shutil.which', return_value=None):
            with self.assertRaises(AdbExecutableNotFoundError):
                await find_adb(sdk_path=self.tmp.name)


if __name__ == '__main__':
    unittest.main()
