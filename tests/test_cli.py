import unittest

from typer.testing import CliRunner

from adbx.cli import GLOBAL_OPTIONS, STATE, app

from bridge_fakes import FakeBridge, make_state


class CliTestCase(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self.bridge = FakeBridge()
        STATE.session = make_state(self.bridge)

    def tearDown(self):
        STATE.session = None
        STATE.config_path = None
        GLOBAL_OPTIONS.clear()


class TestDevicesCommand(CliTestCase):
    def test_lists_serials(self):
        result = self.runner.invoke(app, ["devices"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("FAKE123", result.output)
        self.assertIn("Pixel 7", result.output)


class TestLsCommand(CliTestCase):
    def test_lists_directory(self):
        self.bridge.on("if [ -d /sdcard/DCIM ]", stdout=(
            "directory|4096|/sdcard/DCIM/Camera\n"
            "regular file|500000|/sdcard/DCIM/a.jpg\n"
        ))
        result = self.runner.invoke(app, ["ls", "/sdcard/DCIM"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Camera", result.output)
        self.assertIn("500000", result.output)

    def test_listing_error_exits_nonzero(self):
        self.bridge.on("if [ -d /sdcard/nope ]", exit_code=1, stderr="permission denied, and also bizarre\n")
        result = self.runner.invoke(app, ["ls", "/sdcard/nope"])
        self.assertEqual(result.exit_code, 1)

    def test_no_device(self):
        self.bridge.devices = []
        result = self.runner.invoke(app, ["ls"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("No Device", result.output)


class TestArguments(CliTestCase):
    def test_missing_arguments(self):
        result = self.runner.invoke(app, ["mv", "/sdcard/a.txt"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Missing required arguments", result.output)
        self.assertEqual(self.bridge.calls, [])

    def test_command_help(self):
        result = self.runner.invoke(app, ["rm", "--help"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn("adbx rm", result.output)


if __name__ == "__main__":
    unittest.main()
