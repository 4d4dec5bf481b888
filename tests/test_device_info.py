import unittest

from adbx.utils.device_info import is_version_below, parse_bridge_version, parse_devices_output


DEVICES_OUTPUT = """\
* daemon not running; starting now at tcp:5037
* daemon started successfully
List of devices attached
0123456789ABCDEF       device usb:1-1 product:walleye model:Pixel_2 device:walleye transport_id:1
emulator-5554          offline transport_id:2
R58M123ABC             unauthorized usb:1-2 transport_id:3
ZX1G22                 no permissions (user in plugdev group; are your udev rules wrong?); see [http://developer.android.com/tools/device.html] usb:1-3

"""


class TestParseDevices(unittest.TestCase):
    def test_parses_every_state(self):
        devices = parse_devices_output(DEVICES_OUTPUT)
        self.assertEqual([d.serial for d in devices],
                         ["0123456789ABCDEF", "emulator-5554", "R58M123ABC", "ZX1G22"])
        self.assertEqual([d.status for d in devices],
                         ["device", "offline", "unauthorized", "no permissions"])

    def test_properties(self):
        pixel = parse_devices_output(DEVICES_OUTPUT)[0]
        self.assertTrue(pixel.ready)
        self.assertEqual(pixel.model, "Pixel_2")
        self.assertEqual(pixel.display_name, "Pixel 2")
        self.assertEqual(pixel.transport_id, "1")

    def test_display_name_falls_back_to_serial(self):
        emulator = parse_devices_output(DEVICES_OUTPUT)[1]
        self.assertFalse(emulator.ready)
        self.assertEqual(emulator.display_name, "emulator-5554")

    def test_empty(self):
        self.assertEqual(parse_devices_output("List of devices attached\n\n"), [])


class TestBridgeVersion(unittest.TestCase):
    def test_parse(self):
        text = "Android Debug Bridge version 1.0.41\nVersion 34.0.5-10900879\nInstalled as /usr/bin/adb\n"
        self.assertEqual(parse_bridge_version(text), ("1.0.41", "34.0.5"))

    def test_parse_old_output(self):
        self.assertEqual(parse_bridge_version("Android Debug Bridge version 1.0.32\n"), ("1.0.32", None))

    def test_below_minimum(self):
        self.assertTrue(is_version_below("1.0.32"))
        self.assertFalse(is_version_below("1.0.39"))
        self.assertFalse(is_version_below("1.0.41"))
        self.assertFalse(is_version_below(None))
        self.assertFalse(is_version_below("not-a-version"))


if __name__ == "__main__":
    unittest.main()
