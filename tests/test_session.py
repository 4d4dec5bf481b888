import unittest

from adbx.protocol import cache
from adbx.session import Entry, EntryKind, SessionConfig, create_session, refresh_device_status
from adbx.utils.device_info import DeviceRecord

from bridge_fakes import FakeBridge


def _devices(*pairs):
    return [DeviceRecord(serial, status, model=f"Model_{serial}") for serial, status in pairs]


class TestDeviceSelection(unittest.TestCase):
    def test_first_ready_device(self):
        bridge = FakeBridge(_devices(("AAA", "unauthorized"), ("BBB", "device"), ("CCC", "device")))
        state = create_session(bridge)
        with self.assertLogs("adbx.session", "WARNING"):
            status = refresh_device_status(state)
        self.assertTrue(status.connected)
        self.assertEqual(status.serial, "BBB")
        self.assertEqual(status.display_name, "Model BBB")

    def test_requested_serial_must_be_ready(self):
        bridge = FakeBridge(_devices(("AAA", "unauthorized"), ("BBB", "device")))
        state = create_session(bridge, SessionConfig(preferred_serial="AAA"))
        status = refresh_device_status(state)
        self.assertFalse(status.connected)
        self.assertEqual(status.serial, "AAA")

    def test_no_devices(self):
        state = create_session(FakeBridge([]))
        self.assertFalse(refresh_device_status(state).connected)

    def test_listing_failure_counts_as_no_device(self):
        bridge = FakeBridge()
        bridge.devices_error = "cannot connect to daemon"
        state = create_session(bridge)
        with self.assertLogs("adbx.session", "WARNING"):
            self.assertFalse(refresh_device_status(state).connected)

    def test_checks_are_throttled(self):
        bridge = FakeBridge()
        state = create_session(bridge)
        refresh_device_status(state)
        bridge.devices = []
        self.assertTrue(refresh_device_status(state).connected)
        with self.assertLogs("adbx.session", "WARNING"):
            self.assertFalse(refresh_device_status(state, force=True).connected)

    def test_switching_device_forgets_cache(self):
        bridge = FakeBridge(_devices(("AAA", "device")))
        state = create_session(bridge)
        refresh_device_status(state)
        cache.put(state, "/sdcard", (Entry("a", EntryKind.FILE, "/sdcard/a", 1),))
        state.features.supports_du_sb = True

        bridge.devices = _devices(("BBB", "device"))
        with self.assertLogs("adbx.session", "INFO"):
            status = refresh_device_status(state, force=True)
        self.assertEqual(status.serial, "BBB")
        self.assertEqual(len(state.directory_cache), 0)
        self.assertIsNone(state.features.supports_du_sb)


if __name__ == "__main__":
    unittest.main()
