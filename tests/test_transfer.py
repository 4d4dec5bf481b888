import os
import shutil
import tempfile
import unittest

from adbx.session import EntryKind, TransferItem
from adbx.transfer import Direction, ItemResult, ItemStatus, local_item, pull, push
from adbx.transfer.engine import REMOTE_ABSENT, REMOTE_PRESENT, remote_exists
from adbx.utils.exceptions import TransferError

from bridge_fakes import FakeBridge, make_state, pulled_file, write_file


class TransferTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp(prefix="adbx-test-")
        self.bridge = FakeBridge()

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def local(self, *parts):
        return os.path.join(self.tmp, *parts)


class TestItemResult(unittest.TestCase):
    def test_illegal_transition(self):
        result = ItemResult(TransferItem("a", "/sdcard/a", EntryKind.FILE), "/tmp/a")
        with self.assertRaises(TransferError):
            result.advance(ItemStatus.SUCCEEDED)
        result.advance(ItemStatus.RUNNING)
        result.advance(ItemStatus.SUCCEEDED)
        self.assertTrue(result.status.terminal)
        with self.assertRaises(TransferError):
            result.advance(ItemStatus.FAILED)


class TestPull(TransferTestCase):
    PHOTO = TransferItem("a.jpg", "/sdcard/DCIM/a.jpg", EntryKind.FILE, 5)

    def test_copy(self):
        self.bridge.on_stream("pull /sdcard/DCIM/a.jpg", on_finish=pulled_file(b"hello"))
        state = make_state(self.bridge)
        snapshots = []

        summary = pull(state, [self.PHOTO], self.local("out"), on_progress=snapshots.append)

        self.assertTrue(summary.ok)
        self.assertEqual(summary.direction, Direction.PULL)
        self.assertEqual(summary.bytes_transferred, 5)
        self.assertTrue(os.path.isfile(self.local("out", "a.jpg")))
        self.assertEqual(snapshots[-1].percent, 100.0)
        self.assertEqual(self.bridge.streams[0][-2:], ["/sdcard/DCIM/a.jpg", self.local("out")])
        self.assertEqual(self.bridge.shell_calls("rm"), [])

    def test_move_deletes_verified_source(self):
        self.bridge.on_stream("pull", on_finish=pulled_file(b"hello"))
        state = make_state(self.bridge)

        summary = pull(state, [self.PHOTO], self.local("out"), move=True)
        result = summary.results[0]
        self.assertEqual(result.status, ItemStatus.SUCCEEDED)
        self.assertTrue(result.source_deleted)
        self.assertEqual(self.bridge.shell_calls("rm"), ["rm -rf /sdcard/DCIM/a.jpg"])

    def test_move_keeps_source_when_copy_is_short(self):
        self.bridge.on_stream("pull", on_finish=pulled_file(b"hel"))
        state = make_state(self.bridge)

        with self.assertLogs("adbx.transfer.engine", "WARNING"):
            summary = pull(state, [self.PHOTO], self.local("out"), move=True)
        result = summary.results[0]
        self.assertEqual(result.status, ItemStatus.FAILED)
        self.assertIn("Source kept", result.message)
        self.assertFalse(result.source_deleted)
        self.assertEqual(self.bridge.shell_calls("rm"), [])

    def test_move_keeps_source_outside_safe_root(self):
        self.bridge.on_stream("pull", on_finish=pulled_file(b"hello"))
        state = make_state(self.bridge)
        item = TransferItem("x.bin", "/data/local/tmp/x.bin", EntryKind.FILE, 5)

        with self.assertLogs("adbx.transfer.engine", "WARNING"):
            summary = pull(state, [item], self.local("out"), move=True)
        result = summary.results[0]
        self.assertEqual(result.status, ItemStatus.SUCCEEDED)
        self.assertIn("source kept", result.message)
        self.assertEqual(self.bridge.shell_calls("rm"), [])

    def test_move_directory_compares_byte_totals(self):
        def materialize(args):
            write_file(os.path.join(args[-1], "Camera", "x.jpg"), b"abc")
            write_file(os.path.join(args[-1], "Camera", "y.jpg"), b"de")

        self.bridge.on("du -sb", stdout="5\t/sdcard/DCIM/Camera/\n")
        self.bridge.on("find /sdcard/DCIM/Camera/ -type f", stdout="3\n2\n")
        self.bridge.on_stream("pull", on_finish=materialize)
        state = make_state(self.bridge)
        camera = TransferItem("Camera", "/sdcard/DCIM/Camera", EntryKind.DIRECTORY)

        summary = pull(state, [camera], self.local("out"), move=True)
        self.assertEqual(summary.size_report.total, 5)
        self.assertTrue(summary.results[0].source_deleted)
        self.assertTrue(summary.results[0].verification.ok)
        self.assertEqual(self.bridge.shell_calls("rm"), ["rm -rf /sdcard/DCIM/Camera"])

    def test_move_into_existing_directory_keeps_source(self):
        write_file(self.local("out", "Camera", "old.bin"), b"x" * 1000)
        self.bridge.on("du -sb", stdout="500\t/sdcard/DCIM/Camera/\n")
        self.bridge.on("find /sdcard/DCIM/Camera/ -type f", stdout="500\n")
        self.bridge.on_stream("pull")
        state = make_state(self.bridge)
        camera = TransferItem("Camera", "/sdcard/DCIM/Camera", EntryKind.DIRECTORY)

        with self.assertLogs("adbx.transfer.engine", "WARNING"):
            summary = pull(state, [camera], self.local("out"), move=True)
        result = summary.results[0]
        self.assertEqual(result.status, ItemStatus.FAILED)
        self.assertIn("Source kept", result.message)
        self.assertFalse(result.verification.ok)
        self.assertFalse(result.source_deleted)
        self.assertEqual(self.bridge.shell_calls("rm"), [])

    def test_failure_does_not_stop_the_batch(self):
        self.bridge.on_stream("pull /sdcard/gone.txt", exit_code=1,
                              stderr="adb: error: remote object '/sdcard/gone.txt' does not exist\n")
        self.bridge.on_stream("pull /sdcard/DCIM/a.jpg", on_finish=pulled_file(b"hello"))
        state = make_state(self.bridge)
        gone = TransferItem("gone.txt", "/sdcard/gone.txt", EntryKind.FILE, 3)

        with self.assertLogs("adbx.transfer.engine", "ERROR"):
            summary = pull(state, [gone, self.PHOTO], self.local("out"))
        self.assertEqual((summary.failed, summary.succeeded), (1, 1))
        self.assertFalse(summary.ok)
        self.assertIn("does not exist", summary.results[0].message)

    def test_cancel_removes_partial_file(self):
        partial = self.local("out", "big.bin")
        self.bridge.on_stream("pull", polls=1000, on_start=lambda args: write_file(partial, b"par"))
        state = make_state(self.bridge)
        item = TransferItem("big.bin", "/sdcard/big.bin", EntryKind.FILE, 10 ** 9)

        with self.assertLogs("adbx.transfer.engine", "WARNING"):
            summary = pull(state, [item], self.local("out"), cancel_requested=lambda: True)
        self.assertEqual(summary.results[0].status, ItemStatus.CANCELLED)
        self.assertEqual(summary.cancelled, 1)
        self.assertTrue(self.bridge.processes[0].killed)
        self.assertFalse(os.path.exists(partial))

    def test_cancel_keeps_file_that_existed(self):
        existing = write_file(self.local("out", "big.bin"), b"older copy")
        self.bridge.on_stream("pull", polls=1000)
        state = make_state(self.bridge)
        item = TransferItem("big.bin", "/sdcard/big.bin", EntryKind.FILE, 10 ** 9)

        with self.assertLogs("adbx.transfer.engine", "WARNING"):
            pull(state, [item], self.local("out"), cancel_requested=lambda: True)
        self.assertTrue(os.path.exists(existing))

    def test_what_if(self):
        state = make_state(self.bridge, what_if_mode=True)
        with self.assertLogs("adbx.protocol.invoker", "WARNING"):
            summary = pull(state, [self.PHOTO], self.local("out"))
        self.assertTrue(summary.results[0].what_if)
        self.assertEqual(self.bridge.streams, [])
        self.assertFalse(os.path.exists(self.local("out")))


class TestPush(TransferTestCase):
    def setUp(self):
        super().setUp()
        self.source = write_file(self.local("notes.txt"), b"hello")

    def test_error_text_with_zero_exit_is_failure(self):
        self.bridge.on_stream("push", stderr=(
            "adb: error: failed to copy 'notes.txt' to '/sdcard/Upload/notes.txt': "
            "remote No such file or directory\n"
        ))
        state = make_state(self.bridge)

        with self.assertLogs("adbx.transfer.engine", "ERROR"):
            summary = push(state, [self.source], "/sdcard/Upload")
        result = summary.results[0]
        self.assertEqual(result.status, ItemStatus.FAILED)
        self.assertIn("no such file or directory", result.message.lower())
        self.assertTrue(os.path.exists(self.source))

    def test_copy_creates_destination(self):
        state = make_state(self.bridge)
        summary = push(state, [self.source], "/sdcard/Upload")

        self.assertTrue(summary.ok)
        self.assertEqual(summary.bytes_transferred, 5)
        self.assertEqual(summary.results[0].destination, "/sdcard/Upload/notes.txt")
        self.assertIn("mkdir -p /sdcard/Upload", self.bridge.shell_calls("mkdir"))
        self.assertEqual(self.bridge.streams[0][-2:], [self.source, "/sdcard/Upload/"])

    def test_move_deletes_verified_source(self):
        self.bridge.on("if [ -d /sdcard/Upload ]", stdout="regular file|5|/sdcard/Upload/notes.txt\n")
        state = make_state(self.bridge)

        summary = push(state, [local_item(self.source)], "/sdcard/Upload", move=True)
        self.assertTrue(summary.results[0].source_deleted)
        self.assertFalse(os.path.exists(self.source))

    def test_move_keeps_source_when_copy_is_short(self):
        self.bridge.on("if [ -d /sdcard/Upload ]", stdout="regular file|3|/sdcard/Upload/notes.txt\n")
        state = make_state(self.bridge)

        with self.assertLogs("adbx.transfer.engine", "WARNING"):
            summary = push(state, [self.source], "/sdcard/Upload", move=True)
        result = summary.results[0]
        self.assertEqual(result.status, ItemStatus.FAILED)
        self.assertIn("Source kept", result.message)
        self.assertTrue(os.path.exists(self.source))

    def test_destination_outside_safe_root(self):
        state = make_state(self.bridge)
        with self.assertLogs("adbx.transfer.engine", "ERROR"):
            summary = push(state, [self.source], "/system/app")
        self.assertEqual(summary.failed, 1)
        self.assertEqual(self.bridge.calls, [])
        self.assertEqual(self.bridge.streams, [])

    def test_missing_local_source(self):
        state = make_state(self.bridge)
        with self.assertLogs("adbx.transfer.engine", "ERROR"):
            summary = push(state, [self.local("nope.txt")], "/sdcard/Upload")
        self.assertEqual(summary.results[0].status, ItemStatus.FAILED)
        self.assertEqual(self.bridge.streams, [])

    def test_progress_from_remote_size(self):
        self.bridge.on("du -sb /sdcard/Upload/notes.txt", stdout="3\t/sdcard/Upload/notes.txt\n")
        self.bridge.on_stream("push", polls=2)
        state = make_state(self.bridge)
        snapshots = []

        push(state, [self.source], "/sdcard/Upload", on_progress=snapshots.append)
        self.assertIn(3, [s.done_bytes for s in snapshots])
        self.assertEqual(snapshots[-1].done_bytes, 5)
        self.assertEqual(self.bridge.shell_calls("du -sb"), ["du -sb /sdcard/Upload/notes.txt"])

    def test_move_directory_onto_existing_remote_directory_keeps_source(self):
        album = self.local("album")
        write_file(os.path.join(album, "x.jpg"), b"abc")
        self.bridge.on("[ -e /sdcard/Upload/album ]", stdout=REMOTE_PRESENT + "\n")
        state = make_state(self.bridge)

        with self.assertLogs("adbx.transfer.engine", "WARNING"):
            summary = push(state, [album], "/sdcard/Upload", move=True)
        result = summary.results[0]
        self.assertEqual(result.status, ItemStatus.FAILED)
        self.assertIn("Source kept", result.message)
        self.assertTrue(os.path.isfile(os.path.join(album, "x.jpg")))

    def test_cancel_removes_new_remote_partial(self):
        self.bridge.on("[ -e /sdcard/Upload/notes.txt ]", stdout=REMOTE_ABSENT + "\n")
        self.bridge.on_stream("push", polls=1000)
        state = make_state(self.bridge, du_sb=False)

        with self.assertLogs("adbx.transfer.engine", "WARNING"):
            summary = push(state, [self.source], "/sdcard/Upload", cancel_requested=lambda: True)
        self.assertEqual(summary.cancelled, 1)
        self.assertIn("rm -rf /sdcard/Upload/notes.txt", self.bridge.shell_calls("rm"))

    def test_cancel_keeps_remote_item_that_existed(self):
        self.bridge.on("[ -e /sdcard/Upload/notes.txt ]", stdout=REMOTE_PRESENT + "\n")
        self.bridge.on_stream("push", polls=1000)
        state = make_state(self.bridge, du_sb=False)

        with self.assertLogs("adbx.transfer.engine", "WARNING"):
            push(state, [self.source], "/sdcard/Upload", cancel_requested=lambda: True)
        self.assertEqual(self.bridge.shell_calls("rm"), [])

    def test_cancel_keeps_remote_item_when_existence_is_unknown(self):
        self.bridge.on("if [ -d /sdcard/Upload ]", timeout=True)
        self.bridge.on("ls -la", timeout=True)
        self.bridge.on("[ -e /sdcard/Upload/notes.txt ]", timeout=True)
        self.bridge.on_stream("push", polls=1000)
        state = make_state(self.bridge, du_sb=False)

        with self.assertLogs("adbx.transfer.engine", "WARNING"):
            summary = push(state, [self.source], "/sdcard/Upload", cancel_requested=lambda: True)
        self.assertEqual(summary.cancelled, 1)
        self.assertEqual(self.bridge.shell_calls("rm"), [])

    def test_existence_check(self):
        state = make_state(self.bridge)
        self.bridge.on("[ -e /sdcard/a ]", stdout=REMOTE_PRESENT + "\n")
        self.bridge.on("[ -e /sdcard/b ]", stdout=REMOTE_ABSENT + "\n")
        self.bridge.on("[ -e /sdcard/c ]", exit_code=2, stderr="sh: [: missing ]\n")
        self.assertIs(remote_exists(state, "/sdcard/a"), True)
        self.assertIs(remote_exists(state, "/sdcard/b"), False)
        self.assertIsNone(remote_exists(state, "/sdcard/c"))
        self.assertIsNone(remote_exists(state, "/sdcard/d"))

    def test_what_if(self):
        state = make_state(self.bridge, what_if_mode=True)
        with self.assertLogs("adbx.protocol.invoker", "WARNING"):
            summary = push(state, [self.source], "/sdcard/Upload")
        self.assertTrue(summary.results[0].what_if)
        self.assertEqual(self.bridge.streams, [])
        self.assertEqual(self.bridge.shell_calls("mkdir"), [])
        self.assertTrue(os.path.exists(self.source))


if __name__ == "__main__":
    unittest.main()
