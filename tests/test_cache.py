import unittest

from adbx.protocol import cache
from adbx.session import Entry, EntryKind

from bridge_fakes import FakeBridge, make_state


def _line(path, *names):
    return tuple(Entry(n, EntryKind.FILE, f"{path}/{n}", 1) for n in names)


class TestCanonicalize(unittest.TestCase):
    def test_follows_links_once(self):
        bridge = FakeBridge()
        bridge.on("readlink -f /sdcard", stdout="/storage/emulated/0\n")
        state = make_state(bridge)

        self.assertEqual(cache.canonicalize(state, "/sdcard/"), "/storage/emulated/0")
        self.assertEqual(cache.canonicalize(state, "/sdcard"), "/storage/emulated/0")
        self.assertEqual(len(bridge.shell_calls("readlink")), 1)
        self.assertEqual(state.path_aliases["/storage/emulated/0"], "/storage/emulated/0")

    def test_unresolvable_path_is_its_own_canonical(self):
        bridge = FakeBridge()
        bridge.on("readlink", exit_code=1)
        state = make_state(bridge)
        self.assertEqual(cache.canonicalize(state, "/sdcard/New"), "/sdcard/New")

    def test_root_needs_no_lookup(self):
        bridge = FakeBridge()
        state = make_state(bridge)
        self.assertEqual(cache.canonicalize(state, "/"), "/")
        self.assertEqual(bridge.calls, [])


class TestLru(unittest.TestCase):
    def test_least_recently_used_line_goes_first(self):
        state = make_state(FakeBridge(), cache_capacity=2)
        cache.put(state, "/a", _line("/a", "x"))
        cache.put(state, "/b", _line("/b", "y"))
        self.assertIsNotNone(cache.get(state, "/a"))
        cache.put(state, "/c", _line("/c", "z"))

        self.assertEqual(list(state.directory_cache), ["/a", "/c"])
        self.assertIsNone(cache.get(state, "/b"))

    def test_eviction_takes_aliases_along(self):
        state = make_state(FakeBridge(), cache_capacity=1)
        state.path_aliases.update({
            "/sdcard": "/storage/emulated/0",
            "/storage/self/primary": "/storage/emulated/0",
            "/storage/emulated/0": "/storage/emulated/0",
        })
        cache.put(state, "/storage/emulated/0", _line("/storage/emulated/0", "x"))
        cache.put(state, "/data", _line("/data", "y"))

        self.assertNotIn("/storage/emulated/0", state.directory_cache)
        self.assertNotIn("/sdcard", state.path_aliases)
        self.assertNotIn("/storage/self/primary", state.path_aliases)

    def test_put_replaces_line(self):
        state = make_state(FakeBridge())
        cache.put(state, "/a", _line("/a", "x"))
        cache.put(state, "/a", _line("/a", "x", "y"))
        self.assertEqual(len(cache.get(state, "/a")), 2)
        self.assertEqual(len(state.directory_cache), 1)


class TestInvalidate(unittest.TestCase):
    def test_through_alias(self):
        bridge = FakeBridge()
        state = make_state(bridge)
        state.path_aliases.update({"/sdcard/DCIM": "/storage/emulated/0/DCIM",
                                   "/storage/emulated/0/DCIM": "/storage/emulated/0/DCIM"})
        cache.put(state, "/storage/emulated/0/DCIM", _line("/storage/emulated/0/DCIM", "a.jpg"))

        cache.invalidate(state, "/sdcard/DCIM/")
        self.assertEqual(len(state.directory_cache), 0)
        self.assertEqual(state.path_aliases, {})
        self.assertEqual(bridge.calls, [])

    def test_unseen_spelling_is_resolved(self):
        bridge = FakeBridge()
        bridge.on("readlink -f /sdcard/DCIM", stdout="/storage/emulated/0/DCIM\n")
        state = make_state(bridge)
        cache.put(state, "/storage/emulated/0/DCIM", _line("/storage/emulated/0/DCIM", "a.jpg"))

        cache.invalidate(state, "/sdcard/DCIM")
        self.assertEqual(len(state.directory_cache), 0)

    def test_idempotent(self):
        bridge = FakeBridge()
        state = make_state(bridge)
        cache.put(state, "/sdcard", _line("/sdcard", "a"))
        state.path_aliases["/sdcard"] = "/sdcard"
        cache.invalidate(state, "/sdcard")
        cache.invalidate(state, "/sdcard")
        self.assertEqual(len(state.directory_cache), 0)

    def test_empty_cache_costs_nothing(self):
        bridge = FakeBridge()
        state = make_state(bridge)
        cache.invalidate(state, "/sdcard/Anything")
        cache.invalidate_parent(state, "/sdcard/Anything/x.txt")
        self.assertEqual(bridge.calls, [])

    def test_parent(self):
        state = make_state(FakeBridge())
        state.path_aliases["/sdcard/Music"] = "/sdcard/Music"
        cache.put(state, "/sdcard/Music", _line("/sdcard/Music", "song.mp3"))
        cache.invalidate_parent(state, "/sdcard/Music/song.mp3")
        self.assertIsNone(cache.get(state, "/sdcard/Music"))

    def test_tree(self):
        state = make_state(FakeBridge())
        for path in ("/sdcard/A", "/sdcard/A/B", "/sdcard/A/B/C", "/sdcard/AB"):
            state.path_aliases[path] = path
            cache.put(state, path, _line(path, "f"))

        cache.invalidate_tree(state, "/sdcard/A")
        self.assertEqual(list(state.directory_cache), ["/sdcard/AB"])
        self.assertEqual(state.path_aliases, {"/sdcard/AB": "/sdcard/AB"})


if __name__ == "__main__":
    unittest.main()
