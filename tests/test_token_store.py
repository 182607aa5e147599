import os
import stat
import tempfile
import unittest
from pathlib import Path

from driver_tracker.token_store import FileTokenStore, MemoryTokenStore


class TestMemoryTokenStore(unittest.TestCase):

    def test_get_set_delete(self):
        store = MemoryTokenStore()
        self.assertIsNone(store.get("accessToken"))
        store.set("accessToken", "abc123")
        self.assertEqual(store.get("accessToken"), "abc123")
        store.delete("accessToken")
        store.delete("accessToken")
        self.assertIsNone(store.get("accessToken"))


class TestFileTokenStore(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "nested" / "credentials.json"
        self.store = FileTokenStore(str(self.path))

    def tearDown(self):
        self.tmp.cleanup()

    def test_round_trip_between_instances(self):
        self.store.set("accessToken", "abc123")
        self.assertEqual(FileTokenStore(str(self.path)).get("accessToken"), "abc123")

    @unittest.skipIf(os.name == "nt", "POSIX permissions")
    def test_file_is_private(self):
        self.store.set("accessToken", "abc123")
        self.assertEqual(stat.S_IMODE(os.stat(self.path).st_mode), 0o600)

    def test_delete(self):
        self.store.set("accessToken", "abc123")
        self.store.set("other", "x")
        self.store.delete("accessToken")
        self.assertIsNone(self.store.get("accessToken"))
        self.assertEqual(self.store.get("other"), "x")

    def test_missing_and_corrupt_files(self):
        self.assertIsNone(self.store.get("accessToken"))
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json")
        self.assertIsNone(self.store.get("accessToken"))
        self.store.set("accessToken", "fresh")
        self.assertEqual(self.store.get("accessToken"), "fresh")
