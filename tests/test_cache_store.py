"""Tests for the cache stamp sidecar and asset stamping."""

import hashlib
import json
import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from assets_packager.cache_store import AssetStamper, CacheStore, content_hash


class TestCacheStore(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp_dir.name) / ".assets.yml.json"

    def tearDown(self):
        self.tmp_dir.cleanup()

    def test_missing_sidecar_is_empty(self):
        store = CacheStore.load(self.path)
        self.assertEqual(store.entries, {})

    def test_corrupt_sidecar_is_treated_as_empty(self):
        self.path.write_text("{not json", encoding="utf-8")
        store = CacheStore.load(self.path)
        self.assertEqual(store.entries, {})

        store.update("stylesheets/all", "abc")
        store.save()
        self.assertEqual(json.loads(self.path.read_text(encoding="utf-8")), {"stylesheets/all": "abc"})

    def test_non_object_sidecar_is_treated_as_empty(self):
        self.path.write_text("[1, 2]", encoding="utf-8")
        self.assertEqual(CacheStore.load(self.path).entries, {})

    def test_save_preserves_unrelated_keys(self):
        self.path.write_text('{"test":123}', encoding="utf-8")
        store = CacheStore.load(self.path)
        store.update("stylesheets/all", "abc")
        store.save()

        data = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(data, {"test": 123, "stylesheets/all": "abc"})

    def test_save_merges_with_entries_written_meanwhile(self):
        store = CacheStore.load(self.path)
        self.path.write_text('{"javascripts/all": "old"}', encoding="utf-8")
        store.update("stylesheets/all", "new")
        store.save()

        data = json.loads(self.path.read_text(encoding="utf-8"))
        self.assertEqual(data, {"javascripts/all": "old", "stylesheets/all": "new"})

    def test_content_hash_is_md5(self):
        self.assertEqual(content_hash(b"abc"), hashlib.md5(b"abc").hexdigest())
        self.assertEqual(content_hash(b"abc"), content_hash(b"abc"))


class TestAssetStamper(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp_dir.name)
        (self.root / "images").mkdir()
        (self.root / "images" / "one.png").write_bytes(b"one-image")
        self.digest = hashlib.md5(b"one-image").hexdigest()

    def tearDown(self):
        self.tmp_dir.cleanup()

    def test_stamp_creates_hashed_copy(self):
        record = AssetStamper(self.root).stamp("/images/one.png")

        self.assertEqual(record.original, "/images/one.png")
        self.assertEqual(record.stamped, f"/images/one-{self.digest}.png")
        self.assertEqual((self.root / "images" / f"one-{self.digest}.png").read_bytes(), b"one-image")
        self.assertTrue((self.root / "images" / "one.png").exists())

    def test_stamp_is_idempotent(self):
        first = AssetStamper(self.root).stamp("/images/one.png")
        second = AssetStamper(self.root).stamp("/images/one.png")
        self.assertEqual(first, second)
        self.assertEqual(len(list((self.root / "images").iterdir())), 2)

    def test_already_stamped_name_is_not_stamped_again(self):
        stamped = self.root / "images" / f"one-{self.digest}.png"
        stamped.write_bytes(b"one-image")
        self.assertIsNone(AssetStamper(self.root).stamp(f"/images/one-{self.digest}.png"))

    def test_missing_asset(self):
        self.assertIsNone(AssetStamper(self.root).stamp("/images/missing.png"))


if __name__ == "__main__":
    unittest.main()
