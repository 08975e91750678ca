import unittest

from gallery.db import InMemoryImageStore, SqlImageStore


class ImageStoreContract:
    """Shared checks run against every ImageStore implementation."""

    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.store = self.make_store()

    def test_insert_and_find(self):
        record = self.store.insert(name="cat.png", url="https://cdn.test/cat.png", asset_id="gallery/cat")
        fetched = self.store.find_by_id(record.id)
        self.assertIsNotNone(fetched)
        self.assertEqual(fetched.name, "cat.png")
        self.assertEqual(fetched.asset_id, "gallery/cat")
        self.assertIsNone(self.store.find_by_id("missing"))

    def test_find_all_keeps_insertion_order(self):
        ids = [
            self.store.insert(name=str(i), url=f"https://cdn.test/{i}", asset_id=None).id
            for i in range(5)
        ]
        self.assertEqual([r.id for r in self.store.find_all()], ids)

    def test_delete_by_id(self):
        record = self.store.insert(name="a", url="https://cdn.test/a", asset_id="a")
        self.assertTrue(self.store.delete_by_id(record.id))
        self.assertFalse(self.store.delete_by_id(record.id))
        self.assertEqual(self.store.find_all(), [])

    def test_delete_by_ids(self):
        a = self.store.insert(name="a", url="https://cdn.test/a", asset_id="a")
        b = self.store.insert(name="b", url="https://cdn.test/b", asset_id="b")
        c = self.store.insert(name="c", url="https://cdn.test/c", asset_id="c")
        self.assertEqual(self.store.delete_by_ids([a.id, c.id, "missing"]), 2)
        self.assertEqual([r.id for r in self.store.find_all()], [b.id])
        self.assertEqual(self.store.delete_by_ids([]), 0)

    def test_delete_by_asset_ids_ignores_legacy_records(self):
        self.store.insert(name="a", url="https://cdn.test/a", asset_id="a")
        legacy = self.store.insert(name="legacy", url="https://cdn.test/l", asset_id=None)
        self.assertEqual(self.store.delete_by_asset_ids(["a", "a", "zzz"]), 1)
        self.assertEqual([r.id for r in self.store.find_all()], [legacy.id])

    def test_ping(self):
        self.assertTrue(self.store.ping())


class InMemoryImageStoreTests(ImageStoreContract, unittest.TestCase):
    def make_store(self):
        return InMemoryImageStore()


class SqlImageStoreTests(ImageStoreContract, unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL store.
    """

    def make_store(self):
        return SqlImageStore("sqlite+pysqlite:///:memory:")

    def test_requires_url(self):
        with self.assertRaises(ValueError):
            SqlImageStore("")


if __name__ == "__main__":
    unittest.main()
