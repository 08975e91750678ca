import unittest
from unittest.mock import MagicMock, patch

import requests

from gallery.assets import InMemoryAssetStore
from gallery.db import ImageRecord, InMemoryImageStore
from gallery.errors import ReconcileError, RecordNotFound, UpstreamUnavailable
from gallery.reconcile import (
    ByAssetId,
    ByUrl,
    ExistenceChecker,
    HttpUrlProbe,
    Reconciler,
    Unverifiable,
    existence_check_for,
)


def _put(store, record):
    store.images[record.id] = record
    return record


class RecordingImageStore(InMemoryImageStore):
    def __init__(self):
        super().__init__()
        self.delete_calls = []

    def delete_by_ids(self, image_ids):
        ids = list(image_ids)
        self.delete_calls.append(ids)
        return super().delete_by_ids(ids)


class FakeProbe:
    def __init__(self, reachable=()):
        self.reachable = set(reachable)
        self.calls = []

    def __call__(self, url):
        self.calls.append(url)
        return url in self.reachable


def _response(status_code):
    response = MagicMock()
    response.status_code = status_code
    return response


class ExistenceCheckTests(unittest.TestCase):
    def test_asset_id_takes_precedence_over_url(self):
        record = ImageRecord(id="1", url="https://cdn.test/a.png", asset_id="gallery/a")
        self.assertEqual(existence_check_for(record), ByAssetId("gallery/a"))

    def test_legacy_record_is_checked_by_url(self):
        record = ImageRecord(id="1", url="https://cdn.test/a.png")
        self.assertEqual(existence_check_for(record), ByUrl("https://cdn.test/a.png"))

    def test_record_without_identifiers_is_unverifiable(self):
        self.assertEqual(existence_check_for(ImageRecord(id="1", url=None)), Unverifiable())

    def test_checker_treats_lookup_errors_as_missing(self):
        assets = MagicMock()
        assets.exists.side_effect = RuntimeError("boom")
        checker = ExistenceChecker(assets, FakeProbe())
        self.assertFalse(checker.check_exists(ByAssetId("gallery/a")))

    def test_checker_never_probes_for_asset_ids(self):
        assets = InMemoryAssetStore(stored_objects={"gallery/a": b"x"})
        probe = FakeProbe()
        checker = ExistenceChecker(assets, probe)
        self.assertTrue(checker.check_exists(ByAssetId("gallery/a")))
        self.assertFalse(checker.check_exists(ByAssetId("gallery/b")))
        self.assertFalse(checker.check_exists(Unverifiable()))
        self.assertEqual(probe.calls, [])


class HttpUrlProbeTests(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.probe = HttpUrlProbe(timeout=5, session=self.session)

    def test_success_status_means_reachable(self):
        self.session.head.return_value = _response(200)
        self.assertTrue(self.probe("https://cdn.test/a.png"))
        self.session.head.assert_called_once_with(
            "https://cdn.test/a.png", allow_redirects=True, timeout=5
        )

    def test_error_statuses_mean_missing(self):
        for status in (404, 410, 500, 503):
            self.session.head.return_value = _response(status)
            self.assertFalse(self.probe("https://cdn.test/a.png"), status)

    def test_network_error_means_missing(self):
        self.session.head.side_effect = requests.ConnectionError("refused")
        self.assertFalse(self.probe("https://cdn.test/a.png"))

    def test_malformed_url_is_not_probed(self):
        for url in (
            "",
            "not a url",
            "ftp://cdn.test/a.png",
            "https://",
            "http://[broken/a.png",
        ):
            self.assertFalse(self.probe(url), url)
        self.session.head.assert_not_called()

    @patch("gallery.reconcile.requests.head")
    def test_without_session_uses_requests_directly(self, mock_head):
        mock_head.return_value = _response(204)
        probe = HttpUrlProbe(timeout=3)
        self.assertTrue(probe("https://cdn.test/a.png"))
        mock_head.assert_called_once_with(
            "https://cdn.test/a.png", allow_redirects=True, timeout=3
        )

    def test_head_not_allowed_falls_back_to_get(self):
        self.session.head.return_value = _response(405)
        self.session.get.return_value = _response(200)
        self.assertTrue(self.probe("https://cdn.test/a.png"))
        self.session.get.assert_called_once()


class ReconcilerTests(unittest.TestCase):
    def setUp(self):
        self.images = RecordingImageStore()
        self.assets = InMemoryAssetStore()
        self.probe = FakeProbe(reachable={"https://legacy.test/ok.png"})
        self.reconciler = Reconciler(
            self.images, self.assets, checker=ExistenceChecker(self.assets, self.probe)
        )

    def _with_asset(self, name):
        stored = self.assets.store(b"img", filename=f"{name}.png")
        return self.images.insert(name=name, url=stored.url, asset_id=stored.asset_id)

    def test_missing_assets_are_evicted_in_one_bulk_delete(self):
        keep = self._with_asset("keep")
        gone_a = self._with_asset("gone-a")
        gone_b = self._with_asset("gone-b")
        self.assets.delete(gone_a.asset_id)
        self.assets.delete(gone_b.asset_id)

        report = self.reconciler.list_valid()

        self.assertEqual([r.id for r in report.valid], [keep.id])
        self.assertEqual(len(self.images.delete_calls), 1)
        self.assertEqual(set(self.images.delete_calls[0]), {gone_a.id, gone_b.id})
        self.assertEqual(report.deleted_count, 2)
        self.assertEqual([r.id for r in self.images.find_all()], [keep.id])

    def test_legacy_records_use_url_probe(self):
        ok = _put(self.images, ImageRecord(id="ok", url="https://legacy.test/ok.png"))
        _put(self.images, ImageRecord(id="dead", url="https://legacy.test/dead.png"))
        _put(self.images, ImageRecord(id="blank", url=None))

        report = self.reconciler.list_valid()

        self.assertEqual(report.valid, [ok])
        self.assertEqual(report.orphaned_ids, ["dead", "blank"])
        self.assertEqual(
            self.probe.calls,
            ["https://legacy.test/ok.png", "https://legacy.test/dead.png"],
        )

    def test_unparseable_legacy_url_is_orphaned(self):
        ok = _put(self.images, ImageRecord(id="ok", url="https://legacy.test/ok.png"))
        _put(self.images, ImageRecord(id="bad", url="http://[broken/a.png"))
        session = MagicMock()
        session.head.return_value = _response(200)
        reconciler = Reconciler(
            self.images,
            self.assets,
            checker=ExistenceChecker(self.assets, HttpUrlProbe(session=session)),
        )

        report = reconciler.list_valid()

        self.assertEqual(report.valid, [ok])
        self.assertEqual(report.orphaned_ids, ["bad"])
        self.assertEqual(self.images.delete_calls, [["bad"]])

    def test_no_orphans_means_no_delete(self):
        self._with_asset("keep")
        report = self.reconciler.list_valid()
        self.assertEqual(len(report.valid), 1)
        self.assertEqual(self.images.delete_calls, [])

    def test_parallel_checks_keep_fetch_order(self):
        records = [self._with_asset(f"img{i}") for i in range(8)]
        for record in records[1::2]:
            self.assets.delete(record.asset_id)
        reconciler = Reconciler(
            self.images,
            self.assets,
            checker=ExistenceChecker(self.assets, self.probe),
            max_workers=4,
        )

        report = reconciler.list_valid()

        self.assertEqual([r.id for r in report.valid], [r.id for r in records[0::2]])
        self.assertEqual(report.orphaned_ids, [r.id for r in records[1::2]])

    def test_fetch_failure_is_reported(self):
        self.images.find_all = MagicMock(side_effect=RuntimeError("db down"))
        with self.assertRaises(UpstreamUnavailable):
            self.reconciler.list_valid()

    def test_eviction_failure_lists_unconfirmed_ids(self):
        _put(self.images, ImageRecord(id="dead", url="https://legacy.test/dead.png"))
        self.images.delete_by_ids = MagicMock(side_effect=RuntimeError("db down"))
        with self.assertRaises(ReconcileError) as ctx:
            self.reconciler.list_valid()
        self.assertEqual(ctx.exception.details["orphanedIds"], ["dead"])

    def test_delete_one_unknown_id(self):
        self._with_asset("keep")
        self.assets.delete = MagicMock()
        with self.assertRaises(RecordNotFound):
            self.reconciler.delete_one("missing")
        self.assets.delete.assert_not_called()
        self.assertEqual(len(self.images.find_all()), 1)

    def test_delete_one_removes_asset_and_record(self):
        record = self._with_asset("doomed")
        deleted = self.reconciler.delete_one(record.id)
        self.assertEqual(deleted.id, record.id)
        self.assertIsNone(self.images.find_by_id(record.id))
        self.assertNotIn(record.asset_id, self.assets.stored_objects)

    def test_delete_one_legacy_record_skips_provider(self):
        _put(self.images, ImageRecord(id="legacy", url="https://legacy.test/ok.png"))
        self.assets.delete = MagicMock()
        self.reconciler.delete_one("legacy")
        self.assets.delete.assert_not_called()
        self.assertIsNone(self.images.find_by_id("legacy"))

    def test_delete_one_keeps_record_when_provider_fails(self):
        record = self._with_asset("stubborn")
        self.assets.delete = MagicMock(side_effect=RuntimeError("provider down"))
        with self.assertRaises(UpstreamUnavailable):
            self.reconciler.delete_one(record.id)
        self.assertIsNotNone(self.images.find_by_id(record.id))


if __name__ == "__main__":
    unittest.main()
