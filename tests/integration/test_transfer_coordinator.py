"""
Integration tests for the transfer coordinator.

Runs real archive files and lock markers in a scratch directory against an
in-memory store, checking the state sequence and what each failure leaves
behind.
"""

import errno
import json

import pytest

from order_archiver.core.config import ItemErrorPolicy
from order_archiver.core.errors import (
    ArchiveExistsError,
    ArchiveWriteError,
    DocumentShapeError,
    FetchError,
    LockHeldError,
    ProductDecodeError,
    PurgeError,
    StagingFileExistsError,
)
from order_archiver.core.models import TransferState
from order_archiver.core.safety import SafetyChecker, staging_path_for
from order_archiver.transfer.transformer import RecordTransformer
from order_archiver.transfer.writers import ArchiveReader

from conftest import FaultyFileSystem, RecordingStore, SimulatedCrash

pytestmark = pytest.mark.integration

S = TransferState
LOCKED_PREFIX = [S.START, S.SAFETY_CHECKED, S.LOCKED]


def assert_untouched(store, archive_path, lock_path):
    assert store.delete_calls == []
    assert not archive_path.exists()
    assert not lock_path.exists()


class TestSuccessfulTransfer:

    def test_state_sequence(self, make_coordinator, recording_store):
        coordinator = make_coordinator(recording_store)
        report = coordinator.run()

        assert coordinator.history == [
            S.START, S.SAFETY_CHECKED, S.LOCKED, S.FETCHED,
            S.TRANSFORMED, S.ARCHIVED, S.PURGED, S.DONE,
        ]
        assert report.state == S.DONE

    def test_archive_and_purge(self, make_coordinator, recording_store, archive_path, lock_path):
        report = make_coordinator(recording_store).run()

        orders = ArchiveReader(archive_path).read()
        assert [order.uid for order in orders] == ["u1", "u2"]
        assert orders[0].products[0].code == "p1"
        assert orders[0].products[0].amount == 3
        assert orders[1].products == ()

        assert len(recording_store) == 0
        assert not lock_path.exists()
        assert not staging_path_for(archive_path).exists()

        assert report.documents_fetched == 2
        assert report.orders_archived == 2
        assert report.products_decoded == 1
        assert report.documents_purged == 2
        assert report.item_issues == []

    def test_purges_exactly_the_fetched_documents_once(self, make_coordinator, recording_store):
        make_coordinator(recording_store).run()

        fetched = [document.reference for document in recording_store.fetched]
        assert recording_store.fetch_calls == 1
        assert recording_store.delete_calls == [fetched]

    def test_documents_added_after_fetch_survive(self, make_coordinator, order_documents):
        class LateWriteStore(RecordingStore):
            def fetch_all(self):
                documents = super().fetch_all()
                self.add({"uid": "late", "date": "2024-02-01T00:00:00Z"}, doc_id="late")
                return documents

        store = LateWriteStore(order_documents)
        make_coordinator(store).run()

        assert "late" in store
        assert len(store) == 1

    def test_archive_follows_fetch_order(self, make_coordinator, archive_path):
        store = RecordingStore(
            [
                {"uid": "old", "date": "2024-01-01T00:00:00Z"},
                {"uid": "new", "date": "2024-03-01T00:00:00Z"},
            ],
            order_by="date",
        )
        make_coordinator(store).run()

        assert [order.uid for order in ArchiveReader(archive_path).read()] == ["new", "old"]

    def test_empty_store(self, make_coordinator, archive_path):
        store = RecordingStore()
        report = make_coordinator(store).run()

        assert archive_path.read_bytes() == b"<orders />"
        assert store.delete_calls == [[]]
        assert report.state == S.DONE

    def test_undecodable_items_skipped(self, make_coordinator):
        store = RecordingStore([{
            "uid": "u1",
            "date": "2024-01-01T00:00:00Z",
            "products": [json.dumps({"id": "p1", "amount": 1}), "{truncated"],
        }])
        report = make_coordinator(store).run()

        assert report.products_decoded == 1
        [issue] = report.item_issues
        assert (issue.document_index, issue.item_index, issue.action) == (0, 1, "skipped")

    def test_undecodable_items_zeroed(self, make_coordinator, archive_path):
        store = RecordingStore([{
            "uid": "u1", "date": "2024-01-01T00:00:00Z", "products": ["{truncated"],
        }])
        transformer = RecordTransformer(item_error_policy=ItemErrorPolicy.ZERO)
        report = make_coordinator(store, transformer=transformer).run()

        [order] = ArchiveReader(archive_path).read()
        assert (order.products[0].code, order.products[0].amount) == ("", 0)
        assert report.products_decoded == 0

    def test_cannot_run_twice(self, make_coordinator, recording_store):
        coordinator = make_coordinator(recording_store)
        coordinator.run()

        with pytest.raises(RuntimeError):
            coordinator.run()


class TestDryRun:

    def test_nothing_written_or_deleted(self, make_coordinator, recording_store, archive_path, lock_path):
        coordinator = make_coordinator(recording_store, dry_run=True)
        report = coordinator.run()

        assert coordinator.history == [*LOCKED_PREFIX, S.FETCHED, S.TRANSFORMED, S.DONE]
        assert report.dry_run is True
        assert report.documents_fetched == 2
        assert report.orders_archived == 0
        assert report.documents_purged == 0
        assert_untouched(recording_store, archive_path, lock_path)
        assert not staging_path_for(archive_path).exists()
        assert len(recording_store) == 2


class TestPreconditions:

    def test_existing_archive(self, make_coordinator, recording_store, archive_path, lock_path):
        archive_path.write_bytes(b"previous run")
        coordinator = make_coordinator(recording_store)

        with pytest.raises(ArchiveExistsError):
            coordinator.run()

        assert coordinator.history == [S.START, S.ABORTED]
        assert recording_store.fetch_calls == 0
        assert archive_path.read_bytes() == b"previous run"
        assert not lock_path.exists()

    def test_staging_file(self, make_coordinator, recording_store, archive_path):
        staging_path_for(archive_path).write_bytes(b"<orders><order>")

        with pytest.raises(StagingFileExistsError):
            make_coordinator(recording_store).run()

        assert recording_store.fetch_calls == 0

    def test_existing_lock_is_left_in_place(self, make_coordinator, recording_store, lock_path):
        lock_path.write_text("31337")

        with pytest.raises(LockHeldError):
            make_coordinator(recording_store).run()

        assert lock_path.read_text() == "31337"
        assert recording_store.fetch_calls == 0

    def test_lock_taken_between_check_and_acquire(
        self, make_coordinator, recording_store, archive_path, lock_path
    ):
        class RacingChecker(SafetyChecker):
            def enforce(self):
                verdict = super().enforce()
                lock_path.write_text("31337")
                return verdict

        coordinator = make_coordinator(
            recording_store, safety_checker=RacingChecker(archive_path, lock_path)
        )

        with pytest.raises(LockHeldError):
            coordinator.run()

        assert coordinator.history == [S.START, S.SAFETY_CHECKED, S.ABORTED]
        assert lock_path.read_text() == "31337"
        assert recording_store.fetch_calls == 0
        assert not archive_path.exists()

    def test_concurrent_run_is_excluded(self, make_coordinator, order_documents, tmp_path):
        inner_errors = []

        class ReentrantStore(RecordingStore):
            def fetch_all(self):
                # A second run starts while the first holds the lock
                try:
                    make_coordinator(
                        RecordingStore(order_documents),
                        archive_path=tmp_path / "other.xml",
                    ).run()
                except LockHeldError as e:
                    inner_errors.append(e)
                return super().fetch_all()

        make_coordinator(ReentrantStore(order_documents)).run()

        assert len(inner_errors) == 1
        assert not (tmp_path / "other.xml").exists()


class TestFailures:

    def test_fetch_failure(self, make_coordinator, recording_store, archive_path, lock_path):
        recording_store.fetch_error = TimeoutError("deadline exceeded")
        coordinator = make_coordinator(recording_store)

        with pytest.raises(FetchError) as exc_info:
            coordinator.run()

        assert isinstance(exc_info.value.cause, TimeoutError)
        assert coordinator.history == [*LOCKED_PREFIX, S.ABORTED]
        assert coordinator.report.state == S.ABORTED
        assert_untouched(recording_store, archive_path, lock_path)

    def test_malformed_document(self, make_coordinator, archive_path, lock_path):
        store = RecordingStore([
            {"uid": "u1", "date": "2024-01-01T00:00:00Z"},
            {"uid": "u2"},
        ])
        coordinator = make_coordinator(store)

        with pytest.raises(DocumentShapeError) as exc_info:
            coordinator.run()

        assert exc_info.value.document_index == 1
        assert coordinator.history == [*LOCKED_PREFIX, S.FETCHED, S.ABORTED]
        assert_untouched(store, archive_path, lock_path)
        assert len(store) == 2

    def test_unarchivable_uid_aborts_before_write(self, make_coordinator, archive_path, lock_path):
        store = RecordingStore([
            {"uid": "u1", "date": "2024-01-01T00:00:00Z"},
            {"uid": "u\x01", "date": "2024-01-02T00:00:00Z"},
        ])
        coordinator = make_coordinator(store)

        with pytest.raises(ArchiveWriteError, match="XML 1.0 cannot represent"):
            coordinator.run()

        assert coordinator.history == [*LOCKED_PREFIX, S.FETCHED, S.TRANSFORMED, S.ABORTED]
        assert_untouched(store, archive_path, lock_path)
        assert not staging_path_for(archive_path).exists()
        assert len(store) == 2

    def test_item_failure_policy(self, make_coordinator, archive_path, lock_path):
        store = RecordingStore([{
            "uid": "u1", "date": "2024-01-01T00:00:00Z", "products": ["nope"],
        }])
        transformer = RecordTransformer(item_error_policy=ItemErrorPolicy.FAIL)

        with pytest.raises(ProductDecodeError):
            make_coordinator(store, transformer=transformer).run()

        assert_untouched(store, archive_path, lock_path)

    def test_archive_write_failure(self, make_coordinator, recording_store, archive_path, lock_path):
        fs = FaultyFileSystem(replace=OSError(errno.ENOSPC, "No space left on device"))
        coordinator = make_coordinator(recording_store, fs=fs)

        with pytest.raises(ArchiveWriteError):
            coordinator.run()

        assert coordinator.history == [*LOCKED_PREFIX, S.FETCHED, S.TRANSFORMED, S.ABORTED]
        assert_untouched(recording_store, archive_path, lock_path)
        assert not staging_path_for(archive_path).exists()
        assert len(recording_store) == 2

    def test_crash_during_commit_blocks_rerun(
        self, make_coordinator, recording_store, archive_path, lock_path
    ):
        fs = FaultyFileSystem(replace=SimulatedCrash())

        with pytest.raises(SimulatedCrash):
            make_coordinator(recording_store, fs=fs).run()

        assert_untouched(recording_store, archive_path, lock_path)
        assert staging_path_for(archive_path).exists()

        rerun = make_coordinator(recording_store)
        with pytest.raises(StagingFileExistsError):
            rerun.run()
        assert recording_store.fetch_calls == 1
        assert len(recording_store) == 2

    def test_purge_failure_keeps_archive(self, make_coordinator, recording_store, archive_path, lock_path):
        recording_store.delete_error = ConnectionError("unavailable")
        coordinator = make_coordinator(recording_store)

        with pytest.raises(PurgeError) as exc_info:
            coordinator.run()

        fetched = [document.reference for document in recording_store.fetched]
        assert exc_info.value.undeleted == fetched
        assert coordinator.history == [
            *LOCKED_PREFIX, S.FETCHED, S.TRANSFORMED, S.ARCHIVED, S.ABORTED,
        ]
        assert len(ArchiveReader(archive_path).read()) == 2
        assert len(recording_store) == 2
        assert not lock_path.exists()

    def test_store_purge_error_passes_through(self, make_coordinator, recording_store):
        recording_store.delete_error = PurgeError("orders", undeleted=["partial"])

        with pytest.raises(PurgeError) as exc_info:
            make_coordinator(recording_store).run()

        assert exc_info.value.undeleted == ["partial"]


class TestMetrics:

    def test_successful_run(self, make_coordinator, recording_store, metric_value):
        runs = metric_value("order_archiver_transfer_runs_total", outcome="done")
        fetched = metric_value("order_archiver_documents_fetched_total", collection="orders")
        archived = metric_value("order_archiver_orders_archived_total", format="xml")

        make_coordinator(recording_store).run()

        assert metric_value("order_archiver_transfer_runs_total", outcome="done") == runs + 1
        assert metric_value("order_archiver_documents_fetched_total", collection="orders") == fetched + 2
        assert metric_value("order_archiver_orders_archived_total", format="xml") == archived + 2

    def test_aborted_run_records_stage(self, make_coordinator, recording_store, metric_value):
        recording_store.fetch_error = TimeoutError("deadline exceeded")
        before = metric_value("order_archiver_transfer_runs_total", outcome="fetch")

        with pytest.raises(FetchError):
            make_coordinator(recording_store).run()

        assert metric_value("order_archiver_transfer_runs_total", outcome="fetch") == before + 1
