"""
Transfer coordinator.

Drives one run through a strictly linear sequence:

    START → SAFETY_CHECKED → LOCKED → FETCHED → TRANSFORMED → ARCHIVED → PURGED → DONE

Any failure moves the run to ABORTED and propagates. The lock marker, once
acquired, is released on every exit path. Source documents are only deleted
after the archive commit succeeded, and the delete covers exactly the
documents returned by this run's single fetch.

If the purge fails after a successful commit, the archive holds orders whose
source documents still exist; the next run (into a new archive path) will
archive them again. Orders are never lost, but may be archived twice.
"""

import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from order_archiver.core.config import ArchiverConfig
from order_archiver.core.errors import (
    ArchiverError,
    FetchError,
    ProductDecodeError,
    PurgeError,
)
from order_archiver.core.filesystem import FileSystem, LocalFileSystem
from order_archiver.core.lock import LockGuard
from order_archiver.core.models import StoreDocument, TransferReport, TransferState
from order_archiver.core.safety import SafetyChecker
from order_archiver.observability.logger import get_logger, log_operation
from order_archiver.observability.metrics import MetricsCollector
from order_archiver.transfer.readers import OrderStore
from order_archiver.transfer.transformer import RecordTransformer
from order_archiver.transfer.writers import ArchiveWriter, get_codec

logger = get_logger(__name__)


class TransferCoordinator:
    """
    Orchestrates a single order transfer.

    Flow:
    1. Check that no staging file, archive or lock marker exists
    2. Acquire the lock marker
    3. Fetch every document from the store
    4. Transform documents into orders
    5. Write the archive atomically
    6. Delete the fetched documents from the store
    7. Release the lock marker
    """

    def __init__(
        self,
        store: OrderStore,
        archive_path: str | Path,
        lock_guard: LockGuard | None = None,
        safety_checker: SafetyChecker | None = None,
        transformer: RecordTransformer | None = None,
        writer: ArchiveWriter | None = None,
        fs: FileSystem | None = None,
        metrics: MetricsCollector | None = None,
        dry_run: bool = False,
    ):
        """
        Initialize transfer coordinator.

        Args:
            store: Order store to migrate from
            archive_path: Archive file to create
            lock_guard: Lock marker guard (defaults to ``.pid`` in the program directory)
            safety_checker: Pre-flight gate (defaults to one sharing the guard's lock path)
            transformer: Document to order conversion
            writer: Atomic archive writer
            fs: Filesystem used by the default components
            metrics: Metrics collector
            dry_run: Fetch and transform only; write and delete nothing
        """
        self.store = store
        self.archive_path = Path(archive_path)
        self.fs = fs or LocalFileSystem()
        self.lock_guard = lock_guard or LockGuard(fs=self.fs)
        self.safety_checker = safety_checker or SafetyChecker(
            self.archive_path, self.lock_guard.lock_path, self.fs
        )
        self.transformer = transformer or RecordTransformer()
        self.writer = writer or ArchiveWriter(self.archive_path, fs=self.fs)
        self.metrics = metrics or MetricsCollector(
            collection=store.collection, archive_format=self.writer.codec.name
        )
        self.dry_run = dry_run

        self.state = TransferState.START
        self.history: list[TransferState] = [TransferState.START]
        self.report = TransferReport(
            state=self.state, archive_path=self.archive_path, dry_run=dry_run
        )

    @classmethod
    def from_config(
        cls,
        store: OrderStore,
        archive_path: str | Path,
        config: ArchiverConfig,
        fs: FileSystem | None = None,
        dry_run: bool = False,
    ) -> "TransferCoordinator":
        """Build a coordinator with components set up from configuration."""
        fs = fs or LocalFileSystem()
        return cls(
            store=store,
            archive_path=archive_path,
            lock_guard=LockGuard(config.lock_path, fs=fs),
            transformer=RecordTransformer.from_config(config),
            writer=ArchiveWriter(archive_path, codec=get_codec(config.archive_format), fs=fs),
            fs=fs,
            dry_run=dry_run,
        )

    def run(self) -> TransferReport:
        """
        Execute the transfer.

        Returns:
            TransferReport for the finished run

        Raises:
            PreconditionError: Blocked by the safety check (nothing acquired)
            LockAcquisitionError: The lock marker could not be written
            FetchError: The store fetch failed
            DocumentShapeError: A document is malformed
            ArchiveWriteError: The archive could not be committed (nothing deleted)
            PurgeError: The archive is committed but the source delete failed
        """
        if self.state != TransferState.START:
            raise RuntimeError("a TransferCoordinator can only run once")

        started = time.monotonic()
        logger.info(
            f"Starting transfer into {self.archive_path}",
            extra={"archive_path": str(self.archive_path), "dry_run": self.dry_run},
        )

        try:
            # Step 1: Safety check
            with self._stage("safety_check"):
                self.safety_checker.enforce()
            self._advance(TransferState.SAFETY_CHECKED)

            # Step 2: Lock
            with self._stage("lock"):
                handle = self.lock_guard.acquire()
            self._advance(TransferState.LOCKED)

            # Steps 3-6 run while holding the lock
            with handle:
                self._transfer()
        except BaseException as e:
            self._advance(TransferState.ABORTED)
            self.metrics.record_outcome(getattr(e, "stage", "unexpected"))
            raise
        finally:
            self.report.state = self.state
            self.report.duration_seconds = round(time.monotonic() - started, 3)

        self.metrics.record_outcome("dry_run" if self.dry_run else "done")
        logger.info(
            "Transfer complete",
            extra={
                "archive_path": str(self.archive_path),
                "documents_fetched": self.report.documents_fetched,
                "orders_archived": self.report.orders_archived,
                "documents_purged": self.report.documents_purged,
                "item_issues": len(self.report.item_issues),
                "dry_run": self.dry_run,
            },
        )
        return self.report

    def _transfer(self) -> None:
        # Step 3: Fetch
        with self._stage("fetch", collection=self.store.collection):
            documents = self._fetch()
        self.report.documents_fetched = len(documents)
        self.metrics.record_fetch(len(documents))
        logger.info(f"Fetched {len(documents)} documents")
        self._advance(TransferState.FETCHED)

        # Step 4: Transform
        try:
            with self._stage("transform"):
                result = self.transformer.transform(documents)
        except ProductDecodeError:
            self.metrics.record_decode_failure("failed")
            raise
        zeroed = sum(1 for issue in result.issues if issue.action == "zeroed")
        self.report.products_decoded = result.product_count - zeroed
        self.report.item_issues = list(result.issues)
        self.metrics.record_transform(
            self.report.products_decoded, [issue.action for issue in result.issues]
        )
        self._advance(TransferState.TRANSFORMED)

        if self.dry_run:
            # Encoding still runs so a dry run catches unserializable orders
            self.writer.serialize(result.orders)
            logger.info("DRY RUN: archive not written, no documents deleted")
            self._advance(TransferState.DONE)
            return

        # Step 5: Archive
        with self._stage("archive"):
            self.writer.write(result.orders)
        self.report.orders_archived = len(result.orders)
        self.metrics.record_archive(len(result.orders))
        self._advance(TransferState.ARCHIVED)

        # Step 6: Purge exactly the fetched documents
        with self._stage("purge", collection=self.store.collection):
            self._purge(documents)
        self.report.documents_purged = len(documents)
        self.metrics.record_purge(len(documents))
        self._advance(TransferState.PURGED)

        self._advance(TransferState.DONE)

    def _fetch(self) -> list[StoreDocument]:
        try:
            return list(self.store.fetch_all())
        except ArchiverError:
            raise
        except Exception as e:
            raise FetchError(self.store.collection, e) from e

    def _purge(self, documents: list[StoreDocument]) -> None:
        try:
            self.store.delete_batch(documents)
        except ArchiverError:
            raise
        except Exception as e:
            raise PurgeError(
                self.store.collection, e, undeleted=[d.reference for d in documents]
            ) from e

    def _advance(self, state: TransferState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug(f"Transfer state: {state.value}", extra={"state": state.value})

    @contextmanager
    def _stage(self, name: str, **extra) -> Iterator[None]:
        started = time.monotonic()
        try:
            with log_operation(name, logger=logger, stage=name, **extra):
                yield
        finally:
            self.metrics.record_stage(name, time.monotonic() - started)
