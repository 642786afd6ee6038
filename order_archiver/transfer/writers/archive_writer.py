"""
Atomic archive writer.

Commit protocol:
1. serialize every order into one buffer
2. create ``<archive>.tmp`` as a new file, write the buffer, fsync
3. rename the staging file onto the archive path (the single commit point)
4. fsync the directory so the rename survives a power loss

A crash before step 3 leaves only the staging file, which blocks the next
run at the safety check; a crash after it leaves a complete archive. The
archive path never shows a partial write.
"""

from pathlib import Path
from typing import Sequence

from order_archiver.core.errors import ArchiveWriteError
from order_archiver.core.filesystem import FileSystem, LocalFileSystem
from order_archiver.core.models import Order
from order_archiver.core.safety import staging_path_for
from order_archiver.observability.logger import get_logger
from order_archiver.transfer.writers.codecs import ArchiveCodec, XmlArchiveCodec

logger = get_logger(__name__)


class ArchiveWriter:
    """
    Writes the full order set to the archive path exactly once.
    """

    def __init__(
        self,
        archive_path: str | Path,
        codec: ArchiveCodec | None = None,
        fs: FileSystem | None = None,
    ):
        """
        Initialize archive writer.

        Args:
            archive_path: Final archive path
            codec: Serialization format (XML by default)
            fs: Filesystem capability (local disk by default)
        """
        self.archive_path = Path(archive_path)
        self.staging_path = staging_path_for(self.archive_path)
        self.codec = codec or XmlArchiveCodec()
        self.fs = fs or LocalFileSystem()

    def serialize(self, orders: Sequence[Order]) -> bytes:
        """
        Encode all orders into archive bytes.

        Raises:
            ArchiveWriteError: If the orders cannot be encoded
        """
        try:
            return self.codec.encode(orders)
        except (ValueError, TypeError) as e:
            raise ArchiveWriteError(self.archive_path, e) from e

    def write(self, orders: Sequence[Order]) -> int:
        """
        Serialize and atomically commit the archive.

        Args:
            orders: Every order of the run, in archive order

        Returns:
            Number of bytes committed

        Raises:
            ArchiveWriteError: Naming the staging or archive path that failed
        """
        data = self.serialize(orders)
        self.commit(data)
        logger.info(
            f"Committed {len(orders)} orders to {self.archive_path}",
            extra={"archive_path": str(self.archive_path), "order_count": len(orders), "bytes": len(data)},
        )
        return len(data)

    def commit(self, data: bytes) -> None:
        """Write ``data`` to the staging file and rename it onto the archive path."""
        try:
            self.fs.create_exclusive(self.staging_path, data)
        except FileExistsError as e:
            # Not ours: another writer or a crashed run left it
            raise ArchiveWriteError(self.staging_path, e) from e
        except OSError as e:
            self._discard_staging()
            raise ArchiveWriteError(self.staging_path, e) from e

        try:
            self.fs.replace(self.staging_path, self.archive_path)
        except OSError as e:
            self._discard_staging()
            raise ArchiveWriteError(self.archive_path, e) from e

        try:
            self.fs.sync_directory(self.archive_path.parent)
        except OSError as e:
            raise ArchiveWriteError(self.archive_path.parent, e) from e

    def _discard_staging(self) -> None:
        """Best-effort removal of a staging file this writer created."""
        if not self.fs.exists(self.staging_path):
            return
        try:
            self.fs.remove(self.staging_path)
        except OSError as e:
            logger.warning(
                f"Could not remove staging file {self.staging_path}: {e}",
                extra={"staging_path": str(self.staging_path), "error_message": str(e)},
            )
