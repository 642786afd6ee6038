"""
Archive reader, for inspecting committed archives.
"""

from pathlib import Path

from order_archiver.core.filesystem import FileSystem, LocalFileSystem
from order_archiver.core.models import Order
from order_archiver.transfer.writers.codecs import ArchiveCodec, codec_for_path


class ArchiveReader:
    """Parses a committed archive back into orders."""

    def __init__(
        self,
        archive_path: str | Path,
        codec: ArchiveCodec | None = None,
        fs: FileSystem | None = None,
    ):
        self.archive_path = Path(archive_path)
        self.codec = codec or codec_for_path(self.archive_path)
        self.fs = fs or LocalFileSystem()

    def read(self) -> list[Order]:
        """
        Raises:
            FileNotFoundError: If the archive does not exist
            ValueError: If the archive is malformed
        """
        return self.codec.decode(self.fs.read_bytes(self.archive_path))
