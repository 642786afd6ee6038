"""
Filesystem capability used by the safety check, lock guard and archive writer.

The components only touch the disk through this interface so tests can
simulate concurrent lock holders, crashes between staging and commit, and
I/O failures without real processes or full disks.
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path


class FileSystem(ABC):
    """Minimal set of filesystem operations needed by a transfer run."""

    @abstractmethod
    def exists(self, path: Path) -> bool:
        pass

    @abstractmethod
    def create_exclusive(self, path: Path, data: bytes) -> None:
        """
        Create ``path`` as a new file containing ``data``, durably.

        Raises:
            FileExistsError: If the path already exists
            OSError: On any other write failure; the path is left absent
        """
        pass

    @abstractmethod
    def replace(self, source: Path, target: Path) -> None:
        """Atomically rename ``source`` onto ``target``."""
        pass

    @abstractmethod
    def remove(self, path: Path) -> None:
        pass

    def read_bytes(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def sync_directory(self, path: Path) -> None:
        """Flush directory metadata after a rename; no-op by default."""


class LocalFileSystem(FileSystem):
    """FileSystem backed by the local disk."""

    def exists(self, path: Path) -> bool:
        return os.path.lexists(path)

    def create_exclusive(self, path: Path, data: bytes) -> None:
        fd = os.open(str(path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
        except BaseException:
            # The path is ours from O_EXCL on; never leave a partial file behind
            os.remove(path)
            raise

    def replace(self, source: Path, target: Path) -> None:
        os.replace(source, target)

    def remove(self, path: Path) -> None:
        os.remove(path)

    def sync_directory(self, path: Path) -> None:
        # Directory fds are not supported everywhere (e.g. Windows)
        if os.name == "nt":
            return
        fd = os.open(str(path), os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
