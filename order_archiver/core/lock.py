"""
Process-level lock marker.

The marker is a ``.pid`` file in the running program's own directory holding
the decimal process id. It is keyed to the install, not to the archive path,
so two runs from the same install never overlap even when they target
different archives.

The lock is advisory: cooperating runs check for the marker before starting.
A marker left behind by a killed process must be removed by an operator.
"""

import os
import sys
from pathlib import Path

from order_archiver.core.errors import LockAcquisitionError, LockHeldError
from order_archiver.core.filesystem import FileSystem, LocalFileSystem
from order_archiver.observability.logger import get_logger

LOCK_FILENAME = ".pid"

logger = get_logger(__name__)


def default_lock_path() -> Path:
    """Lock marker path derived from the directory of the running program."""
    return Path(os.path.abspath(os.path.dirname(sys.argv[0]))) / LOCK_FILENAME


class LockHandle:
    """
    A held lock marker.

    Use as a context manager so the marker is removed on every exit path:

        with guard.acquire():
            ...
    """

    def __init__(self, path: Path, pid: int, fs: FileSystem):
        self.path = path
        self.pid = pid
        self.fs = fs
        self.released = False

    def release(self) -> None:
        """
        Remove the marker.

        Failures are logged and never raised: a marker that cannot be removed
        must not turn a successful transfer into a failed one.
        """
        if self.released:
            return
        self.released = True
        try:
            self.fs.remove(self.path)
        except OSError as e:
            logger.warning(
                f"Could not remove lock marker {self.path}: {e}",
                extra={"lock_path": str(self.path), "error_message": str(e)},
            )
        else:
            logger.debug(f"Released lock marker {self.path}")

    def __enter__(self) -> "LockHandle":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

    def __repr__(self) -> str:
        return f"LockHandle(path={self.path}, pid={self.pid}, released={self.released})"


class LockGuard:
    """Creates the lock marker and hands out a LockHandle for it."""

    def __init__(
        self,
        lock_path: str | Path | None = None,
        fs: FileSystem | None = None,
        pid: int | None = None,
    ):
        self.lock_path = Path(lock_path) if lock_path else default_lock_path()
        self.fs = fs or LocalFileSystem()
        self.pid = pid if pid is not None else os.getpid()

    def acquire(self) -> LockHandle:
        """
        Write the current pid to the marker path.

        The marker is created exclusively, so a run that appeared between the
        safety check and this call is reported rather than overwritten.

        Raises:
            LockHeldError: If the marker already exists
            LockAcquisitionError: If the marker cannot be written
        """
        try:
            self.fs.create_exclusive(self.lock_path, str(self.pid).encode("ascii"))
        except FileExistsError as e:
            raise LockHeldError(self.lock_path) from e
        except OSError as e:
            raise LockAcquisitionError(self.lock_path, e) from e

        logger.info(
            f"Acquired lock marker {self.lock_path}",
            extra={"lock_path": str(self.lock_path), "pid": self.pid},
        )
        return LockHandle(self.lock_path, self.pid, self.fs)
