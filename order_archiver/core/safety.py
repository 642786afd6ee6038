"""
Pre-flight safety check.

Decides whether a transfer may start against a given archive path. Checks run
in a fixed order and stop at the first match:

1. a staging file ``<archive>.tmp`` exists (an earlier write never committed)
2. the archive itself exists (never overwritten)
3. the lock marker exists (another run is active, or a killed run left it)

The check only reads the filesystem, so running it twice against an
unchanged filesystem gives the same verdict.
"""

from pathlib import Path

from order_archiver.core.errors import (
    ArchiveExistsError,
    LockHeldError,
    PreconditionError,
    StagingFileExistsError,
)
from order_archiver.core.filesystem import FileSystem, LocalFileSystem
from order_archiver.core.models import BlockReason, SafetyVerdict

STAGING_SUFFIX = ".tmp"

_BLOCK_ERRORS: dict[BlockReason, type[PreconditionError]] = {
    BlockReason.STAGING_FILE_EXISTS: StagingFileExistsError,
    BlockReason.ARCHIVE_EXISTS: ArchiveExistsError,
    BlockReason.LOCK_HELD: LockHeldError,
}


def staging_path_for(archive_path: str | Path) -> Path:
    """Return the staging file path used while writing ``archive_path``."""
    archive_path = Path(archive_path)
    return archive_path.with_name(archive_path.name + STAGING_SUFFIX)


class SafetyChecker:
    """Read-only gate run before the lock is taken."""

    def __init__(
        self,
        archive_path: str | Path,
        lock_path: str | Path,
        fs: FileSystem | None = None,
    ):
        self.archive_path = Path(archive_path)
        self.staging_path = staging_path_for(self.archive_path)
        self.lock_path = Path(lock_path)
        self.fs = fs or LocalFileSystem()

    def check(self) -> SafetyVerdict:
        """Return a proceed verdict or the first blocking reason found."""
        if self.fs.exists(self.staging_path):
            return SafetyVerdict(
                proceed=False,
                reason=BlockReason.STAGING_FILE_EXISTS,
                path=self.staging_path,
                message=f"incomplete prior write detected: {self.staging_path}",
            )

        if self.fs.exists(self.archive_path):
            return SafetyVerdict(
                proceed=False,
                reason=BlockReason.ARCHIVE_EXISTS,
                path=self.archive_path,
                message=f"archive already present; refuses to overwrite: {self.archive_path}",
            )

        if self.fs.exists(self.lock_path):
            return SafetyVerdict(
                proceed=False,
                reason=BlockReason.LOCK_HELD,
                path=self.lock_path,
                message=f"another run is active, check {self.lock_path}",
            )

        return SafetyVerdict(proceed=True)

    def enforce(self) -> SafetyVerdict:
        """
        Run the check and raise if the run is blocked.

        Raises:
            PreconditionError: The subclass matching the block reason
        """
        verdict = self.check()
        if not verdict.proceed:
            raise _BLOCK_ERRORS[verdict.reason](verdict.path)
        return verdict
