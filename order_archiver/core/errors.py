"""
Error taxonomy for a transfer run.

Every error that aborts a run derives from ArchiverError and carries the
process exit status the CLI maps it to, plus the pipeline stage it came from.

Exit statuses:
    1  unexpected failure
    3  precondition (stale staging file, existing archive, active lock)
    4  lock acquisition
    5  store fetch
    6  document shape / line item decode
    7  archive write
    8  store purge
"""

from pathlib import Path
from typing import Any, Sequence

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_USAGE = 2
EXIT_PRECONDITION = 3
EXIT_LOCK = 4
EXIT_FETCH = 5
EXIT_SHAPE = 6
EXIT_ARCHIVE = 7
EXIT_PURGE = 8
EXIT_INTERRUPTED = 130


class ArchiverError(Exception):
    """Base class for errors that abort a transfer run."""

    exit_code = EXIT_UNEXPECTED
    stage = "transfer"


class PreconditionError(ArchiverError):
    """The filesystem is not in a state that allows a run to start."""

    exit_code = EXIT_PRECONDITION
    stage = "safety_check"

    def __init__(self, path: Path, message: str):
        self.path = Path(path)
        self.message = message
        super().__init__(f"{message}: {self.path}")


class StagingFileExistsError(PreconditionError):
    """A staging file from an interrupted write is still present."""

    def __init__(self, path: Path):
        super().__init__(path, "incomplete prior write detected")


class ArchiveExistsError(PreconditionError):
    """The target archive already exists and will not be overwritten."""

    def __init__(self, path: Path):
        super().__init__(path, "archive already present; refuses to overwrite")


class LockHeldError(PreconditionError):
    """Another run holds the lock marker."""

    def __init__(self, path: Path):
        super().__init__(path, "another run is active, check lock marker")


class LockAcquisitionError(ArchiverError):
    """The lock marker could not be written."""

    exit_code = EXIT_LOCK
    stage = "lock"

    def __init__(self, path: Path, cause: OSError):
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"error writing lock marker {self.path}: {cause}")


class StoreError(ArchiverError):
    """A call to the remote order store failed."""

    def __init__(self, operation: str, collection: str, cause: BaseException | None = None):
        self.operation = operation
        self.collection = collection
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"error during {operation} on collection '{collection}'{detail}")


class StoreConnectionError(StoreError):
    """The store client could not be set up (credentials, project)."""

    exit_code = EXIT_FETCH
    stage = "connect"

    def __init__(self, collection: str, cause: BaseException | None = None):
        super().__init__("connect", collection, cause)


class FetchError(StoreError):
    """Retrieving documents from the store failed."""

    exit_code = EXIT_FETCH
    stage = "fetch"

    def __init__(self, collection: str, cause: BaseException | None = None):
        super().__init__("fetch", collection, cause)


class PurgeError(StoreError):
    """
    Deleting the transferred documents from the store failed.

    ``undeleted`` lists the references the store did not confirm as deleted.
    The archive is already committed at this point, so a later run will
    archive those documents again.
    """

    exit_code = EXIT_PURGE
    stage = "purge"

    def __init__(
        self,
        collection: str,
        cause: BaseException | None = None,
        undeleted: Sequence[Any] = (),
    ):
        self.undeleted = list(undeleted)
        super().__init__("purge", collection, cause)


class DocumentShapeError(ArchiverError):
    """A fetched document is missing a required field or has the wrong shape."""

    exit_code = EXIT_SHAPE
    stage = "transform"

    def __init__(self, document_index: int, field_name: str, message: str):
        self.document_index = document_index
        self.field_name = field_name
        self.message = message
        super().__init__(f"document {document_index}: field '{field_name}' {message}")


class ProductDecodeError(DocumentShapeError):
    """A line item failed to decode under the 'fail' item error policy."""

    def __init__(self, document_index: int, item_index: int, field_name: str, message: str):
        self.item_index = item_index
        super().__init__(document_index, f"{field_name}[{item_index}]", message)


class ArchiveWriteError(ArchiverError):
    """Serializing or committing the archive failed."""

    exit_code = EXIT_ARCHIVE
    stage = "archive"

    def __init__(self, path: Path, cause: BaseException):
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"error writing file {self.path}: {cause}")
