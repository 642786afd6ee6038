"""
SafetyVerdict model: outcome of the pre-flight safety check.
"""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, model_validator


class BlockReason(str, Enum):
    """Why a run may not proceed."""

    STAGING_FILE_EXISTS = "staging_file_exists"
    ARCHIVE_EXISTS = "archive_exists"
    LOCK_HELD = "lock_held"


class SafetyVerdict(BaseModel):
    """
    Result of checking the filesystem before a transfer.

    Attributes:
        proceed: True when nothing blocks the run
        reason: Blocking reason (None when proceed is True)
        path: Offending path (None when proceed is True)
        message: Operator-facing description
    """

    proceed: bool
    reason: BlockReason | None = None
    path: Path | None = None
    message: str = "proceed"

    @model_validator(mode="after")
    def check_reason_consistency(self):
        """A blocked verdict must name its reason and path."""
        if self.proceed and self.reason is not None:
            raise ValueError("proceed=True but a block reason is set")
        if not self.proceed and (self.reason is None or self.path is None):
            raise ValueError("blocked verdict requires reason and path")
        return self

    class Config:
        frozen = True
