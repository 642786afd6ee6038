"""
Transfer bookkeeping models: coordinator states, decode issues and the run report.
"""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from .order import Order


class TransferState(str, Enum):
    """Linear states of a transfer run; ABORTED is reachable from any step."""

    START = "start"
    SAFETY_CHECKED = "safety_checked"
    LOCKED = "locked"
    FETCHED = "fetched"
    TRANSFORMED = "transformed"
    ARCHIVED = "archived"
    PURGED = "purged"
    DONE = "done"
    ABORTED = "aborted"


class ItemDecodeIssue(BaseModel):
    """
    A line item that could not be decoded.

    Attributes:
        document_index: Position of the document in the fetched sequence
        item_index: Position of the item within the document's line items
        uid: Identifier of the owning order
        error: Decoder error message
        action: What was done with the item ("skipped", "zeroed")
    """

    document_index: int = Field(..., ge=0)
    item_index: int = Field(..., ge=0)
    uid: str
    error: str
    action: str


class TransformResult(BaseModel):
    """Orders built from one fetch, plus per-item decode issues."""

    orders: list[Order] = Field(default_factory=list)
    issues: list[ItemDecodeIssue] = Field(default_factory=list)

    @property
    def product_count(self) -> int:
        return sum(len(order.products) for order in self.orders)


class TransferReport(BaseModel):
    """
    Summary of a completed transfer run.

    Attributes:
        state: Final coordinator state
        archive_path: Target archive path
        documents_fetched: Documents returned by the store
        orders_archived: Orders committed to the archive (0 on dry run)
        products_decoded: Line items successfully decoded
        item_issues: Line items that failed to decode
        documents_purged: Documents deleted from the store (0 on dry run)
        dry_run: Whether writes and deletions were skipped
        duration_seconds: Wall-clock time of the run
    """

    state: TransferState
    archive_path: Path
    documents_fetched: int = 0
    orders_archived: int = 0
    products_decoded: int = 0
    item_issues: list[ItemDecodeIssue] = Field(default_factory=list)
    documents_purged: int = 0
    dry_run: bool = False
    duration_seconds: float = 0.0
