"""
Data models for the order archiver.

All models use Pydantic for runtime validation and type safety.
"""

from .order import Order, Product
from .safety_verdict import BlockReason, SafetyVerdict
from .store_document import StoreDocument
from .transfer_report import (
    ItemDecodeIssue,
    TransferReport,
    TransferState,
    TransformResult,
)

__all__ = [
    "Order",
    "Product",
    "StoreDocument",
    "BlockReason",
    "SafetyVerdict",
    "ItemDecodeIssue",
    "TransformResult",
    "TransferState",
    "TransferReport",
]
