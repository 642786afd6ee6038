"""
Order transfer pipeline: fetch → transform → archive → purge.
"""

from .coordinator import TransferCoordinator
from .readers import InMemoryOrderStore, OrderStore
from .transformer import RecordTransformer
from .writers import ArchiveReader, ArchiveWriter

__all__ = [
    "TransferCoordinator",
    "OrderStore",
    "InMemoryOrderStore",
    "RecordTransformer",
    "ArchiveWriter",
    "ArchiveReader",
]
