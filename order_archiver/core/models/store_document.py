"""
StoreDocument model: a raw document as returned by an order store.
"""

from typing import Any

from pydantic import BaseModel


class StoreDocument(BaseModel):
    """
    A raw document fetched from the remote store.

    The reference is opaque to everything but the store that produced it;
    it is handed back unchanged when the document is purged.

    Attributes:
        reference: Store-specific handle used for deletion
        data: String-keyed document fields
    """

    reference: Any
    data: dict[str, Any]

    class Config:
        frozen = True
        arbitrary_types_allowed = True
