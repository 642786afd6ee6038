"""
Order store interface and an in-memory implementation.
"""

import uuid
from abc import ABC, abstractmethod
from typing import Any, Iterable, Sequence

from order_archiver.core.models import StoreDocument


class OrderStore(ABC):
    """
    Remote document store holding the orders to migrate.

    Both calls are synchronous and may raise store-specific exceptions; the
    coordinator wraps anything that is not already an ArchiverError.
    """

    collection: str = "orders"

    @abstractmethod
    def fetch_all(self) -> list[StoreDocument]:
        """
        Return every document currently in the collection.

        Implementations should return documents newest first by the
        configured timestamp field; callers never re-sort.
        """
        pass

    @abstractmethod
    def delete_batch(self, documents: Sequence[StoreDocument]) -> None:
        """
        Delete exactly the given documents.

        Raises:
            PurgeError: Listing the references that were not deleted, when
                the store can tell
        """
        pass


class InMemoryOrderStore(OrderStore):
    """
    Order store kept in a dict, keyed by document id.

    Useful for tests and for embedding the transfer in other tools. Deleting
    an id that no longer exists is a no-op, matching document stores that
    treat deletes as idempotent.
    """

    def __init__(
        self,
        documents: Iterable[dict[str, Any]] = (),
        collection: str = "orders",
        order_by: str | None = None,
    ):
        """
        Args:
            documents: Initial document bodies, stored in iteration order
            collection: Collection name reported in errors
            order_by: Field to sort on (descending) when fetching; None keeps
                insertion order
        """
        self.collection = collection
        self.order_by = order_by
        self._documents: dict[str, dict[str, Any]] = {}
        for data in documents:
            self.add(data)

    def add(self, data: dict[str, Any], doc_id: str | None = None) -> str:
        """Store a document and return its id."""
        doc_id = doc_id or uuid.uuid4().hex
        self._documents[doc_id] = dict(data)
        return doc_id

    def fetch_all(self) -> list[StoreDocument]:
        items = list(self._documents.items())
        if self.order_by is not None:
            items.sort(key=lambda item: item[1][self.order_by], reverse=True)
        return [StoreDocument(reference=doc_id, data=dict(data)) for doc_id, data in items]

    def delete_batch(self, documents: Sequence[StoreDocument]) -> None:
        for document in documents:
            self._documents.pop(document.reference, None)

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents
