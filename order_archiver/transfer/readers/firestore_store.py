"""
Firestore-backed order store.

Uses the Firebase Admin SDK with a service account key file. Store calls are
made once: the client's automatic retries are disabled, and an optional
timeout bounds each fetch and each delete batch.
"""

import uuid
from pathlib import Path
from typing import Sequence

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core.exceptions import GoogleAPICallError

from order_archiver.core.config import MAX_DELETE_CHUNK_SIZE
from order_archiver.core.errors import PurgeError, StoreConnectionError
from order_archiver.core.models import StoreDocument
from order_archiver.observability.logger import get_logger
from order_archiver.transfer.readers.store import OrderStore

logger = get_logger(__name__)


class FirestoreOrderStore(OrderStore):
    """
    Orders kept in a Firestore collection.

    Firestore caps a write batch at 500 operations, so the purge is committed
    in chunks. Chunks are committed in order; when one fails, every reference
    from that chunk onwards is reported as undeleted.
    """

    def __init__(
        self,
        client,
        collection: str = "orders",
        order_by: str = "date",
        timeout: float | None = None,
        chunk_size: int = MAX_DELETE_CHUNK_SIZE,
    ):
        """
        Args:
            client: google.cloud.firestore.Client
            collection: Collection holding the orders
            order_by: Field to sort on, newest first
            timeout: Seconds allowed per store call (None for no limit)
            chunk_size: Deletes per write batch (at most 500)
        """
        if not 1 <= chunk_size <= MAX_DELETE_CHUNK_SIZE:
            raise ValueError(f"chunk_size must be between 1 and {MAX_DELETE_CHUNK_SIZE}")

        self.client = client
        self.collection = collection
        self.order_by = order_by
        self.timeout = timeout
        self.chunk_size = chunk_size

    @classmethod
    def from_credentials_file(
        cls,
        credentials_path: str | Path,
        collection: str = "orders",
        **kwargs,
    ) -> "FirestoreOrderStore":
        """
        Build a store from a service account key file.

        Raises:
            StoreConnectionError: If the key file is missing or invalid
        """
        try:
            cred = credentials.Certificate(str(credentials_path))
            # A uniquely named app lets several stores coexist in one process
            app = firebase_admin.initialize_app(cred, name=f"order-archiver-{uuid.uuid4().hex}")
            client = firestore.client(app)
        except (OSError, ValueError) as e:
            raise StoreConnectionError(collection, e) from e

        logger.info(
            f"Connected to Firestore project {cred.project_id}",
            extra={"collection": collection, "project_id": cred.project_id},
        )
        return cls(client, collection=collection, **kwargs)

    def _call_options(self) -> dict:
        return {"retry": None, "timeout": self.timeout}

    def fetch_all(self) -> list[StoreDocument]:
        query = self.client.collection(self.collection).order_by(
            self.order_by, direction=firestore.Query.DESCENDING
        )
        snapshots = query.get(**self._call_options())

        return [
            StoreDocument(reference=snapshot.reference, data=snapshot.to_dict() or {})
            for snapshot in snapshots
        ]

    def delete_batch(self, documents: Sequence[StoreDocument]) -> None:
        references = [document.reference for document in documents]

        for start in range(0, len(references), self.chunk_size):
            chunk = references[start:start + self.chunk_size]
            batch = self.client.batch()
            for reference in chunk:
                batch.delete(reference)

            try:
                batch.commit(**self._call_options())
            except GoogleAPICallError as e:
                raise PurgeError(self.collection, e, undeleted=references[start:]) from e

            logger.debug(
                f"Committed delete batch of {len(chunk)} documents",
                extra={"collection": self.collection, "batch_start": start},
            )
