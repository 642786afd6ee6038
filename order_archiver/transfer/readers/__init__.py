"""
Order store readers.

FirestoreOrderStore is not imported here so the Firebase SDK is only loaded
by callers that talk to Firestore.
"""

from .store import InMemoryOrderStore, OrderStore

__all__ = [
    "OrderStore",
    "InMemoryOrderStore",
]
