"""Entity stores and the document store backends they synchronise with."""

from herdbook.store.backends import (
    Document,
    DocumentStore,
    FeedSubscription,
    MemoryDocumentStore,
    Snapshot,
)
from herdbook.store.cache import SnapshotCache
from herdbook.store.entity_store import (
    EntityStore,
    InvoiceStore,
    TransactionStore,
    new_record_id,
)
from herdbook.store.remote import RemoteDocumentStore

__all__ = [
    "Document",
    "DocumentStore",
    "EntityStore",
    "FeedSubscription",
    "InvoiceStore",
    "MemoryDocumentStore",
    "RemoteDocumentStore",
    "Snapshot",
    "SnapshotCache",
    "TransactionStore",
    "new_record_id",
]
