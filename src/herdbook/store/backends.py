"""Document store interface and the in-process implementation.

A document store holds per-entity collections of JSON documents, each keyed
by id and partitioned by owner (tenant). Subscribers receive the full
collection snapshot for their owner after every acknowledged write.
"""

import copy
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any
from uuid import uuid4

import structlog

from herdbook.errors import RemoteStoreError

logger = structlog.get_logger(__name__)

Document = dict[str, Any]
Snapshot = list[tuple[str, Document]]
SnapshotCallback = Callable[[Snapshot], None]
ErrorCallback = Callable[[Exception], None]


class FeedSubscription(ABC):
    """Handle for a live collection feed."""

    @abstractmethod
    async def close(self) -> None:
        """Stop delivering snapshots. Safe to call more than once."""


class DocumentStore(ABC):
    """The four operations the entity stores consume."""

    @abstractmethod
    async def subscribe(
        self,
        collection: str,
        owner_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> FeedSubscription:
        """Subscribe to a collection, filtered to one owner.

        The current snapshot is delivered before this returns; later
        snapshots follow each change. Feed failures after subscribing are
        reported through ``on_error``.

        Raises:
            RemoteStoreError: If the feed cannot be established.
        """

    @abstractmethod
    async def add(
        self,
        collection: str,
        owner_id: str,
        document: Document,
        document_id: str | None = None,
    ) -> str:
        """Add a document, returning its id (store-assigned when not given)."""

    @abstractmethod
    async def update(
        self, collection: str, owner_id: str, document_id: str, document: Document
    ) -> None:
        """Overwrite every field of an existing document."""

    @abstractmethod
    async def delete(self, collection: str, owner_id: str, document_id: str) -> None:
        """Delete a document by id."""

    async def close(self) -> None:
        """Release connections held by the store."""
        return None


class _MemorySubscription(FeedSubscription):
    def __init__(
        self,
        store: "MemoryDocumentStore",
        key: tuple[str, str],
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ):
        self._store = store
        self.key = key
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.active = True

    async def close(self) -> None:
        self.active = False
        self._store._detach(self)


class MemoryDocumentStore(DocumentStore):
    """In-process document store.

    Used for tests, demos and single-process deployments. ``fail_writes`` and
    ``fail_subscribe`` make the store behave as if it were unreachable.
    """

    def __init__(self) -> None:
        self._collections: dict[tuple[str, str], dict[str, Document]] = {}
        self._subscribers: dict[tuple[str, str], list[_MemorySubscription]] = {}
        self.fail_writes = False
        self.fail_subscribe = False
        self.write_count = 0
        self._logger = logger.bind(component="memory_store")

    def documents(self, collection: str, owner_id: str) -> Snapshot:
        """Current contents of one owner's collection, in insertion order."""
        return self._snapshot((collection, owner_id))

    def _snapshot(self, key: tuple[str, str]) -> Snapshot:
        return [
            (doc_id, copy.deepcopy(doc))
            for doc_id, doc in self._collections.get(key, {}).items()
        ]

    def _push(self, key: tuple[str, str]) -> None:
        snapshot = self._snapshot(key)
        for sub in list(self._subscribers.get(key, [])):
            if sub.active:
                sub.on_snapshot(copy.deepcopy(snapshot))

    def _detach(self, sub: _MemorySubscription) -> None:
        subs = self._subscribers.get(sub.key, [])
        if sub in subs:
            subs.remove(sub)

    def _check_writable(self, operation: str, collection: str) -> None:
        if self.fail_writes:
            raise RemoteStoreError(
                f"Store unavailable for {operation}",
                status_code=503,
                details={"collection": collection},
            )

    def disconnect(self, collection: str, owner_id: str, reason: str = "connection lost") -> None:
        """Drop every feed on a collection, reporting ``reason`` to subscribers."""
        for sub in list(self._subscribers.get((collection, owner_id), [])):
            sub.active = False
            self._detach(sub)
            sub.on_error(RemoteStoreError(reason))

    async def subscribe(
        self,
        collection: str,
        owner_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> FeedSubscription:
        if self.fail_subscribe:
            raise RemoteStoreError("Store unreachable", status_code=503)
        key = (collection, owner_id)
        sub = _MemorySubscription(self, key, on_snapshot, on_error)
        self._subscribers.setdefault(key, []).append(sub)
        on_snapshot(self._snapshot(key))
        return sub

    async def add(
        self,
        collection: str,
        owner_id: str,
        document: Document,
        document_id: str | None = None,
    ) -> str:
        self._check_writable("add", collection)
        key = (collection, owner_id)
        docs = self._collections.setdefault(key, {})
        doc_id = document_id or uuid4().hex
        if doc_id in docs:
            raise RemoteStoreError(f"Document {doc_id} already exists", status_code=409)
        docs[doc_id] = copy.deepcopy(document)
        self.write_count += 1
        self._push(key)
        return doc_id

    async def update(
        self, collection: str, owner_id: str, document_id: str, document: Document
    ) -> None:
        self._check_writable("update", collection)
        key = (collection, owner_id)
        docs = self._collections.get(key, {})
        if document_id not in docs:
            raise RemoteStoreError(f"Document {document_id} not found", status_code=404)
        docs[document_id] = copy.deepcopy(document)
        self.write_count += 1
        self._push(key)

    async def delete(self, collection: str, owner_id: str, document_id: str) -> None:
        self._check_writable("delete", collection)
        key = (collection, owner_id)
        docs = self._collections.get(key, {})
        if document_id not in docs:
            raise RemoteStoreError(f"Document {document_id} not found", status_code=404)
        del docs[document_id]
        self.write_count += 1
        self._push(key)
