"""Entity stores: one tenant's collection of one record type.

Reads are served from the last snapshot delivered by the change feed, never
from the last local write. Mutations are validated, then written to the
document store; they show up in ``list()`` once the feed delivers them.

If the feed cannot be established, drops, or a write is rejected, the store
switches to degraded mode: it stops listening to the feed, serves the last
known snapshot (or the offline cache, or on first run the demo seed), and
applies further mutations to that local state directly.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, Generic, TypeVar
from uuid import uuid4

import structlog

from herdbook.errors import RemoteStoreError, ValidationFailed
from herdbook.events import (
    EventBus,
    EventType,
    notify,
    record_changed,
    snapshot_received,
    store_degraded,
)
from herdbook.models import Invoice, Record, Transaction
from herdbook.store.backends import DocumentStore, FeedSubscription, Snapshot
from herdbook.store.cache import SnapshotCache

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=Record)
Listener = Callable[[list[Any]], None]


def new_record_id() -> str:
    """Random, collision-resistant id; safe with several sessions writing at once."""
    return uuid4().hex


class EntityStore(Generic[T]):
    """Authoritative in-memory list for one entity type, kept in sync remotely."""

    def __init__(
        self,
        entity: str,
        model: type[T],
        backend: DocumentStore,
        owner_id: str,
        profile: Any = None,
        cache: SnapshotCache | None = None,
        events: EventBus | None = None,
        demo_seed_on_empty: bool = False,
    ):
        self.entity = entity
        self.model = model
        self._backend = backend
        self._owner_id = owner_id
        self._profile = profile
        self._cache = cache
        self._events = events or EventBus()
        self._demo_seed_on_empty = demo_seed_on_empty

        self._records: list[T] = []
        self._listeners: list[Listener] = []
        self._subscription: FeedSubscription | None = None
        self._loaded = False
        self._degraded = False
        self._closed = False
        self._local_only: set[str] = set()

        self._logger = logger.bind(component="entity_store", entity=entity, owner_id=owner_id)

    # === State ===

    @property
    def is_loading(self) -> bool:
        """True until the first snapshot (remote or local) is available."""
        return not self._loaded

    @property
    def is_degraded(self) -> bool:
        return self._degraded

    @property
    def owner_id(self) -> str:
        return self._owner_id

    def list(self) -> list[T]:
        """Current snapshot, in store order."""
        return list(self._records)

    def get(self, record_id: str) -> T | None:
        """Return the record with this id, or None when there is none."""
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def is_synced(self, record_id: str) -> bool:
        """False while the last write to this record exists only on this device."""
        return record_id not in self._local_only

    def __len__(self) -> int:
        return len(self._records)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with the new snapshot after every change.

        Returns:
            A callable that detaches the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # === Lifecycle ===

    async def start(self) -> None:
        """Attach to the remote change feed, or fall back to local state."""
        if self._subscription is not None:
            return
        self._closed = False
        had_cache = self._cache is not None and self._cache.has(self._owner_id, self.entity)

        try:
            self._subscription = await self._backend.subscribe(
                self.entity, self._owner_id, self._on_snapshot, self._on_feed_error
            )
        except Exception as e:
            self._enter_degraded(f"subscribe failed: {e}")
            return

        self._logger.info("store_started", records=len(self._records))

        if (
            self._demo_seed_on_empty
            and not had_cache
            and not self._degraded
            and not self._records
        ):
            await self._seed_remote()

    async def close(self) -> None:
        """Detach from the feed; late snapshots are ignored from here on."""
        self._closed = True
        self._listeners.clear()
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            await subscription.close()

    async def reconnect(self) -> None:
        """Leave degraded mode and resubscribe.

        The remote snapshot replaces local state; changes made while degraded
        are not replayed.
        """
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            await subscription.close()
        self._degraded = False
        self._local_only.clear()
        await self.start()

    # === Feed callbacks ===

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        if self._closed or self._degraded:
            return
        self._records = self._order(self._parse_snapshot(snapshot))
        self._loaded = True
        if self._cache is not None:
            self._cache.save(self._owner_id, self.entity, snapshot)
        self._logger.debug("snapshot_received", records=len(self._records))
        self._events.publish(snapshot_received(self.entity, len(self._records)))
        self._notify_listeners()

    def _on_feed_error(self, error: Exception) -> None:
        if self._closed:
            return
        self._enter_degraded(f"feed error: {error}")

    def _parse_snapshot(self, snapshot: Snapshot) -> list[T]:
        records: list[T] = []
        for doc_id, document in snapshot:
            try:
                records.append(self.model.from_document(doc_id, document, self._profile))
            except ValidationFailed as e:
                self._logger.warning(
                    "invalid_document_skipped", document_id=doc_id, errors=e.field_errors
                )
        return records

    def _notify_listeners(self) -> None:
        snapshot = self.list()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                self._logger.error("listener_error", error=str(e))

    # === Degraded mode ===

    def _enter_degraded(self, reason: str) -> None:
        if self._degraded:
            return
        self._degraded = True
        self._logger.warning("store_degraded", reason=reason)

        if not self._loaded:
            self._records = self._order(self._parse_snapshot(self._fallback_snapshot()))
            self._loaded = True
            self._notify_listeners()

        self._events.publish(store_degraded(self.entity, reason))
        self._events.publish(
            notify(
                "Working offline",
                "Changes are kept on this device until the connection returns.",
                level="error",
            )
        )

    def _fallback_snapshot(self) -> Snapshot:
        """Offline cache if one exists, otherwise (first run) the demo seed."""
        if self._cache is not None:
            cached = self._cache.load(self._owner_id, self.entity)
            if cached is not None:
                self._logger.info("loaded_offline_cache", records=len(cached))
                return cached
        seed = self._seed_snapshot()
        self._logger.info("loaded_demo_seed", records=len(seed))
        return seed

    def _seed_snapshot(self) -> Snapshot:
        if self._profile is None:
            return []
        snapshot: Snapshot = []
        for document in self._profile.seeds_for(self.entity):
            data = dict(document)
            snapshot.append((str(data.pop("id")), data))
        return snapshot

    async def _seed_remote(self) -> None:
        """Write the demo seed to an empty remote collection (first run only)."""
        seed = self._seed_snapshot()
        self._logger.info("seeding_remote_collection", records=len(seed))
        for doc_id, document in seed:
            try:
                await self._backend.add(self.entity, self._owner_id, document, document_id=doc_id)
            except Exception as e:
                self._logger.error("seed_failed", document_id=doc_id, error=str(e))
                self._enter_degraded(f"seed failed: {e}")
                return

    def _apply_local(self, event_type: EventType, record: T) -> None:
        if event_type == EventType.RECORD_CREATED:
            self._records.append(record)
        elif event_type == EventType.RECORD_UPDATED:
            replaced = False
            for i, existing in enumerate(self._records):
                if existing.id == record.id:
                    self._records[i] = record
                    replaced = True
                    break
            if not replaced:
                self._logger.warning("update_target_missing", record_id=record.id)
                return
        elif event_type == EventType.RECORD_DELETED:
            self._records = [r for r in self._records if r.id != record.id]

        if event_type == EventType.RECORD_DELETED:
            self._local_only.discard(str(record.id))
        else:
            self._local_only.add(str(record.id))
        self._records = self._order(self._records)
        if self._cache is not None:
            self._cache.save(
                self._owner_id,
                self.entity,
                [(str(r.id), r.to_document()) for r in self._records],
            )
        self._events.publish(snapshot_received(self.entity, len(self._records), degraded=True))
        self._notify_listeners()

    # === Mutations ===

    def validate(self, data: T | dict[str, Any]) -> T:
        """Validate input against the record's field constraints.

        Raises:
            ValidationFailed: Before any network call is made.
        """
        return self.model.parse(data, self._profile)

    async def create(self, data: T | dict[str, Any]) -> T:
        """Validate and add a new record under a freshly assigned id.

        The record appears in ``list()`` once the feed delivers it. A write
        the remote rejected is kept locally; ``is_synced()`` tells the two apart.
        """
        record = self.validate(data).model_copy(update={"id": new_record_id()})
        await self._write(EventType.RECORD_CREATED, record)
        return record

    async def update(self, data: T | dict[str, Any]) -> T:
        """Validate and overwrite every field of the record with the same id.

        Concurrent updates to one record are last-write-wins.
        """
        record = self.validate(data)
        if not record.id:
            raise ValidationFailed({"id": "An id is required to update a record"})
        await self._write(EventType.RECORD_UPDATED, record)
        return record

    async def delete(self, record_id: str) -> None:
        """Remove a record by id; deleting a missing record is a no-op."""
        existing = self.get(record_id)
        target = existing or self.model.model_construct(id=record_id)
        await self._write(EventType.RECORD_DELETED, target)

    async def _write(self, event_type: EventType, record: T) -> None:
        record_id = str(record.id)
        if self._degraded:
            self._apply_local(event_type, record)
            self._events.publish(record_changed(event_type, self.entity, record_id, degraded=True))
            return

        try:
            if event_type == EventType.RECORD_CREATED:
                await self._backend.add(
                    self.entity, self._owner_id, record.to_document(), document_id=record_id
                )
            elif event_type == EventType.RECORD_UPDATED:
                await self._backend.update(
                    self.entity, self._owner_id, record_id, record.to_document()
                )
            else:
                await self._backend.delete(self.entity, self._owner_id, record_id)
        except RemoteStoreError as e:
            if e.status_code == 404 and event_type != EventType.RECORD_CREATED:
                self._logger.warning(
                    "record_not_found", operation=event_type.value, record_id=record_id
                )
                return
            self._write_failed(event_type, record, e)
            return
        except Exception as e:
            self._write_failed(event_type, record, e)
            return

        self._logger.info(event_type.value.replace(".", "_"), record_id=record_id)
        self._events.publish(record_changed(event_type, self.entity, record_id))

    def _write_failed(self, event_type: EventType, record: T, error: Exception) -> None:
        self._logger.error(
            "remote_write_failed",
            operation=event_type.value,
            record_id=record.id,
            error=str(error),
        )
        self._enter_degraded(f"write failed: {error}")
        self._apply_local(event_type, record)
        self._events.publish(record_changed(event_type, self.entity, str(record.id), degraded=True))

    # === Ordering ===

    def _order(self, records: Iterable[T]) -> list[T]:
        """Store iteration order; subclasses may impose their own."""
        return list(records)


class TransactionStore(EntityStore[Transaction]):
    """Ledger entries, always listed newest first."""

    def __init__(self, backend: DocumentStore, owner_id: str, **kwargs: Any):
        super().__init__("transactions", Transaction, backend, owner_id, **kwargs)

    def _order(self, records: Iterable[Transaction]) -> list[Transaction]:
        return sorted(records, key=lambda tx: tx.date, reverse=True)

    def for_source(self, source_ref: str) -> list[Transaction]:
        return [tx for tx in self._records if tx.source_ref == source_ref]


class InvoiceStore(EntityStore[Invoice]):
    """Invoices; money fields are recomputed from line items on every write."""

    def __init__(self, backend: DocumentStore, owner_id: str, **kwargs: Any):
        super().__init__("invoices", Invoice, backend, owner_id, **kwargs)

    def for_source(self, source_ref: str) -> list[Invoice]:
        return [inv for inv in self._records if inv.source_ref == source_ref]
