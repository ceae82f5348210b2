"""Tests for entity stores against the in-process document store."""

from datetime import date

import pytest

from herdbook.errors import ValidationFailed
from herdbook.events import EventType
from herdbook.models import Animal
from herdbook.profiles import LIVESTOCK
from herdbook.store import EntityStore, new_record_id

OWNER = "owner-1"


def make_store(backend, cache=None, events=None, owner=OWNER, **kwargs):
    return EntityStore(
        "assets", Animal, backend, owner,
        profile=LIVESTOCK, cache=cache, events=events, **kwargs,
    )


class TestRecordIds:
    def test_ids_are_unique_hex(self):
        ids = {new_record_id() for _ in range(100)}

        assert len(ids) == 100
        assert all(len(i) == 32 for i in ids)


class TestEntityStoreSync:
    """Tests for the live feed path."""

    @pytest.mark.asyncio
    async def test_start_on_empty_collection(self, animal_store):
        assert animal_store.is_loading is True

        await animal_store.start()

        assert animal_store.is_loading is False
        assert animal_store.is_degraded is False
        assert animal_store.list() == []

    @pytest.mark.asyncio
    async def test_create_appears_after_feed_delivery(self, animal_store, backend, animal_data):
        await animal_store.start()

        created = await animal_store.create(animal_data)

        assert created.id is not None
        assert animal_store.get(created.id) == created
        stored = dict(backend.documents("assets", OWNER))
        assert stored[created.id]["name"] == "Daisy"
        assert "id" not in stored[created.id]

    @pytest.mark.asyncio
    async def test_create_ignores_supplied_id(self, animal_store, animal_data):
        """Test that new records always get a freshly assigned id."""
        await animal_store.start()

        created = await animal_store.create({**animal_data, "id": "A001"})

        assert created.id != "A001"

    @pytest.mark.asyncio
    async def test_update_overwrites_record(self, animal_store, animal_data):
        await animal_store.start()
        created = await animal_store.create(animal_data)

        await animal_store.update({**animal_data, "id": created.id, "status": "At Risk"})

        assert animal_store.get(created.id).status == "At Risk"
        assert len(animal_store) == 1

    @pytest.mark.asyncio
    async def test_update_requires_id(self, animal_store, animal_data):
        await animal_store.start()

        with pytest.raises(ValidationFailed) as exc_info:
            await animal_store.update(animal_data)

        assert "id" in exc_info.value.field_errors

    @pytest.mark.asyncio
    async def test_delete_removes_record(self, animal_store, animal_data):
        await animal_store.start()
        created = await animal_store.create(animal_data)

        await animal_store.delete(created.id)

        assert animal_store.get(created.id) is None
        assert animal_store.list() == []

    @pytest.mark.asyncio
    async def test_delete_missing_record_is_noop(self, animal_store):
        await animal_store.start()

        await animal_store.delete("nope")

        assert animal_store.is_degraded is False

    @pytest.mark.asyncio
    async def test_invalid_input_never_reaches_store(self, animal_store, backend, animal_data):
        await animal_store.start()

        with pytest.raises(ValidationFailed):
            await animal_store.create({**animal_data, "weight": -5})

        assert backend.write_count == 0

    @pytest.mark.asyncio
    async def test_invalid_documents_are_skipped(self, animal_store, backend, animal_data):
        await backend.add("assets", OWNER, {"name": ""}, document_id="broken")
        await backend.add("assets", OWNER, dict(animal_data), document_id="good")

        await animal_store.start()

        assert [a.id for a in animal_store.list()] == ["good"]

    @pytest.mark.asyncio
    async def test_writes_from_another_session_are_seen(self, backend, animal_data):
        first = make_store(backend)
        second = make_store(backend)
        await first.start()
        await second.start()

        created = await second.create(animal_data)

        assert first.get(created.id) is not None

    @pytest.mark.asyncio
    async def test_last_write_wins(self, backend, animal_data):
        first = make_store(backend)
        second = make_store(backend)
        await first.start()
        await second.start()
        created = await first.create(animal_data)

        await first.update({**animal_data, "id": created.id, "weight": 700})
        await second.update({**animal_data, "id": created.id, "weight": 710})

        assert first.get(created.id).weight == 710
        assert second.get(created.id).weight == 710

    @pytest.mark.asyncio
    async def test_owners_are_isolated(self, backend, animal_data):
        mine = make_store(backend)
        theirs = make_store(backend, owner="owner-2")
        await mine.start()
        await theirs.start()

        await theirs.create(animal_data)

        assert mine.list() == []
        assert len(theirs) == 1

    @pytest.mark.asyncio
    async def test_listeners_receive_snapshots(self, animal_store, animal_data):
        seen = []
        unsubscribe = animal_store.subscribe(seen.append)
        await animal_store.start()

        await animal_store.create(animal_data)
        unsubscribe()
        await animal_store.create(animal_data)

        assert [len(snapshot) for snapshot in seen] == [0, 1]

    @pytest.mark.asyncio
    async def test_closed_store_ignores_late_snapshots(self, backend, animal_data):
        store = make_store(backend)
        other = make_store(backend)
        await store.start()
        await other.start()

        await store.close()
        await other.create(animal_data)

        assert store.list() == []


class TestTransactionStore:
    @pytest.mark.asyncio
    async def test_listed_newest_first(self, transaction_store):
        await transaction_store.start()
        for day in ("2024-01-01", "2024-03-01", "2024-02-01"):
            await transaction_store.create(
                {"date": day, "description": "Feed", "category": "Feed", "type": "Expense", "amount": 10}
            )

        dates = [tx.date for tx in transaction_store.list()]

        assert dates == [date(2024, 3, 1), date(2024, 2, 1), date(2024, 1, 1)]

    @pytest.mark.asyncio
    async def test_for_source(self, transaction_store):
        await transaction_store.start()
        await transaction_store.create(
            {"date": "2024-01-01", "description": "Sale", "category": "Sale", "type": "Income", "amount": 10, "sourceRef": "A1"}
        )

        assert len(transaction_store.for_source("A1")) == 1
        assert transaction_store.for_source("A2") == []


class TestDegradedMode:
    """Tests for the local fallback when the remote store is unavailable."""

    @pytest.mark.asyncio
    async def test_subscribe_failure_loads_demo_seed(self, animal_store, backend, events):
        backend.fail_subscribe = True

        await animal_store.start()

        assert animal_store.is_degraded is True
        assert animal_store.is_loading is False
        assert [a.id for a in animal_store.list()] == ["A001", "A002", "A003", "A004", "A005"]
        assert len(events.events_of(EventType.STORE_DEGRADED)) == 1
        assert events.notifications[-1].title == "Working offline"

    @pytest.mark.asyncio
    async def test_offline_cache_preferred_over_seed(self, backend, cache, animal_data):
        online = make_store(backend, cache=cache)
        await online.start()
        created = await online.create(animal_data)
        await online.close()

        backend.fail_subscribe = True
        offline = make_store(backend, cache=cache)
        await offline.start()

        assert [a.id for a in offline.list()] == [created.id]

    @pytest.mark.asyncio
    async def test_write_failure_applies_locally(self, animal_store, backend, cache, animal_data):
        await animal_store.start()
        backend.fail_writes = True

        created = await animal_store.create(animal_data)

        assert animal_store.is_degraded is True
        assert animal_store.get(created.id) is not None
        assert backend.documents("assets", OWNER) == []
        assert [doc_id for doc_id, _ in cache.load(OWNER, "assets")] == [created.id]

    @pytest.mark.asyncio
    async def test_feed_loss_keeps_last_snapshot(self, animal_store, backend, animal_data):
        await animal_store.start()
        created = await animal_store.create(animal_data)

        backend.disconnect("assets", OWNER)

        assert animal_store.is_degraded is True
        assert [a.id for a in animal_store.list()] == [created.id]

    @pytest.mark.asyncio
    async def test_degraded_mutations_stay_local(self, animal_store, backend, animal_data):
        await animal_store.start()
        backend.disconnect("assets", OWNER)

        created = await animal_store.create(animal_data)
        await animal_store.update({**animal_data, "id": created.id, "status": "At Risk"})

        assert animal_store.get(created.id).status == "At Risk"
        assert backend.write_count == 0

    @pytest.mark.asyncio
    async def test_degraded_delete(self, animal_store, backend):
        backend.fail_subscribe = True
        await animal_store.start()

        await animal_store.delete("A001")

        assert animal_store.get("A001") is None
        assert len(animal_store) == 4

    @pytest.mark.asyncio
    async def test_local_writes_are_not_synced(self, animal_store, backend, animal_data):
        await animal_store.start()
        synced = await animal_store.create(animal_data)
        backend.fail_writes = True

        local = await animal_store.create(animal_data)

        assert animal_store.is_synced(synced.id) is True
        assert animal_store.is_synced(local.id) is False

        backend.fail_writes = False
        await animal_store.reconnect()

        assert animal_store.is_synced(local.id) is True
        assert [a.id for a in animal_store.list()] == [synced.id]

    @pytest.mark.asyncio
    async def test_reconnect_replaces_local_state(self, animal_store, backend, animal_data):
        await animal_store.start()
        backend.disconnect("assets", OWNER)
        await animal_store.create(animal_data)

        await animal_store.reconnect()

        assert animal_store.is_degraded is False
        assert animal_store.list() == []


class TestFeedLag:
    """Tests for writes that the change feed has not delivered yet."""

    @pytest.mark.asyncio
    async def test_create_visible_only_after_flush(self, lagging_backend, animal_data):
        store = make_store(lagging_backend)
        await store.start()

        created = await store.create(animal_data)

        assert store.list() == []
        assert store.is_synced(created.id) is True
        assert [doc_id for doc_id, _ in lagging_backend.documents("assets", OWNER)] == [created.id]

        lagging_backend.flush()

        assert [a.id for a in store.list()] == [created.id]

    @pytest.mark.asyncio
    async def test_update_before_delivery_reaches_remote(self, lagging_backend, animal_data):
        store = make_store(lagging_backend)
        await store.start()
        created = await store.create(animal_data)

        await store.update({**animal_data, "id": created.id, "weight": 640})
        lagging_backend.flush()

        [animal] = store.list()
        assert animal.id == created.id
        assert animal.weight == 640
        assert store.is_degraded is False


class TestDemoSeedOnEmpty:
    @pytest.mark.asyncio
    async def test_seeds_empty_remote_on_first_run(self, backend, cache):
        store = make_store(backend, cache=cache, demo_seed_on_empty=True)

        await store.start()

        assert [doc_id for doc_id, _ in backend.documents("assets", OWNER)] == [
            "A001", "A002", "A003", "A004", "A005",
        ]
        assert len(store) == 5

    @pytest.mark.asyncio
    async def test_not_seeded_when_cache_exists(self, backend, cache):
        cache.save(OWNER, "assets", [])
        store = make_store(backend, cache=cache, demo_seed_on_empty=True)

        await store.start()

        assert backend.documents("assets", OWNER) == []

    @pytest.mark.asyncio
    async def test_not_seeded_when_remote_has_data(self, backend, cache, animal_data):
        await backend.add("assets", OWNER, dict(animal_data), document_id="mine")
        store = make_store(backend, cache=cache, demo_seed_on_empty=True)

        await store.start()

        assert [a.id for a in store.list()] == ["mine"]
