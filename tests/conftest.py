"""Pytest configuration and fixtures."""

import os
from datetime import date

import pytest
import pytest_asyncio

# Set test environment variables before importing settings
os.environ.setdefault("HERDBOOK_STORE_TOKEN", "store-token-test")
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test")

from herdbook.events import EventBus  # noqa: E402
from herdbook.profiles import LIVESTOCK  # noqa: E402
from herdbook.store import (  # noqa: E402
    EntityStore,
    InvoiceStore,
    MemoryDocumentStore,
    SnapshotCache,
    TransactionStore,
)
from herdbook.workflow import SaleWorkflow  # noqa: E402

OWNER = "owner-1"
TODAY = date(2024, 3, 15)


@pytest.fixture
def backend():
    """In-process document store."""
    return MemoryDocumentStore()


class LaggingDocumentStore(MemoryDocumentStore):
    """Memory store whose change feed delivers only on ``flush()``."""

    def __init__(self) -> None:
        super().__init__()
        self._pending: list[tuple[str, str]] = []

    def _push(self, key: tuple[str, str]) -> None:
        if key not in self._pending:
            self._pending.append(key)

    def flush(self, collection: str | None = None) -> None:
        """Deliver held-back snapshots, optionally for one collection only."""
        held = [k for k in self._pending if collection is None or k[0] == collection]
        self._pending = [k for k in self._pending if k not in held]
        for key in held:
            super()._push(key)


@pytest.fixture
def lagging_backend():
    """Document store that holds back feed snapshots until flushed."""
    return LaggingDocumentStore()


@pytest_asyncio.fixture
async def lagging_stores(lagging_backend, events):
    """Asset, transaction and invoice stores on the lagging backend."""
    stores = (
        EntityStore("assets", LIVESTOCK.asset_model, lagging_backend, OWNER,
                    profile=LIVESTOCK, events=events),
        TransactionStore(lagging_backend, OWNER, profile=LIVESTOCK, events=events),
        InvoiceStore(lagging_backend, OWNER, profile=LIVESTOCK, events=events),
    )
    for store in stores:
        await store.start()
    yield stores
    for store in stores:
        await store.close()


@pytest.fixture
def lagging_workflow(lagging_stores, events):
    return SaleWorkflow(*lagging_stores, events, today=lambda: TODAY)


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def cache(tmp_path):
    """Offline cache in a per-test directory."""
    return SnapshotCache(tmp_path / "cache")


@pytest.fixture
def animal_store(backend, events, cache):
    return EntityStore(
        "assets", LIVESTOCK.asset_model, backend, OWNER,
        profile=LIVESTOCK, cache=cache, events=events,
    )


@pytest.fixture
def transaction_store(backend, events, cache):
    return TransactionStore(backend, OWNER, profile=LIVESTOCK, cache=cache, events=events)


@pytest.fixture
def invoice_store(backend, events, cache):
    return InvoiceStore(backend, OWNER, profile=LIVESTOCK, cache=cache, events=events)


@pytest_asyncio.fixture
async def started_stores(animal_store, transaction_store, invoice_store):
    """Asset, transaction and invoice stores attached to the memory backend."""
    for store in (animal_store, transaction_store, invoice_store):
        await store.start()
    yield animal_store, transaction_store, invoice_store
    for store in (animal_store, transaction_store, invoice_store):
        await store.close()


@pytest.fixture
def sale_workflow(animal_store, transaction_store, invoice_store, events):
    return SaleWorkflow(
        animal_store, transaction_store, invoice_store, events, today=lambda: TODAY
    )


@pytest.fixture
def animal_data():
    """Valid form input for a new animal."""
    return {
        "name": "Daisy",
        "species": "Bovine",
        "age": 24,
        "weight": 650,
        "lot": "L001",
        "status": "Healthy",
    }

