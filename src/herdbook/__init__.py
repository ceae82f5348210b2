"""Herdbook - multi-tenant asset, inventory and ledger records for farms and fleets."""

__version__ = "0.1.0"

from herdbook.advisory import AdvisoryService, Diagnostics, HealthAlert
from herdbook.clients import ClaudeClient
from herdbook.config import configure_logging, get_settings
from herdbook.errors import (
    AdvisoryError,
    HerdbookError,
    RemoteStoreError,
    ValidationFailed,
)
from herdbook.events import EventBus, EventType
from herdbook.models import Animal, Asset, InventoryItem, Invoice, Transaction, Vehicle
from herdbook.profiles import FLEET, LIVESTOCK, Profile, get_profile
from herdbook.store import (
    EntityStore,
    MemoryDocumentStore,
    RemoteDocumentStore,
    SnapshotCache,
)
from herdbook.workflow import SaleWorkflow
from herdbook.workspace import Workspace

__all__ = [
    # Version
    "__version__",
    # Workspace
    "Workspace",
    "SaleWorkflow",
    # Records
    "Asset",
    "Animal",
    "Vehicle",
    "InventoryItem",
    "Transaction",
    "Invoice",
    # Profiles
    "Profile",
    "LIVESTOCK",
    "FLEET",
    "get_profile",
    # Stores
    "EntityStore",
    "MemoryDocumentStore",
    "RemoteDocumentStore",
    "SnapshotCache",
    # Events
    "EventBus",
    "EventType",
    # Advisory
    "AdvisoryService",
    "ClaudeClient",
    "HealthAlert",
    "Diagnostics",
    # Errors
    "HerdbookError",
    "ValidationFailed",
    "RemoteStoreError",
    "AdvisoryError",
    # Config
    "get_settings",
    "configure_logging",
]
