"""One tenant's workspace: stores, sale workflow, rollups and advisory calls.

The workspace is the application root. Views receive it explicitly instead
of reaching for global providers, and its ``start()`` / ``close()`` own the
lifecycle of every store subscription.
"""

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Any

import structlog

from herdbook import aggregates
from herdbook.advisory import (
    AdvisoryService,
    Diagnostics,
    DiagnosticsRequest,
    HealthAlert,
    HealthAlertRequest,
)
from herdbook.config import FlatSettings, bind_tenant, get_settings
from herdbook.errors import AdvisoryError
from herdbook.events import (
    EventBus,
    Notification,
    advisory_failed,
    advisory_generated,
    notify,
)
from herdbook.models import Asset, InventoryItem
from herdbook.profiles import Profile, get_profile
from herdbook.store import (
    DocumentStore,
    EntityStore,
    InvoiceStore,
    RemoteDocumentStore,
    SnapshotCache,
    TransactionStore,
)
from herdbook.workflow import ReconcileReport, SaleOutcome, SaleWorkflow

logger = structlog.get_logger(__name__)


class Workspace:
    """Everything one signed-in owner works with."""

    def __init__(
        self,
        owner_id: str,
        profile: Profile,
        backend: DocumentStore,
        cache: SnapshotCache | None = None,
        advisory: AdvisoryService | None = None,
        events: EventBus | None = None,
        demo_seed_on_empty: bool = False,
        today: Callable[[], date] = date.today,
    ):
        self.owner_id = owner_id
        self.profile = profile
        self.events = events or EventBus()
        self._backend = backend
        self._advisory = advisory

        shared: dict[str, Any] = {
            "profile": profile,
            "cache": cache,
            "events": self.events,
            "demo_seed_on_empty": demo_seed_on_empty,
        }
        self.assets: EntityStore[Asset] = EntityStore(
            "assets", profile.asset_model, backend, owner_id, **shared
        )
        self.inventory: EntityStore[InventoryItem] = EntityStore(
            "inventory", InventoryItem, backend, owner_id, **shared
        )
        self.transactions = TransactionStore(backend, owner_id, **shared)
        self.invoices = InvoiceStore(backend, owner_id, **shared)
        self.sales = SaleWorkflow(
            self.assets, self.transactions, self.invoices, self.events, today=today
        )

        self._logger = logger.bind(component="workspace", owner_id=owner_id, profile=profile.name)

    @property
    def stores(self) -> tuple[EntityStore[Any], ...]:
        return (self.assets, self.inventory, self.transactions, self.invoices)

    @property
    def is_degraded(self) -> bool:
        return any(store.is_degraded for store in self.stores)

    @property
    def notifications(self) -> list[Notification]:
        return self.events.notifications

    # === Lifecycle ===

    async def start(self) -> None:
        """Subscribe every store; stores that cannot connect go degraded."""
        bind_tenant(self.owner_id, self.profile.name)
        for store in self.stores:
            await store.start()
        self._logger.info(
            "workspace_started",
            degraded=[s.entity for s in self.stores if s.is_degraded],
        )

    async def close(self) -> None:
        for store in self.stores:
            await store.close()
        self._logger.info("workspace_closed")

    async def reconnect(self) -> None:
        """Retry the remote feed for stores running in degraded mode."""
        for store in self.stores:
            if store.is_degraded:
                await store.reconnect()

    @classmethod
    @asynccontextmanager
    async def open(
        cls,
        owner_id: str,
        settings: FlatSettings | None = None,
        backend: DocumentStore | None = None,
        advisory: AdvisoryService | None = None,
    ) -> AsyncIterator["Workspace"]:
        """Build a started workspace from settings and close it on exit.

        A backend passed in is left open for the caller; one built here is
        closed with the workspace.
        """
        settings = settings or get_settings()
        owned_backend = backend is None
        store_backend: DocumentStore = backend or RemoteDocumentStore(
            base_url=settings.store_url,
            feed_url=settings.feed_url,
            token=settings.store_token.get_secret_value(),
            timeout=settings.store_timeout,
            max_retries=settings.store_max_retries,
        )
        workspace = cls(
            owner_id=owner_id,
            profile=get_profile(settings.profile),
            backend=store_backend,
            cache=SnapshotCache(settings.cache_dir),
            advisory=advisory,
            demo_seed_on_empty=settings.demo_seed_on_empty,
        )
        await workspace.start()
        try:
            yield workspace
        finally:
            await workspace.close()
            if owned_backend:
                await store_backend.close()

    # === Assets & sale workflow ===

    async def save_asset(self, data: Asset | dict[str, Any]) -> SaleOutcome:
        """Form submit for an asset; sale side effects fire on the move to Sold.

        Raises:
            ValidationFailed: For inline display; nothing is written.
        """
        record_id = data.id if isinstance(data, Asset) else data.get("id")
        is_new = not record_id
        outcome = await self.sales.save_asset(data)
        asset = outcome.asset
        self.events.publish(
            notify(
                f"{asset.category} {'Added' if is_new else 'Updated'}",
                f"{asset.label} has been successfully {'added' if is_new else 'updated'}.",
            )
        )
        return outcome

    async def reconcile_sales(self) -> ReconcileReport:
        return await self.sales.reconcile()

    # === Rollups ===

    def ledger(self) -> aggregates.LedgerTotals:
        return aggregates.ledger_totals(self.transactions.list())

    def dashboard(self) -> aggregates.DashboardSummary:
        return aggregates.dashboard_summary(
            self.assets.list(), self.transactions.list(), self.inventory.list()
        )

    def production_cycles(self) -> list[aggregates.ProductionCycle]:
        return aggregates.production_cycles(self.assets.list())

    def low_stock_items(self) -> list[InventoryItem]:
        return [item for item in self.inventory.list() if item.is_low_stock]

    def invoice_status_totals(self) -> dict[str, Decimal]:
        return aggregates.invoice_status_totals(self.invoices.list())

    # === Advisory ===

    def _advisory_service(self) -> AdvisoryService:
        """Build the advisory client on first use.

        Raises:
            AdvisoryError: If the client cannot be configured, e.g. no API key.
        """
        if self._advisory is None:
            try:
                self._advisory = AdvisoryService()
            except Exception as e:
                self._logger.error("advisory_unavailable", error=str(e))
                raise AdvisoryError("Advisory service is not configured") from e
        return self._advisory

    async def generate_health_alert(
        self, request: HealthAlertRequest | dict[str, Any]
    ) -> HealthAlert | None:
        """Ask for a health alert; a failed call becomes a notification and None.

        Raises:
            ValidationFailed: If the request is incomplete; nothing is sent.
        """
        try:
            result = await self._advisory_service().health_alert(request)
        except AdvisoryError as e:
            self._advisory_failed("health_alert", e)
            return None
        self.events.publish(advisory_generated("health_alert"))
        return result

    async def generate_diagnostics(
        self, request: DiagnosticsRequest | dict[str, Any]
    ) -> Diagnostics | None:
        """Ask for vehicle diagnostics; a failed call becomes a notification and None.

        Raises:
            ValidationFailed: If the request is incomplete; nothing is sent.
        """
        try:
            result = await self._advisory_service().diagnostics(request)
        except AdvisoryError as e:
            self._advisory_failed("diagnostics", e)
            return None
        self.events.publish(advisory_generated("diagnostics"))
        return result

    def _advisory_failed(self, kind: str, error: AdvisoryError) -> None:
        self._logger.warning("advisory_failed", kind=kind, error=str(error))
        self.events.publish(advisory_failed(kind, str(error)))
        self.events.publish(
            notify(
                "Failed to generate",
                "Something went wrong while generating recommendations. Please try again.",
                level="error",
            )
        )
