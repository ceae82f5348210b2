"""Asset sale workflow.

Marking an asset Sold records the sale in two other collections: an Income
transaction in the ledger and a Draft invoice for the buyer. The two writes
are independent; there is no cross-collection transaction, so a partial
failure leaves one side missing until ``reconcile()`` fills it in.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

import structlog

from herdbook.events import (
    EventBus,
    invoice_drafted,
    notify,
    sale_recorded,
    sale_step_failed,
)
from herdbook.models import INCOME, SALE_CATEGORY, Asset, Invoice, Transaction
from herdbook.store import EntityStore, InvoiceStore, TransactionStore

logger = structlog.get_logger(__name__)

INVOICE_DUE_DAYS = 30
PLACEHOLDER_CLIENT = "To Be Determined"
PLACEHOLDER_EMAIL = "client@example.com"

STEP_TRANSACTION = "transaction"
STEP_INVOICE = "invoice"

LOCAL_ONLY = "Saved on this device only; not yet stored remotely"


# =============================================================================
# DATA STRUCTURES
# =============================================================================


@dataclass
class SaleOutcome:
    """What saving an asset produced."""

    asset: Asset
    sale_triggered: bool = False
    transaction: Transaction | None = None
    invoice: Invoice | None = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        """True when no sale was due, or both side effects reached the remote store."""
        if not self.sale_triggered:
            return True
        return not self.errors and self.transaction is not None and self.invoice is not None


@dataclass
class ReconcileReport:
    """Result of a reconciliation sweep over sold assets."""

    checked: int = 0
    transactions_created: list[str] = field(default_factory=list)
    invoices_created: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def repaired(self) -> int:
        return len(self.transactions_created) + len(self.invoices_created)


# =============================================================================
# SALE WORKFLOW
# =============================================================================


class SaleWorkflow:
    """Saves assets and fires the sale side effects on the transition to Sold.

    The side effects fire only when the saved status is Sold and the status
    held before the save was not. Assets whose sale was already issued in
    this process are remembered, so a second save that races ahead of the
    change feed does not fire again.
    """

    def __init__(
        self,
        assets: EntityStore[Any],
        transactions: TransactionStore,
        invoices: InvoiceStore,
        events: EventBus | None = None,
        today: Callable[[], date] = date.today,
    ):
        self._assets = assets
        self._transactions = transactions
        self._invoices = invoices
        self._events = events or EventBus()
        self._today = today
        self._issued: set[str] = set()
        self._failed_steps: dict[str, set[str]] = {}
        self._logger = logger.bind(component="sale_workflow")

    async def save_asset(self, data: Asset | dict[str, Any]) -> SaleOutcome:
        """Create or update an asset, then record the sale if it just became Sold.

        Input carrying an id is always an update, even when the feed has not
        delivered that record yet.

        Raises:
            ValidationFailed: If the asset input is invalid; nothing is written.
        """
        asset = self._assets.validate(data)
        if asset.id:
            previous = self._assets.get(asset.id)
            saved = await self._assets.update(asset)
        else:
            previous = None
            saved = await self._assets.create(asset)

        outcome = SaleOutcome(asset=saved)
        asset_id = str(saved.id)

        if not saved.is_sold:
            self._issued.discard(asset_id)
            return outcome
        if (previous is not None and previous.is_sold) or asset_id in self._issued:
            self._logger.debug("sale_already_recorded", asset_id=asset_id)
            return outcome

        # A local-only asset reverts on reconnect and may be sold again.
        if self._assets.is_synced(asset_id):
            self._issued.add(asset_id)
        outcome.sale_triggered = True
        self._logger.info(
            "asset_sold", asset_id=asset_id, sale_price=str(saved.sale_price)
        )

        tx_result, inv_result = await asyncio.gather(
            self._record_income(saved),
            self._draft_invoice(saved),
            return_exceptions=True,
        )
        outcome.transaction = self._collect(
            asset_id, STEP_TRANSACTION, tx_result, self._transactions, outcome
        )
        outcome.invoice = self._collect(
            asset_id, STEP_INVOICE, inv_result, self._invoices, outcome
        )
        return outcome

    def _collect(
        self,
        asset_id: str,
        step: str,
        result: Any,
        store: EntityStore[Any],
        outcome: SaleOutcome,
    ) -> Any:
        """Unwrap one side effect; errors and local-only writes count as failed."""
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            self._step_failed(asset_id, step, str(result), outcome)
            return None
        if not store.is_synced(str(result.id)):
            self._step_failed(asset_id, step, LOCAL_ONLY, outcome)
        return result

    def _step_failed(self, asset_id: str, step: str, error: str, outcome: SaleOutcome) -> None:
        self._logger.error("sale_step_failed", asset_id=asset_id, step=step, error=error)
        outcome.errors[step] = error
        self._failed_steps.setdefault(asset_id, set()).add(step)
        self._events.publish(sale_step_failed(asset_id, step, error))
        self._events.publish(
            notify(
                "Sale not fully recorded",
                "Some sale records could not be saved. They will be added on the next check.",
                level="error",
            )
        )

    async def _record_income(self, asset: Asset) -> Transaction:
        price = self._sale_price(asset)
        tx = await self._transactions.create({
            "date": self._today(),
            "description": f"Sale of {asset.category} {asset.label} ({asset.id})",
            "category": SALE_CATEGORY,
            "type": INCOME,
            "amount": price,
            "sourceRef": asset.id,
        })
        self._events.publish(sale_recorded(str(asset.id), str(price), str(tx.id)))
        self._events.publish(
            notify("Income Recorded", f"Sale of {asset.label} for €{price:,.2f} added to accounting.")
        )
        return tx

    async def _draft_invoice(self, asset: Asset) -> Invoice:
        price = self._sale_price(asset)
        issue_date = self._today()
        invoice = await self._invoices.create({
            "clientName": PLACEHOLDER_CLIENT,
            "clientEmail": PLACEHOLDER_EMAIL,
            "issueDate": issue_date,
            "dueDate": issue_date + timedelta(days=INVOICE_DUE_DAYS),
            "lineItems": [{
                "id": "1",
                "description": (
                    f"{type(asset).__name__}: {asset.category} - {asset.label} (ID: {asset.id})"
                ),
                "quantity": 1,
                "unitPrice": price,
            }],
            "status": "Draft",
            "sourceRef": asset.id,
        })
        self._events.publish(invoice_drafted(str(asset.id), str(invoice.id)))
        self._events.publish(
            notify(
                "Draft Invoice Created",
                f"Invoice {invoice.id} has been created. Please complete it in the Invoices section.",
            )
        )
        return invoice

    @staticmethod
    def _sale_price(asset: Asset) -> Decimal:
        if asset.sale_price is None or asset.sale_price <= 0:
            raise ValueError(f"Asset {asset.id} is Sold without a positive sale price")
        return asset.sale_price

    # === Reconciliation ===

    async def reconcile(self) -> ReconcileReport:
        """Create any missing sale transaction or invoice for Sold assets.

        Assets whose side effects were issued successfully in this process are
        skipped, since their records may simply not have reached the feed yet.
        """
        report = ReconcileReport()
        for asset in self._assets.list():
            if not asset.is_sold or asset.id is None:
                continue
            report.checked += 1

            failed = self._failed_steps.setdefault(asset.id, set())
            if asset.id in self._issued and not failed:
                self._failed_steps.pop(asset.id, None)
                continue

            if not self._transactions.for_source(asset.id):
                await self._repair(
                    asset, STEP_TRANSACTION, self._record_income, self._transactions,
                    report.transactions_created, report, failed,
                )
            if not self._invoices.for_source(asset.id):
                await self._repair(
                    asset, STEP_INVOICE, self._draft_invoice, self._invoices,
                    report.invoices_created, report, failed,
                )

            if not failed:
                self._failed_steps.pop(asset.id, None)

        self._logger.info(
            "reconcile_completed",
            checked=report.checked,
            repaired=report.repaired,
            failures=len(report.failures),
        )
        return report

    async def _repair(
        self,
        asset: Asset,
        step: str,
        write: Callable[[Asset], Awaitable[Any]],
        store: EntityStore[Any],
        created: list[str],
        report: ReconcileReport,
        failed: set[str],
    ) -> None:
        key = f"{asset.id}:{step}"
        try:
            record = await write(asset)
        except Exception as e:
            report.failures[key] = str(e)
            failed.add(step)
            return
        if not store.is_synced(str(record.id)):
            report.failures[key] = LOCAL_ONLY
            failed.add(step)
            return
        created.append(str(record.id))
        failed.discard(step)
