"""Tests for the asset sale workflow."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from herdbook.errors import RemoteStoreError, ValidationFailed
from herdbook.events import EventType
from herdbook.workflow import LOCAL_ONLY

OWNER = "owner-1"
TODAY = date(2024, 3, 15)


def sold(animal_data, asset_id, price=300):
    return {**animal_data, "id": asset_id, "status": "Sold", "salePrice": price}


class TestSaveAsset:
    """Tests for saving assets through the workflow."""

    @pytest.mark.asyncio
    async def test_new_healthy_asset_has_no_side_effects(
        self, started_stores, sale_workflow, animal_data
    ):
        assets, transactions, invoices = started_stores

        outcome = await sale_workflow.save_asset(animal_data)

        assert outcome.sale_triggered is False
        assert outcome.complete is True
        assert len(assets) == 1
        assert transactions.list() == []
        assert invoices.list() == []

    @pytest.mark.asyncio
    async def test_marking_sold_records_income_and_draft_invoice(
        self, started_stores, sale_workflow, animal_data
    ):
        assets, transactions, invoices = started_stores
        created = (await sale_workflow.save_asset(animal_data)).asset

        outcome = await sale_workflow.save_asset(sold(animal_data, created.id))

        assert outcome.sale_triggered is True
        assert outcome.complete is True
        assert assets.get(created.id).status == "Sold"

        [tx] = transactions.list()
        assert tx.type == "Income"
        assert tx.category == "Sale"
        assert tx.amount == Decimal("300")
        assert tx.date == TODAY
        assert tx.source_ref == created.id
        assert created.id in tx.description

        [invoice] = invoices.list()
        assert invoice.status == "Draft"
        assert invoice.issue_date == TODAY
        assert invoice.due_date == date(2024, 4, 14)
        assert invoice.line_items[0].unit_price == Decimal("300")
        assert invoice.subtotal == Decimal("300")
        assert invoice.total == Decimal("360.00")
        assert invoice.source_ref == created.id

    @pytest.mark.asyncio
    async def test_saving_sold_asset_again_adds_nothing(
        self, started_stores, sale_workflow, animal_data
    ):
        _, transactions, invoices = started_stores
        created = (await sale_workflow.save_asset(animal_data)).asset
        await sale_workflow.save_asset(sold(animal_data, created.id))

        outcome = await sale_workflow.save_asset({**sold(animal_data, created.id), "weight": 640})

        assert outcome.sale_triggered is False
        assert len(transactions) == 1
        assert len(invoices) == 1

    @pytest.mark.asyncio
    async def test_creating_asset_as_sold_fires_sale(
        self, started_stores, sale_workflow, animal_data
    ):
        _, transactions, invoices = started_stores

        outcome = await sale_workflow.save_asset(
            {**animal_data, "status": "Sold", "salePrice": "125.50"}
        )

        assert outcome.sale_triggered is True
        assert transactions.list()[0].amount == Decimal("125.50")
        assert invoices.list()[0].tax == Decimal("25.10")

    @pytest.mark.asyncio
    async def test_sold_without_price_writes_nothing(
        self, started_stores, sale_workflow, backend, animal_data
    ):
        with pytest.raises(ValidationFailed) as exc_info:
            await sale_workflow.save_asset({**animal_data, "status": "Sold"})

        assert "salePrice" in exc_info.value.field_errors
        assert backend.write_count == 0

    @pytest.mark.asyncio
    async def test_sale_events_published(
        self, started_stores, sale_workflow, events, animal_data
    ):
        created = (await sale_workflow.save_asset(animal_data)).asset

        await sale_workflow.save_asset(sold(animal_data, created.id))

        [recorded] = events.events_of(EventType.SALE_RECORDED)
        assert recorded.data["asset_id"] == created.id
        assert recorded.data["amount"] == "300"
        assert len(events.events_of(EventType.INVOICE_DRAFTED)) == 1
        titles = [n.title for n in events.notifications]
        assert "Income Recorded" in titles
        assert "Draft Invoice Created" in titles

    @pytest.mark.asyncio
    async def test_sale_while_offline_is_kept_locally(
        self, started_stores, sale_workflow, backend, animal_data
    ):
        assets, transactions, invoices = started_stores
        created = (await sale_workflow.save_asset(animal_data)).asset
        backend.fail_writes = True

        outcome = await sale_workflow.save_asset(sold(animal_data, created.id))

        assert outcome.sale_triggered is True
        assert outcome.complete is False
        assert outcome.errors == {"transaction": LOCAL_ONLY, "invoice": LOCAL_ONLY}
        assert assets.is_degraded and transactions.is_degraded and invoices.is_degraded
        assert assets.get(created.id).is_sold
        assert len(transactions) == 1
        assert len(invoices) == 1


class TestPartialFailure:
    """Tests for a sale whose side effects are only partly written."""

    @pytest.mark.asyncio
    async def test_failed_transaction_reported(
        self, started_stores, sale_workflow, events, animal_data
    ):
        _, transactions, invoices = started_stores
        created = (await sale_workflow.save_asset(animal_data)).asset

        with patch.object(
            transactions, "create", new=AsyncMock(side_effect=RemoteStoreError("down"))
        ):
            outcome = await sale_workflow.save_asset(sold(animal_data, created.id))

        assert outcome.sale_triggered is True
        assert outcome.complete is False
        assert outcome.transaction is None
        assert outcome.invoice is not None
        assert "transaction" in outcome.errors
        assert len(invoices) == 1
        [failed] = events.events_of(EventType.SALE_STEP_FAILED)
        assert failed.data["step"] == "transaction"

    @pytest.mark.asyncio
    async def test_reconcile_fills_in_missing_transaction(
        self, started_stores, sale_workflow, animal_data
    ):
        _, transactions, invoices = started_stores
        created = (await sale_workflow.save_asset(animal_data)).asset
        with patch.object(
            transactions, "create", new=AsyncMock(side_effect=RemoteStoreError("down"))
        ):
            await sale_workflow.save_asset(sold(animal_data, created.id))

        report = await sale_workflow.reconcile()

        assert report.checked == 1
        assert len(report.transactions_created) == 1
        assert report.invoices_created == []
        assert transactions.for_source(created.id)[0].amount == Decimal("300")
        assert len(invoices) == 1

        again = await sale_workflow.reconcile()
        assert again.repaired == 0


class TestReconcile:
    """Tests for the reconciliation sweep."""

    @pytest.mark.asyncio
    async def test_sold_asset_without_records(self, backend, sale_workflow, animal_store,
                                              transaction_store, invoice_store, animal_data):
        await backend.add(
            "assets", OWNER, {**animal_data, "status": "Sold", "salePrice": 300}, document_id="A004"
        )
        for store in (animal_store, transaction_store, invoice_store):
            await store.start()

        report = await sale_workflow.reconcile()

        assert report.checked == 1
        assert report.repaired == 2
        assert transaction_store.for_source("A004")
        assert invoice_store.for_source("A004")

    @pytest.mark.asyncio
    async def test_completed_sale_needs_no_repair(
        self, started_stores, sale_workflow, animal_data
    ):
        created = (await sale_workflow.save_asset(animal_data)).asset
        await sale_workflow.save_asset(sold(animal_data, created.id))

        report = await sale_workflow.reconcile()

        assert report.checked == 1
        assert report.repaired == 0
        assert report.failures == {}

    @pytest.mark.asyncio
    async def test_unsold_assets_not_checked(self, started_stores, sale_workflow, animal_data):
        await sale_workflow.save_asset(animal_data)

        report = await sale_workflow.reconcile()

        assert report.checked == 0


class TestRejectedWrites:
    """Tests for side effects the remote store refused."""

    @pytest.mark.asyncio
    async def test_rejected_transaction_repaired_after_reconnect(
        self, started_stores, sale_workflow, backend, animal_data
    ):
        _, transactions, invoices = started_stores
        created = (await sale_workflow.save_asset(animal_data)).asset
        original_add = backend.add

        async def reject_transactions(collection, *args, **kwargs):
            if collection == "transactions":
                raise RemoteStoreError("Store unavailable", status_code=503)
            return await original_add(collection, *args, **kwargs)

        with patch.object(backend, "add", new=AsyncMock(side_effect=reject_transactions)):
            outcome = await sale_workflow.save_asset(sold(animal_data, created.id))

        assert outcome.complete is False
        assert outcome.errors == {"transaction": LOCAL_ONLY}
        assert transactions.is_synced(outcome.transaction.id) is False
        assert backend.documents("transactions", OWNER) == []

        offline = await sale_workflow.reconcile()
        assert offline.repaired == 0

        await transactions.reconnect()
        report = await sale_workflow.reconcile()

        assert len(report.transactions_created) == 1
        assert report.repaired == 1
        [(_, document)] = backend.documents("transactions", OWNER)
        assert document["sourceRef"] == created.id
        assert len(invoices) == 1

        again = await sale_workflow.reconcile()
        assert again.repaired == 0

    @pytest.mark.asyncio
    async def test_repair_kept_locally_is_retried(
        self, started_stores, sale_workflow, backend, animal_data
    ):
        _, transactions, _ = started_stores
        created = (await sale_workflow.save_asset(animal_data)).asset
        with patch.object(
            transactions, "create", new=AsyncMock(side_effect=RemoteStoreError("down"))
        ):
            await sale_workflow.save_asset(sold(animal_data, created.id))
        backend.fail_writes = True

        report = await sale_workflow.reconcile()

        assert report.repaired == 0
        assert report.failures == {f"{created.id}:transaction": LOCAL_ONLY}

        backend.fail_writes = False
        await transactions.reconnect()
        retried = await sale_workflow.reconcile()

        assert len(retried.transactions_created) == 1
        assert len(backend.documents("transactions", OWNER)) == 1


class TestFeedLag:
    """Tests for saves that race ahead of the change feed."""

    @pytest.mark.asyncio
    async def test_resave_before_delivery_updates_in_place(
        self, lagging_backend, lagging_stores, lagging_workflow, animal_data
    ):
        assets, transactions, invoices = lagging_stores
        first = await lagging_workflow.save_asset(
            {**animal_data, "status": "Sold", "salePrice": 300}
        )
        assert assets.list() == []

        second = await lagging_workflow.save_asset(
            {**sold(animal_data, first.asset.id), "weight": 640}
        )
        lagging_backend.flush()

        assert second.asset.id == first.asset.id
        assert second.sale_triggered is False
        [asset] = assets.list()
        assert asset.weight == 640
        assert len(transactions) == 1
        assert len(invoices) == 1

    @pytest.mark.asyncio
    async def test_sold_before_delivery_fires_once(
        self, lagging_backend, lagging_stores, lagging_workflow, animal_data
    ):
        assets, transactions, invoices = lagging_stores
        created = (await lagging_workflow.save_asset(animal_data)).asset

        outcome = await lagging_workflow.save_asset(sold(animal_data, created.id))
        lagging_backend.flush()
        await lagging_workflow.save_asset(sold(animal_data, created.id))
        lagging_backend.flush()

        assert outcome.sale_triggered is True
        assert outcome.complete is True
        assert assets.get(created.id).is_sold
        assert len(assets) == 1
        assert len(transactions) == 1
        assert len(invoices) == 1

    @pytest.mark.asyncio
    async def test_reconcile_skips_sale_still_in_flight(
        self, lagging_stores, lagging_workflow, lagging_backend, animal_data
    ):
        _, transactions, invoices = lagging_stores
        await lagging_workflow.save_asset({**animal_data, "status": "Sold", "salePrice": 300})
        lagging_backend.flush("assets")

        report = await lagging_workflow.reconcile()
        lagging_backend.flush()

        assert report.checked == 1
        assert report.repaired == 0
        assert len(transactions) == 1
        assert len(invoices) == 1
