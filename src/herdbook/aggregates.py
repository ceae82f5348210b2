"""Derived rollups computed from entity store snapshots.

Every function here is a pure function of its arguments: nothing is cached
and nothing is mutated, so views can call them on every render.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

TAX_RATE = Decimal("0.20")
CENTS = Decimal("0.01")

INCOME = "Income"
EXPENSE = "Expense"


def round2(amount: Decimal) -> Decimal:
    """Round a monetary amount to cents, half away from zero."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


# =============================================================================
# LEDGER
# =============================================================================


@dataclass(frozen=True)
class LedgerTotals:
    """Revenue, expenses and net profit over a set of transactions."""

    revenue: Decimal
    expenses: Decimal
    net_profit: Decimal

    def to_dict(self) -> dict[str, str]:
        return {
            "revenue": str(self.revenue),
            "expenses": str(self.expenses),
            "net_profit": str(self.net_profit),
        }


def ledger_totals(transactions: Iterable[Any]) -> LedgerTotals:
    """Partition transactions by type and sum the amounts of each side."""
    revenue = Decimal("0")
    expenses = Decimal("0")
    for tx in transactions:
        if tx.type == INCOME:
            revenue += tx.amount
        elif tx.type == EXPENSE:
            expenses += tx.amount
    return LedgerTotals(revenue=revenue, expenses=expenses, net_profit=revenue - expenses)


# =============================================================================
# STOCK
# =============================================================================


def is_low_stock(quantity: Decimal, threshold: Decimal) -> bool:
    """An item is low on stock when quantity has reached the threshold."""
    return quantity <= threshold


def stock_percentage(quantity: Decimal, threshold: Decimal) -> Decimal:
    """Fill level for a stock indicator, where twice the threshold reads as full.

    A zero threshold has no meaningful scale: any stock reads full, none reads empty.
    """
    if threshold <= 0:
        return Decimal("100") if quantity > 0 else Decimal("0")
    percentage = quantity / (threshold * 2) * 100
    return min(percentage, Decimal("100"))


# =============================================================================
# INVOICES
# =============================================================================


@dataclass(frozen=True)
class InvoiceTotals:
    """Subtotal, tax and total derived from an invoice's line items."""

    subtotal: Decimal
    tax: Decimal
    total: Decimal


def line_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    return quantity * unit_price


def invoice_totals(line_items: Iterable[Any], rate: Decimal = TAX_RATE) -> InvoiceTotals:
    """Recompute invoice totals from line items.

    Stored line totals are ignored; each line is re-derived from quantity and
    unit price so edited lines can never drift from the invoice total.
    """
    subtotal = sum(
        (line_total(item.quantity, item.unit_price) for item in line_items),
        Decimal("0"),
    )
    tax = round2(subtotal * rate)
    return InvoiceTotals(subtotal=subtotal, tax=tax, total=subtotal + tax)


def invoice_status_totals(invoices: Iterable[Any]) -> dict[str, Decimal]:
    """Sum invoice totals per status, e.g. to show what is still outstanding."""
    totals: dict[str, Decimal] = {}
    for invoice in invoices:
        totals[invoice.status] = totals.get(invoice.status, Decimal("0")) + invoice.total
    return totals


# =============================================================================
# DASHBOARD & PRODUCTION CYCLES
# =============================================================================


@dataclass(frozen=True)
class DashboardSummary:
    """Headline numbers for the dashboard."""

    total_assets: int
    active_assets: int
    category_counts: dict[str, int]
    ledger: LedgerTotals
    low_stock_items: int


def dashboard_summary(
    assets: Iterable[Any],
    transactions: Iterable[Any],
    inventory: Iterable[Any],
) -> DashboardSummary:
    asset_list = list(assets)
    active = [asset for asset in asset_list if asset.is_active]
    counts = Counter(asset.category for asset in active)
    low_stock = sum(
        1 for item in inventory if is_low_stock(item.quantity, item.low_stock_threshold)
    )
    return DashboardSummary(
        total_assets=len(asset_list),
        active_assets=len(active),
        category_counts=dict(counts),
        ledger=ledger_totals(transactions),
        low_stock_items=low_stock,
    )


@dataclass
class ProductionCycle:
    """Active assets sharing a lot (livestock) or location (fleet)."""

    group_key: str
    category: str
    asset_ids: list[str] = field(default_factory=list)

    @property
    def asset_count(self) -> int:
        return len(self.asset_ids)

    @property
    def cycle_id(self) -> str:
        return f"cycle-{self.group_key}"


def production_cycles(assets: Iterable[Any]) -> list[ProductionCycle]:
    """Group unsold assets by lot/location, in first-seen order.

    The cycle's category is taken from its first member.
    """
    cycles: dict[str, ProductionCycle] = {}
    for asset in assets:
        if not asset.is_active:
            continue
        cycle = cycles.get(asset.group_key)
        if cycle is None:
            cycle = ProductionCycle(group_key=asset.group_key, category=asset.category)
            cycles[asset.group_key] = cycle
        cycle.asset_ids.append(asset.id)
    return list(cycles.values())
