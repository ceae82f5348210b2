"""Deployment profiles: livestock farms and vehicle fleets.

A profile fixes the asset model, the closed category lists used for
validation, and the demo records offered to a tenant on first run.
"""

from dataclasses import dataclass, field
from typing import Any

from herdbook.models import Animal, Asset, SALE_CATEGORY, Vehicle

OTHER_CATEGORY = "Other"


@dataclass(frozen=True)
class Profile:
    """Everything that differs between deployment variants."""

    name: str
    asset_model: type[Asset]
    asset_categories: tuple[str, ...]
    active_statuses: tuple[str, ...]
    inventory_categories: tuple[str, ...]
    seed_assets: tuple[dict[str, Any], ...] = field(default=(), repr=False)
    seed_inventory: tuple[dict[str, Any], ...] = field(default=(), repr=False)
    seed_transactions: tuple[dict[str, Any], ...] = field(default=(), repr=False)
    seed_invoices: tuple[dict[str, Any], ...] = field(default=(), repr=False)

    @property
    def transaction_categories(self) -> tuple[str, ...]:
        return (SALE_CATEGORY, *self.inventory_categories, OTHER_CATEGORY)

    @property
    def default_status(self) -> str:
        return self.active_statuses[0]

    def seeds_for(self, entity: str) -> tuple[dict[str, Any], ...]:
        """Demo documents for an entity key (assets, inventory, ...)."""
        return {
            "assets": self.seed_assets,
            "inventory": self.seed_inventory,
            "transactions": self.seed_transactions,
            "invoices": self.seed_invoices,
        }[entity]


LIVESTOCK = Profile(
    name="livestock",
    asset_model=Animal,
    asset_categories=("Bovine", "Porcine", "Poultry", "Caprine", "Rabbit"),
    active_statuses=("Healthy", "At Risk"),
    inventory_categories=("Feed", "Medication", "Equipment"),
    seed_assets=(
        {"id": "A001", "name": "Daisy", "species": "Bovine", "age": 24, "weight": 650, "lot": "L001", "status": "Healthy"},
        {"id": "A002", "name": "Babe", "species": "Porcine", "age": 6, "weight": 100, "lot": "L001", "status": "At Risk"},
        {"id": "A003", "name": "Cluck", "species": "Poultry", "age": 1, "weight": 2, "lot": "L002", "status": "Healthy"},
        {"id": "A004", "name": "Billy", "species": "Caprine", "age": 12, "weight": 50, "lot": "L003", "status": "Sold", "salePrice": 300},
        {"id": "A005", "name": "Peter", "species": "Rabbit", "age": 4, "weight": 3, "lot": "L002", "status": "Healthy"},
    ),
    seed_inventory=(
        {"id": "FEED-001", "name": "Bovine Feed", "category": "Feed", "quantity": 50, "unit": "bags", "lowStockThreshold": 10},
        {"id": "MED-001", "name": "General Antibiotic", "category": "Medication", "quantity": 20, "unit": "bottles", "lowStockThreshold": 5},
        {"id": "EQUIP-001", "name": "Water Trough", "category": "Equipment", "quantity": 10, "unit": "units", "lowStockThreshold": 2},
    ),
    seed_transactions=(
        {"id": "T-001", "date": "2023-07-10", "description": "Sale of Caprine Billy (A004)", "category": "Sale", "type": "Income", "amount": 300, "sourceRef": "A004"},
        {"id": "T-002", "date": "2023-07-05", "description": "Purchase Bovine Feed", "category": "Feed", "type": "Expense", "amount": 250},
        {"id": "T-003", "date": "2023-07-02", "description": "Purchase General Antibiotic", "category": "Medication", "type": "Expense", "amount": 80},
    ),
    seed_invoices=(
        {
            "id": "INV-001",
            "clientName": "Local Butcher Shop",
            "clientEmail": "butcher@local.com",
            "issueDate": "2023-07-10",
            "dueDate": "2023-08-09",
            "lineItems": [
                {"id": "1", "description": "Animal: Caprine - Billy (ID: A004)", "quantity": 1, "unitPrice": 300},
            ],
            "status": "Paid",
            "sourceRef": "A004",
        },
    ),
)

FLEET = Profile(
    name="fleet",
    asset_model=Vehicle,
    asset_categories=("Toyota", "Honda", "Ford", "BMW", "Mercedes"),
    active_statuses=("Available", "In Service"),
    inventory_categories=("Engine Part", "Brake Part", "Suspension Part", "Fluid", "Tool"),
    seed_assets=(
        {"id": "VIN001", "make": "Toyota", "model": "Camry", "year": 2021, "mileage": 50000, "location": "Lot A", "status": "Available"},
        {"id": "VIN002", "make": "Honda", "model": "Civic", "year": 2020, "mileage": 65000, "location": "Lot A", "status": "In Service"},
        {"id": "VIN003", "make": "Ford", "model": "F-150", "year": 2022, "mileage": 30000, "location": "Lot B", "status": "Available"},
        {"id": "VIN004", "make": "BMW", "model": "X5", "year": 2019, "mileage": 80000, "location": "Lot C", "status": "Sold", "salePrice": 35000},
        {"id": "VIN005", "make": "Mercedes", "model": "C-Class", "year": 2023, "mileage": 15000, "location": "Lot B", "status": "Available"},
    ),
    seed_inventory=(
        {"id": "ENG-001", "name": "Oil Filter", "category": "Engine Part", "quantity": 40, "unit": "units", "lowStockThreshold": 10},
        {"id": "BRK-001", "name": "Brake Pads", "category": "Brake Part", "quantity": 8, "unit": "sets", "lowStockThreshold": 10},
        {"id": "FLD-001", "name": "Engine Oil 5W-30", "category": "Fluid", "quantity": 25, "unit": "litres", "lowStockThreshold": 20},
    ),
    seed_transactions=(
        {"id": "T-001", "date": "2023-07-10", "description": "Sale of 2019 BMW X5", "category": "Sale", "type": "Income", "amount": 35000, "sourceRef": "VIN004"},
        {"id": "T-002", "date": "2023-07-05", "description": "Purchase Brake Pads", "category": "Brake Part", "type": "Expense", "amount": 300},
        {"id": "T-003", "date": "2023-07-02", "description": "Purchase Engine Oil", "category": "Fluid", "type": "Expense", "amount": 75},
    ),
    seed_invoices=(
        {
            "id": "INV-001",
            "clientName": "City Motors Ltd",
            "clientEmail": "accounts@citymotors.example",
            "issueDate": "2023-07-10",
            "dueDate": "2023-08-09",
            "lineItems": [
                {"id": "1", "description": "Vehicle: BMW X5 (VIN: VIN004)", "quantity": 1, "unitPrice": 35000},
            ],
            "status": "Paid",
            "sourceRef": "VIN004",
        },
    ),
)

PROFILES: dict[str, Profile] = {p.name: p for p in (LIVESTOCK, FLEET)}


def get_profile(name: str) -> Profile:
    """Look up a profile by name.

    Raises:
        KeyError: If no profile has that name.
    """
    try:
        return PROFILES[name]
    except KeyError:
        raise KeyError(f"Unknown profile {name!r}; expected one of {sorted(PROFILES)}") from None
