"""Record models for every entity collection.

Attribute names are snake_case; documents exchanged with the document store
and the offline cache use the camelCase aliases (``lowStockThreshold``,
``salePrice``, ``lineItems``). Categories are closed per deployment profile
and are checked when a profile is passed in the validation context.
"""

import datetime as dt
import re
from decimal import Decimal
from typing import Annotated, Any, Literal, Self

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from herdbook import aggregates
from herdbook.errors import FieldError, ValidationFailed

Text = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

SOLD = "Sold"
INCOME = aggregates.INCOME
EXPENSE = aggregates.EXPENSE
SALE_CATEGORY = "Sale"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _check_category(value: str, info: ValidationInfo, allowed_attr: str) -> str:
    profile = (info.context or {}).get("profile")
    if profile is None:
        return value
    allowed = getattr(profile, allowed_attr)
    if value not in allowed:
        raise ValueError(f"must be one of: {', '.join(allowed)}")
    return value


class Record(BaseModel):
    """A document in one entity collection, keyed by ``id``."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str | None = None

    @classmethod
    def parse(cls, data: "Record | dict[str, Any]", profile: Any = None) -> Self:
        """Validate form input or a stored document into a record.

        Raises:
            ValidationFailed: with one message per offending field.
        """
        if isinstance(data, Record):
            data = data.model_dump(by_alias=True)
        try:
            return cls.model_validate(data, context={"profile": profile})
        except ValidationError as e:
            raise ValidationFailed.from_pydantic(e) from e

    @classmethod
    def from_document(cls, document_id: str, document: dict[str, Any], profile: Any = None) -> Self:
        return cls.parse({**document, "id": document_id}, profile)

    def to_document(self) -> dict[str, Any]:
        """Serialize to the JSON document stored remotely (id is the document key)."""
        return self.model_dump(mode="json", by_alias=True, exclude={"id"}, exclude_none=True)


# =============================================================================
# ASSETS
# =============================================================================


class Asset(Record):
    """The sellable primary entity: an animal or a vehicle."""

    status: str
    sale_price: Decimal | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _sale_price_iff_sold(self) -> Self:
        if self.status == SOLD:
            if self.sale_price is None:
                raise FieldError("salePrice", "Sale price is required when status is Sold.")
        else:
            # A price left over from an earlier Sold status no longer applies
            self.sale_price = None
        return self

    @property
    def is_sold(self) -> bool:
        return self.status == SOLD

    @property
    def is_active(self) -> bool:
        """Still held: counted on the dashboard and in production cycles."""
        return not self.is_sold

    @property
    def category(self) -> str:
        raise NotImplementedError

    @property
    def label(self) -> str:
        raise NotImplementedError

    @property
    def group_key(self) -> str:
        raise NotImplementedError


class Animal(Asset):
    """Livestock record; grouped into production lots."""

    name: Text
    species: str
    age: int = Field(ge=0, description="Age in months")
    weight: Decimal = Field(ge=0, description="Weight in kilograms")
    lot: Text
    status: Literal["Healthy", "At Risk", "Sold"] = "Healthy"

    @field_validator("species")
    @classmethod
    def _species_in_profile(cls, v: str, info: ValidationInfo) -> str:
        return _check_category(v, info, "asset_categories")

    @property
    def category(self) -> str:
        return self.species

    @property
    def label(self) -> str:
        return self.name

    @property
    def group_key(self) -> str:
        return self.lot


class Vehicle(Asset):
    """Fleet record; grouped by yard location."""

    make: str
    model: Text
    year: int = Field(ge=1900)
    mileage: Decimal = Field(ge=0, description="Odometer reading in kilometres")
    location: Text
    status: Literal["Available", "In Service", "Sold"] = "Available"

    @field_validator("make")
    @classmethod
    def _make_in_profile(cls, v: str, info: ValidationInfo) -> str:
        return _check_category(v, info, "asset_categories")

    @property
    def category(self) -> str:
        return self.make

    @property
    def label(self) -> str:
        return f"{self.year} {self.make} {self.model}"

    @property
    def group_key(self) -> str:
        return self.location


# =============================================================================
# INVENTORY
# =============================================================================


class InventoryItem(Record):
    name: Text
    category: str
    quantity: Decimal = Field(ge=0)
    unit: Text
    low_stock_threshold: Decimal = Field(ge=0)
    purchase_price: Decimal | None = Field(default=None, ge=0)

    @field_validator("category")
    @classmethod
    def _category_in_profile(cls, v: str, info: ValidationInfo) -> str:
        return _check_category(v, info, "inventory_categories")

    @property
    def is_low_stock(self) -> bool:
        return aggregates.is_low_stock(self.quantity, self.low_stock_threshold)

    @property
    def stock_percentage(self) -> Decimal:
        return aggregates.stock_percentage(self.quantity, self.low_stock_threshold)


# =============================================================================
# LEDGER
# =============================================================================


class Transaction(Record):
    date: dt.date
    description: Text
    category: str
    type: Literal["Income", "Expense"]
    amount: Decimal = Field(gt=0)
    source_ref: str | None = Field(
        default=None, description="Id of the asset whose sale produced this entry"
    )

    @field_validator("category")
    @classmethod
    def _category_in_profile(cls, v: str, info: ValidationInfo) -> str:
        return _check_category(v, info, "transaction_categories")


# =============================================================================
# INVOICES
# =============================================================================


class LineItem(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str | None = None
    description: Text
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    total: Decimal = Decimal("0")

    @model_validator(mode="after")
    def _recompute_total(self) -> Self:
        self.total = aggregates.line_total(self.quantity, self.unit_price)
        return self


class Invoice(Record):
    """An invoice whose money fields are always derived from its line items."""

    client_name: Text
    client_email: str
    issue_date: dt.date
    due_date: dt.date
    line_items: list[LineItem] = Field(min_length=1)
    subtotal: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    status: Literal["Draft", "Sent", "Paid", "Overdue"] = "Draft"
    source_ref: str | None = None

    @field_validator("client_email")
    @classmethod
    def _email_shape(cls, v: str) -> str:
        v = v.strip()
        if not _EMAIL_RE.match(v):
            raise ValueError("Invalid email address")
        return v

    @model_validator(mode="after")
    def _recompute_totals(self) -> Self:
        totals = aggregates.invoice_totals(self.line_items)
        self.subtotal = totals.subtotal
        self.tax = totals.tax
        self.total = totals.total
        return self
