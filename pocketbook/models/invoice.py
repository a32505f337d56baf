"""
Core Data Models for Pocketbook

These models define the schemas for all data flowing through the system:
1. What the caller hands in (Identity, ImageInput)
2. What the extraction produces (InvoiceDraft)
3. What the database hands back (InvoiceRecord, PocketRecord, ...)
4. What the entry operations return (OperationResult)

Storage rows never leave the storage package; they are converted to
these models first.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ItemCategory(str, Enum):
    """
    Line item categories.

    Values are the labels the model is asked to emit and the
    labels stored in the database.
    """
    GROCERIES = "Sembako"
    FOOD_AND_DRINK = "Makan & Minum"
    TRANSPORTATION = "Transportasi"
    UTILITIES = "Utilitas"
    ENTERTAINMENT = "Hiburan"
    HEALTH = "Kesehatan"
    OTHER = "Lain-lain"

    @classmethod
    def from_label(cls, label: str) -> Optional["ItemCategory"]:
        """Case-insensitive lookup by label or member name."""
        needle = label.strip().lower()
        for category in cls:
            if needle in (category.value.lower(), category.name.lower()):
                return category
        return None


class View(str, Enum):
    """Cached read views that writes must invalidate."""
    HOME = "/"
    INVOICES = "/invoices"
    ANALYSIS = "/analysis"
    POCKETS = "/pockets"


# =============================================================================
# REQUEST INPUTS
# =============================================================================

class Identity(BaseModel):
    """
    Authenticated user, as supplied by the session provider.

    The pipeline trusts this completely.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    user_id: str = Field(..., min_length=1)
    name: str = ""
    email: Optional[str] = None
    currency: Optional[str] = None


class ImageInput(BaseModel):
    """A photographed receipt."""

    data: bytes = Field(..., repr=False)
    mime_type: str
    filename: Optional[str] = None

    @field_validator("mime_type")
    @classmethod
    def normalize_mime_type(cls, v: str) -> str:
        v = v.strip().lower()
        if not v.startswith("image/"):
            raise ValueError(f"Unsupported file type: {v}. Please upload an image.")
        return v

    @property
    def size_bytes(self) -> int:
        return len(self.data)


# =============================================================================
# EXTRACTION OUTPUT
# =============================================================================

class InvoiceItemDraft(BaseModel):
    """One line item as extracted by the model."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=300)
    quantity: Decimal = Field(..., ge=0)
    unit_price: Decimal = Field(..., ge=0)
    total_price: Decimal = Field(..., ge=0)
    category: ItemCategory = ItemCategory.OTHER


class InvoiceDraft(BaseModel):
    """
    A validated, fully typed invoice that has not been saved yet.

    Amounts are taken verbatim from the extraction; nothing here checks
    that quantity * unit_price matches total_price.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    summary: str = Field(..., max_length=500)
    date: date
    total_amount: Decimal = Field(..., ge=0)
    items: list[InvoiceItemDraft] = Field(default_factory=list)

    @property
    def items_total(self) -> Decimal:
        return sum((item.total_price for item in self.items), Decimal("0"))


# =============================================================================
# PERSISTED VIEWS
# =============================================================================

class PocketRecord(BaseModel):
    """A pocket as seen by one user."""

    id: str
    name: str
    owner_user_id: str
    is_owner: bool = True


class PocketMemberInfo(BaseModel):
    """A non-owner member of a pocket."""

    user_id: str
    name: str
    email: str


class InvoiceItemRecord(BaseModel):
    """A persisted line item."""

    id: str
    invoice_id: str
    name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    category: str


class InvoiceRecord(BaseModel):
    """A persisted invoice with its items embedded."""

    id: str
    creator_user_id: str
    summary: str
    date: date
    total_amount: Decimal
    pocket_id: Optional[str] = None
    pocket_name: Optional[str] = None
    raw_text: Optional[str] = None
    created_at: datetime
    items: list[InvoiceItemRecord] = Field(default_factory=list)

    @property
    def item_count(self) -> int:
        return len(self.items)


class InvoicePage(BaseModel):
    """One page of the invoice list."""

    data: list[InvoiceRecord] = Field(default_factory=list)
    has_more: bool = False
    next_page: Optional[int] = None


class LabeledAmount(BaseModel):
    """A (label, amount) pair used by the analysis view."""

    name: str
    value: Decimal


class DashboardSummary(BaseModel):
    """Home view: this month's spending at a glance."""

    month: str = Field(..., description="YYYY-MM")
    currency: str = "IDR"
    total_month_spend: Decimal = Decimal("0")
    total_month_spend_display: str = ""
    recent_invoices: list[InvoiceRecord] = Field(default_factory=list)
    pockets: list[PocketRecord] = Field(default_factory=list)


class AnalysisReport(BaseModel):
    """Analysis view: where the money went in one month."""

    month: str = Field(..., description="YYYY-MM")
    daily_totals: list[LabeledAmount] = Field(default_factory=list)
    category_totals: list[LabeledAmount] = Field(default_factory=list)
    top_items: list[LabeledAmount] = Field(default_factory=list)
    pockets: list[PocketRecord] = Field(default_factory=list)


class UserSettings(BaseModel):
    """Per-user preferences."""

    currency: str


# =============================================================================
# OPERATION RESULT
# =============================================================================

T = TypeVar("T")


class OperationResult(BaseModel, Generic[T]):
    """
    Uniform outcome of every entry operation.

    success=True carries `data`; success=False carries a
    human-readable `error`.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "OperationResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "OperationResult[T]":
        return cls(success=False, error=error)
