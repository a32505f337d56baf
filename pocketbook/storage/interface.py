"""
Abstract Storage Interface

Business logic talks to these interfaces only. The SQL implementation
lives in sql_storage; tests run it against in-memory SQLite.

Methods are async so callers do not care whether a backend blocks.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from pocketbook.models.audit import AuditEvent
from pocketbook.models.invoice import (
    Identity,
    InvoiceDraft,
    InvoiceRecord,
    LabeledAmount,
    PocketMemberInfo,
    PocketRecord,
)


class InvoiceFilter(BaseModel):
    """
    Which invoices a read may see.

    visible_to_user_id / visible_pocket_ids carry the access rule:
    an invoice matches if it was created by that user OR sits in one
    of those pockets. Leave visible_to_user_id None for unrestricted
    internal reads.
    """

    visible_to_user_id: Optional[str] = None
    visible_pocket_ids: list[str] = Field(default_factory=list)
    pocket_id: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    query: Optional[str] = None


class InvoiceStorageInterface(ABC):
    """Invoice and line item persistence."""

    @abstractmethod
    async def save_invoice(
        self,
        draft: InvoiceDraft,
        pocket_id: Optional[str],
        creator_user_id: str,
        raw_text: Optional[str],
    ) -> InvoiceRecord:
        """
        Insert one invoice and all its items atomically.

        Returns:
            The invoice as re-read inside the same transaction

        Raises:
            StorageError: If anything fails; nothing is written then
        """
        pass

    @abstractmethod
    async def get_invoice(self, invoice_id: str) -> Optional[InvoiceRecord]:
        """Retrieve an invoice with its items, None if absent."""
        pass

    @abstractmethod
    async def delete_invoice(self, invoice_id: str) -> bool:
        """
        Delete an invoice and its items.

        Returns:
            False if the invoice did not exist
        """
        pass

    @abstractmethod
    async def list_invoices(
        self,
        invoice_filter: InvoiceFilter,
        limit: int = 20,
        offset: int = 0,
    ) -> list[InvoiceRecord]:
        """Newest first (by date, then by creation time)."""
        pass

    @abstractmethod
    async def total_spend(self, invoice_filter: InvoiceFilter) -> Decimal:
        """Sum of total_amount over the matching invoices."""
        pass

    @abstractmethod
    async def daily_totals(self, invoice_filter: InvoiceFilter) -> list[LabeledAmount]:
        """Per-day sums, oldest day first."""
        pass

    @abstractmethod
    async def category_totals(self, invoice_filter: InvoiceFilter) -> list[LabeledAmount]:
        """Per item category sums, largest first."""
        pass

    @abstractmethod
    async def top_items(
        self,
        invoice_filter: InvoiceFilter,
        limit: int = 10,
    ) -> list[LabeledAmount]:
        """Per item name sums, largest first."""
        pass


class PocketStorageInterface(ABC):
    """Pockets and pocket memberships."""

    @abstractmethod
    async def get_pocket(self, pocket_id: str) -> Optional[PocketRecord]:
        pass

    @abstractmethod
    async def find_pocket_by_name(
        self,
        owner_user_id: str,
        name: str,
    ) -> Optional[PocketRecord]:
        pass

    @abstractmethod
    async def get_or_create_pocket(
        self,
        owner_user_id: str,
        name: str,
    ) -> tuple[PocketRecord, bool]:
        """
        Idempotent upsert on (owner_user_id, name).

        Returns:
            (pocket, created)
        """
        pass

    @abstractmethod
    async def create_pocket(self, owner_user_id: str, name: str) -> PocketRecord:
        """
        Raises:
            DuplicateError: The owner already has a pocket with that name
        """
        pass

    @abstractmethod
    async def rename_pocket(self, pocket_id: str, name: str) -> PocketRecord:
        """
        Raises:
            NotFoundError: Pocket doesn't exist
            DuplicateError: Name already used by the same owner
        """
        pass

    @abstractmethod
    async def delete_pocket(self, pocket_id: str) -> bool:
        """
        Delete a pocket and its memberships.

        Invoices filed in it are kept with no pocket.
        """
        pass

    @abstractmethod
    async def list_owned_pockets(self, user_id: str) -> list[PocketRecord]:
        pass

    @abstractmethod
    async def list_shared_pockets(self, user_id: str) -> list[PocketRecord]:
        """Pockets the user is a (non-owner) member of."""
        pass

    @abstractmethod
    async def is_member(self, pocket_id: str, user_id: str) -> bool:
        pass

    @abstractmethod
    async def add_member(self, pocket_id: str, user_id: str) -> None:
        """
        Raises:
            DuplicateError: Already a member
        """
        pass

    @abstractmethod
    async def remove_member(self, pocket_id: str, user_id: str) -> bool:
        pass

    @abstractmethod
    async def list_members(self, pocket_id: str) -> list[PocketMemberInfo]:
        pass


class UserStorageInterface(ABC):
    """Read access to the identity provider's users, plus preferences."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[Identity]:
        pass

    @abstractmethod
    async def find_user_by_email(self, email: str) -> Optional[Identity]:
        """Case-insensitive lookup."""
        pass

    @abstractmethod
    async def register_user(self, identity: Identity) -> Identity:
        """
        Insert or update a user row.

        Called by the identity provider integration, not by the pipeline.
        """
        pass

    @abstractmethod
    async def set_currency(self, user_id: str, currency: str) -> bool:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events of one operation, oldest first."""
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Newest first."""
        pass
