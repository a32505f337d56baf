"""
Access-Control Gate

Read and delete authorization for invoices and pockets, based on
invoice ownership and pocket membership.

RULES:
- View an invoice: its creator, or anyone who owns or is a member
  of its pocket
- Delete an invoice: its creator, or the owner of its pocket
- Rename / delete / share a pocket, remove a member: the pocket owner
- The owner is implicitly a member and never stored as one
"""

from typing import Optional

from pocketbook.errors import NotFoundError, UnauthorizedError
from pocketbook.models.invoice import Identity, InvoiceRecord, PocketRecord
from pocketbook.storage.interface import InvoiceFilter, PocketStorageInterface


def require_identity(identity: Optional[Identity]) -> Identity:
    """Fail fast when there is no authenticated user."""
    if identity is None:
        raise UnauthorizedError("Unauthorized")
    return identity


class AccessGate:
    """Answers "may this user do that?" questions against pocket storage."""

    def __init__(self, pockets: PocketStorageInterface):
        self._pockets = pockets

    async def accessible_pockets(self, identity: Identity) -> list[PocketRecord]:
        """Owned pockets first, then pockets shared with the user."""
        owned = await self._pockets.list_owned_pockets(identity.user_id)
        shared = await self._pockets.list_shared_pockets(identity.user_id)
        return owned + shared

    async def accessible_pocket_ids(self, identity: Identity) -> list[str]:
        return [pocket.id for pocket in await self.accessible_pockets(identity)]

    async def visibility_filter(self, identity: Identity, **kwargs) -> InvoiceFilter:
        """
        Build an InvoiceFilter restricted to what the user may see.

        Extra keyword arguments are passed through to InvoiceFilter.
        """
        return InvoiceFilter(
            visible_to_user_id=identity.user_id,
            visible_pocket_ids=await self.accessible_pocket_ids(identity),
            **kwargs,
        )

    async def can_access_pocket(self, identity: Identity, pocket: PocketRecord) -> bool:
        if pocket.owner_user_id == identity.user_id:
            return True
        return await self._pockets.is_member(pocket.id, identity.user_id)

    async def ensure_can_view_invoice(
        self,
        identity: Identity,
        invoice: InvoiceRecord,
    ) -> None:
        if invoice.creator_user_id == identity.user_id:
            return
        if invoice.pocket_id is not None:
            pocket = await self._pockets.get_pocket(invoice.pocket_id)
            if pocket is not None and await self.can_access_pocket(identity, pocket):
                return
        raise UnauthorizedError("You do not have access to this invoice")

    async def ensure_can_delete_invoice(
        self,
        identity: Identity,
        invoice: InvoiceRecord,
    ) -> None:
        if invoice.creator_user_id == identity.user_id:
            return
        if invoice.pocket_id is not None:
            pocket = await self._pockets.get_pocket(invoice.pocket_id)
            if pocket is not None and pocket.owner_user_id == identity.user_id:
                return
        raise UnauthorizedError("Only the creator or the pocket owner can delete this invoice")

    async def get_owned_pocket(self, identity: Identity, pocket_id: str) -> PocketRecord:
        """
        Load a pocket the user must own.

        Raises:
            NotFoundError: No such pocket
            UnauthorizedError: Someone else owns it
        """
        pocket = await self._pockets.get_pocket(pocket_id)
        if pocket is None:
            raise NotFoundError("Pocket not found")
        if pocket.owner_user_id != identity.user_id:
            raise UnauthorizedError("Only the pocket owner can do this")
        return pocket

    async def get_accessible_pocket(self, identity: Identity, pocket_id: str) -> PocketRecord:
        """Load a pocket the user owns or is a member of."""
        pocket = await self._pockets.get_pocket(pocket_id)
        if pocket is None:
            raise NotFoundError("Pocket not found")
        if not await self.can_access_pocket(identity, pocket):
            raise UnauthorizedError("You do not have access to this pocket")
        return pocket.model_copy(
            update={"is_owner": pocket.owner_user_id == identity.user_id}
        )
