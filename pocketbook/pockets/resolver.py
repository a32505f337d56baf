"""
Pocket Resolver

Decides which pocket a new invoice is filed into.

- An explicit pocket id is used as given. With
  APP_ENFORCE_POCKET_ACCESS_ON_CREATE=true it must also be a pocket the
  user owns or belongs to; otherwise any pocket id the user knows is
  accepted.
- Without one, the user's default pocket ("Personal") is used, created
  on first use. The (owner, name) unique constraint makes this an
  idempotent upsert, so concurrent first submissions end up in the same
  pocket.
"""

from typing import Optional

from pocketbook.access.gate import AccessGate
from pocketbook.config import AppSettings, get_settings
from pocketbook.models.invoice import Identity
from pocketbook.storage.interface import PocketStorageInterface


class PocketResolver:
    """Resolves the destination pocket id of a new invoice."""

    def __init__(
        self,
        pockets: PocketStorageInterface,
        gate: Optional[AccessGate] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._pockets = pockets
        self._gate = gate or AccessGate(pockets)
        self._settings = settings or get_settings().app

    async def resolve(
        self,
        identity: Identity,
        pocket_id: Optional[str] = None,
    ) -> tuple[str, bool]:
        """
        Returns:
            (pocket_id, explicit) - explicit is False when the
            default pocket was used

        Raises:
            NotFoundError / UnauthorizedError: only when access
                enforcement is switched on
        """
        pocket_id = (pocket_id or "").strip()

        if pocket_id:
            if self._settings.enforce_pocket_access_on_create:
                await self._gate.get_accessible_pocket(identity, pocket_id)
            return pocket_id, True

        pocket, _ = await self._pockets.get_or_create_pocket(
            identity.user_id,
            self._settings.default_pocket_name,
        )
        return pocket.id, False
