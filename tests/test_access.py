"""Tests for the access-control gate and the pocket resolver."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from pocketbook.access import AccessGate, require_identity
from pocketbook.config import AppSettings
from pocketbook.errors import NotFoundError, UnauthorizedError
from pocketbook.models.invoice import InvoiceDraft
from pocketbook.pockets import PocketResolver


def parking() -> InvoiceDraft:
    return InvoiceDraft(summary="Parkir", date=date(2024, 5, 1), total_amount=Decimal("5000"))


@pytest.fixture
def gate(pocket_storage):
    return AccessGate(pocket_storage)


@pytest_asyncio.fixture
async def household(pocket_storage):
    """Alice's pocket, shared with Bob."""
    pocket = await pocket_storage.create_pocket("alice", "Household")
    await pocket_storage.add_member(pocket.id, "bob")
    return pocket


class TestRequireIdentity:

    def test_missing(self):
        with pytest.raises(UnauthorizedError, match="Unauthorized"):
            require_identity(None)

    def test_present(self, alice):
        assert require_identity(alice) is alice


class TestPocketAccess:

    @pytest.mark.asyncio
    async def test_accessible_pockets(self, gate, household, pocket_storage, alice, bob, carol):
        await pocket_storage.create_pocket("bob", "Personal")

        alice_pockets = await gate.accessible_pockets(alice)
        bob_pockets = await gate.accessible_pockets(bob)

        assert [(p.name, p.is_owner) for p in alice_pockets] == [("Household", True)]
        assert [(p.name, p.is_owner) for p in bob_pockets] == [
            ("Personal", True),
            ("Household", False),
        ]
        assert await gate.accessible_pockets(carol) == []

    @pytest.mark.asyncio
    async def test_visibility_filter(self, gate, household, bob):
        invoice_filter = await gate.visibility_filter(bob, query="makan")
        assert invoice_filter.visible_to_user_id == "bob"
        assert invoice_filter.visible_pocket_ids == [household.id]
        assert invoice_filter.query == "makan"

    @pytest.mark.asyncio
    async def test_owned_pocket(self, gate, household, alice, bob):
        assert (await gate.get_owned_pocket(alice, household.id)).id == household.id
        with pytest.raises(UnauthorizedError):
            await gate.get_owned_pocket(bob, household.id)

    @pytest.mark.asyncio
    async def test_missing_pocket(self, gate, alice):
        with pytest.raises(NotFoundError):
            await gate.get_owned_pocket(alice, str(uuid4()))
        with pytest.raises(NotFoundError):
            await gate.get_accessible_pocket(alice, str(uuid4()))

    @pytest.mark.asyncio
    async def test_accessible_pocket(self, gate, household, bob, carol):
        pocket = await gate.get_accessible_pocket(bob, household.id)
        assert pocket.is_owner is False
        with pytest.raises(UnauthorizedError):
            await gate.get_accessible_pocket(carol, household.id)


class TestInvoiceAccess:

    @pytest.mark.asyncio
    async def test_creator_can_view_and_delete(self, gate, invoice_storage, alice):
        invoice = await invoice_storage.save_invoice(parking(), None, "alice", None)
        await gate.ensure_can_view_invoice(alice, invoice)
        await gate.ensure_can_delete_invoice(alice, invoice)

    @pytest.mark.asyncio
    async def test_member_can_view_but_not_delete(
        self, gate, household, invoice_storage, bob
    ):
        invoice = await invoice_storage.save_invoice(parking(), household.id, "alice", None)

        await gate.ensure_can_view_invoice(bob, invoice)
        with pytest.raises(UnauthorizedError):
            await gate.ensure_can_delete_invoice(bob, invoice)

    @pytest.mark.asyncio
    async def test_owner_can_delete_members_invoice(
        self, gate, household, invoice_storage, alice
    ):
        invoice = await invoice_storage.save_invoice(parking(), household.id, "bob", None)
        await gate.ensure_can_delete_invoice(alice, invoice)

    @pytest.mark.asyncio
    async def test_outsider_is_denied(self, gate, household, invoice_storage, carol):
        invoice = await invoice_storage.save_invoice(parking(), household.id, "alice", None)
        with pytest.raises(UnauthorizedError):
            await gate.ensure_can_view_invoice(carol, invoice)
        with pytest.raises(UnauthorizedError):
            await gate.ensure_can_delete_invoice(carol, invoice)

    @pytest.mark.asyncio
    async def test_unfiled_invoice_is_creator_only(self, gate, invoice_storage, bob):
        invoice = await invoice_storage.save_invoice(parking(), None, "alice", None)
        with pytest.raises(UnauthorizedError):
            await gate.ensure_can_view_invoice(bob, invoice)


class TestPocketResolver:

    @pytest.mark.asyncio
    async def test_creates_default_pocket_once(self, pocket_storage, alice):
        resolver = PocketResolver(pocket_storage, settings=AppSettings())

        first_id, first_explicit = await resolver.resolve(alice)
        second_id, _ = await resolver.resolve(alice, "  ")

        assert first_explicit is False
        assert first_id == second_id
        pockets = await pocket_storage.list_owned_pockets("alice")
        assert [p.name for p in pockets] == ["Personal"]

    @pytest.mark.asyncio
    async def test_reuses_existing_default_pocket(self, pocket_storage, alice):
        existing = await pocket_storage.create_pocket("alice", "Personal")
        resolver = PocketResolver(pocket_storage, settings=AppSettings())
        assert (await resolver.resolve(alice))[0] == existing.id

    @pytest.mark.asyncio
    async def test_default_pocket_name_is_configurable(self, pocket_storage, alice):
        resolver = PocketResolver(
            pocket_storage, settings=AppSettings(default_pocket_name=" Pribadi ")
        )
        pocket_id, _ = await resolver.resolve(alice)
        assert (await pocket_storage.get_pocket(pocket_id)).name == "Pribadi"

    @pytest.mark.asyncio
    async def test_explicit_pocket_is_used_as_given(self, pocket_storage, carol):
        """Without enforcement any known pocket id is accepted."""
        foreign = await pocket_storage.create_pocket("alice", "Household")
        resolver = PocketResolver(pocket_storage, settings=AppSettings())

        assert await resolver.resolve(carol, foreign.id) == (foreign.id, True)
        assert await pocket_storage.list_owned_pockets("carol") == []

    @pytest.mark.asyncio
    async def test_explicit_pocket_enforced(self, pocket_storage, household, bob, carol):
        resolver = PocketResolver(
            pocket_storage,
            settings=AppSettings(enforce_pocket_access_on_create=True),
        )

        assert await resolver.resolve(bob, household.id) == (household.id, True)
        with pytest.raises(UnauthorizedError):
            await resolver.resolve(carol, household.id)
        with pytest.raises(NotFoundError):
            await resolver.resolve(carol, str(uuid4()))
