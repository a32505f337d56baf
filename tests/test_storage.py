"""Tests for the SQL storage implementation (in-memory SQLite)."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from pocketbook.errors import ConnectionError, DuplicateError, NotFoundError, StorageError
from pocketbook.models.audit import AuditEventBuilder
from pocketbook.models.invoice import (
    Identity,
    InvoiceDraft,
    InvoiceItemDraft,
    ItemCategory,
)
from pocketbook.storage import Database, InvoiceFilter
from pocketbook.storage.tables import InvoiceItemRow, InvoiceRow, PocketMemberRow


def make_draft(
    summary: str = "Belanja Bulanan",
    on: date = date(2024, 5, 1),
    prices: tuple = (Decimal("15"), Decimal("10")),
) -> InvoiceDraft:
    items = [
        InvoiceItemDraft(
            name=f"Item {index}",
            quantity=Decimal("1"),
            unit_price=price,
            total_price=price,
            category=ItemCategory.GROCERIES,
        )
        for index, price in enumerate(prices)
    ]
    return InvoiceDraft(
        summary=summary,
        date=on,
        total_amount=sum(prices, Decimal("0")),
        items=items,
    )


def count_rows(database, model) -> int:
    with database.session_scope() as session:
        return session.scalar(select(func.count()).select_from(model))


class TestDatabase:

    def test_connect(self, database):
        database.connect()

    def test_connect_failure(self, tmp_path):
        missing_dir = tmp_path / "missing" / "pocketbook.db"
        db = Database(f"sqlite:///{missing_dir}", connect_attempts=1)
        with pytest.raises(ConnectionError):
            db.connect()

    def test_session_scope_rolls_back(self, database):
        with pytest.raises(RuntimeError):
            with database.session_scope() as session:
                session.add(InvoiceRow(
                    creator_user_id="alice",
                    summary="never saved",
                    date=date(2024, 5, 1),
                    total_amount=Decimal("1"),
                ))
                session.flush()
                raise RuntimeError("boom")
        assert count_rows(database, InvoiceRow) == 0


class TestSaveInvoice:
    """The invoice and its items are written all-or-nothing."""

    @pytest.mark.asyncio
    async def test_round_trip(self, invoice_storage, pocket_storage):
        pocket = await pocket_storage.create_pocket("alice", "Personal")
        draft = make_draft(prices=(Decimal("1666.6667"), Decimal("10")))

        saved = await invoice_storage.save_invoice(draft, pocket.id, "alice", "raw receipt")
        loaded = await invoice_storage.get_invoice(saved.id)

        assert loaded == saved
        assert saved.pocket_id == pocket.id
        assert saved.pocket_name == "Personal"
        assert saved.raw_text == "raw receipt"
        assert saved.item_count == len(draft.items)
        for item, expected in zip(saved.items, draft.items):
            assert item.invoice_id == saved.id
            assert item.name == expected.name
            assert item.quantity == expected.quantity
            assert item.unit_price == expected.unit_price
            assert item.total_price == expected.total_price
            assert item.category == expected.category.value

    @pytest.mark.asyncio
    async def test_amounts_keep_every_digit(self, invoice_storage):
        item = InvoiceItemDraft(
            name="Langganan",
            quantity=Decimal("3"),
            unit_price=Decimal("8333.333333"),
            total_price=Decimal("24999.999999"),
        )
        draft = InvoiceDraft(
            summary="Langganan Tahunan",
            date=date(2024, 5, 1),
            total_amount=Decimal("24999.999999"),
            items=[item],
        )

        saved = await invoice_storage.save_invoice(draft, None, "alice", None)
        loaded = await invoice_storage.get_invoice(saved.id)

        assert loaded.total_amount == Decimal("24999.999999")
        assert loaded.items[0].unit_price == Decimal("8333.333333")
        assert loaded.items[0].total_price == Decimal("24999.999999")

    @pytest.mark.asyncio
    async def test_items_keep_their_order(self, invoice_storage):
        draft = make_draft(prices=(Decimal("3"), Decimal("1"), Decimal("2")))
        saved = await invoice_storage.save_invoice(draft, None, "alice", None)
        assert [item.name for item in saved.items] == ["Item 0", "Item 1", "Item 2"]

    @pytest.mark.asyncio
    async def test_invoice_without_items(self, invoice_storage):
        draft = InvoiceDraft(summary="Parkir", date=date(2024, 5, 1), total_amount=Decimal("5000"))
        saved = await invoice_storage.save_invoice(draft, None, "alice", "parkir 5rb")
        assert saved.items == []
        assert saved.pocket_id is None

    @pytest.mark.asyncio
    async def test_failed_item_insert_rolls_back_invoice(self, database, invoice_storage):
        good = InvoiceItemDraft(
            name="Roti", quantity=1, unit_price=10, total_price=10
        )
        # Bypasses model validation so the CHECK constraint trips
        bad = InvoiceItemDraft.model_construct(
            name="Refund",
            quantity=Decimal("1"),
            unit_price=Decimal("-5"),
            total_price=Decimal("-5"),
            category=ItemCategory.OTHER,
        )
        draft = InvoiceDraft.model_construct(
            summary="Broken",
            date=date(2024, 5, 1),
            total_amount=Decimal("5"),
            items=[good, bad],
        )

        with pytest.raises(StorageError):
            await invoice_storage.save_invoice(draft, None, "alice", "broken")

        assert count_rows(database, InvoiceRow) == 0
        assert count_rows(database, InvoiceItemRow) == 0

    @pytest.mark.asyncio
    async def test_unknown_pocket_is_rejected(self, database, invoice_storage):
        with pytest.raises(StorageError):
            await invoice_storage.save_invoice(make_draft(), str(uuid4()), "alice", None)
        assert count_rows(database, InvoiceRow) == 0

    @pytest.mark.asyncio
    async def test_duplicate_submissions_both_persist(self, invoice_storage):
        first = await invoice_storage.save_invoice(make_draft(), None, "alice", "same")
        second = await invoice_storage.save_invoice(make_draft(), None, "alice", "same")
        assert first.id != second.id


class TestDeleteInvoice:

    @pytest.mark.asyncio
    async def test_delete_cascades_to_items(self, database, invoice_storage):
        saved = await invoice_storage.save_invoice(make_draft(), None, "alice", None)

        assert await invoice_storage.delete_invoice(saved.id) is True
        assert await invoice_storage.get_invoice(saved.id) is None
        assert count_rows(database, InvoiceItemRow) == 0

    @pytest.mark.asyncio
    async def test_delete_missing(self, invoice_storage):
        assert await invoice_storage.delete_invoice(str(uuid4())) is False


class TestListAndAggregate:

    @pytest.mark.asyncio
    async def test_visibility(self, invoice_storage, pocket_storage):
        shared = await pocket_storage.create_pocket("bob", "Household")
        own = await invoice_storage.save_invoice(make_draft("Alice own"), None, "alice", None)
        in_shared = await invoice_storage.save_invoice(make_draft("Bob shared"), shared.id, "bob", None)
        await invoice_storage.save_invoice(make_draft("Bob private"), None, "bob", None)

        only_own = await invoice_storage.list_invoices(
            InvoiceFilter(visible_to_user_id="alice")
        )
        with_shared = await invoice_storage.list_invoices(
            InvoiceFilter(visible_to_user_id="alice", visible_pocket_ids=[shared.id])
        )

        assert [invoice.id for invoice in only_own] == [own.id]
        assert {invoice.id for invoice in with_shared} == {own.id, in_shared.id}

    @pytest.mark.asyncio
    async def test_newest_first_and_paging(self, invoice_storage):
        for day in (1, 3, 2):
            await invoice_storage.save_invoice(
                make_draft(f"Day {day}", on=date(2024, 5, day)), None, "alice", None
            )
        invoice_filter = InvoiceFilter(visible_to_user_id="alice")

        first_page = await invoice_storage.list_invoices(invoice_filter, limit=2)
        second_page = await invoice_storage.list_invoices(invoice_filter, limit=2, offset=2)

        assert [invoice.summary for invoice in first_page] == ["Day 3", "Day 2"]
        assert [invoice.summary for invoice in second_page] == ["Day 1"]

    @pytest.mark.asyncio
    async def test_search_and_date_range(self, invoice_storage):
        await invoice_storage.save_invoice(make_draft("Makan Siang", on=date(2024, 5, 2)), None, "alice", None)
        await invoice_storage.save_invoice(make_draft("Belanja Indomaret", on=date(2024, 5, 3)), None, "alice", None)
        await invoice_storage.save_invoice(make_draft("Makan Malam", on=date(2024, 4, 30)), None, "alice", None)

        found = await invoice_storage.list_invoices(InvoiceFilter(
            visible_to_user_id="alice",
            query="makan",
            date_from=date(2024, 5, 1),
            date_to=date(2024, 5, 31),
        ))
        assert [invoice.summary for invoice in found] == ["Makan Siang"]

    @pytest.mark.asyncio
    async def test_totals(self, invoice_storage):
        await invoice_storage.save_invoice(
            make_draft(on=date(2024, 5, 1), prices=(Decimal("15"), Decimal("10"))), None, "alice", None
        )
        await invoice_storage.save_invoice(
            make_draft(on=date(2024, 5, 2), prices=(Decimal("40"),)), None, "alice", None
        )
        invoice_filter = InvoiceFilter(visible_to_user_id="alice")

        assert await invoice_storage.total_spend(invoice_filter) == Decimal("65")

        daily = await invoice_storage.daily_totals(invoice_filter)
        assert [(row.name, row.value) for row in daily] == [
            ("01 May", Decimal("25")),
            ("02 May", Decimal("40")),
        ]

        categories = await invoice_storage.category_totals(invoice_filter)
        assert [(row.name, row.value) for row in categories] == [
            ("Sembako", Decimal("65")),
        ]

        top = await invoice_storage.top_items(invoice_filter, limit=1)
        assert [(row.name, row.value) for row in top] == [("Item 0", Decimal("55"))]

    @pytest.mark.asyncio
    async def test_totals_are_exact(self, invoice_storage):
        for _ in range(3):
            await invoice_storage.save_invoice(
                make_draft(prices=(Decimal("0.1"), Decimal("8333.333333"))), None, "alice", None
            )
        invoice_filter = InvoiceFilter(visible_to_user_id="alice")

        assert await invoice_storage.total_spend(invoice_filter) == Decimal("25000.299999")
        daily = await invoice_storage.daily_totals(invoice_filter)
        assert daily[0].value == Decimal("25000.299999")
        top = await invoice_storage.top_items(invoice_filter)
        assert [(row.name, row.value) for row in top] == [
            ("Item 1", Decimal("24999.999999")),
            ("Item 0", Decimal("0.3")),
        ]

    @pytest.mark.asyncio
    async def test_total_of_nothing_is_zero(self, invoice_storage):
        assert await invoice_storage.total_spend(InvoiceFilter(visible_to_user_id="alice")) == 0


class TestPockets:

    @pytest.mark.asyncio
    async def test_get_or_create_is_idempotent(self, pocket_storage):
        first, created_first = await pocket_storage.get_or_create_pocket("alice", "Personal")
        second, created_second = await pocket_storage.get_or_create_pocket("alice", "Personal")

        assert created_first is True
        assert created_second is False
        assert first.id == second.id
        assert len(await pocket_storage.list_owned_pockets("alice")) == 1

    @pytest.mark.asyncio
    async def test_get_or_create_after_losing_a_race(self, pocket_storage, monkeypatch):
        """Another request inserts the pocket between the lookup and the insert."""
        winner = await pocket_storage.create_pocket("alice", "Personal")
        find_pocket_by_name = pocket_storage.find_pocket_by_name
        lookups = []

        async def stale_first_lookup(owner_user_id, name):
            lookups.append(name)
            if len(lookups) == 1:
                return None
            return await find_pocket_by_name(owner_user_id, name)

        monkeypatch.setattr(pocket_storage, "find_pocket_by_name", stale_first_lookup)
        pocket, created = await pocket_storage.get_or_create_pocket("alice", "Personal")

        assert created is False
        assert pocket.id == winner.id
        assert len(lookups) == 2
        assert len(await pocket_storage.list_owned_pockets("alice")) == 1

    @pytest.mark.asyncio
    async def test_same_name_for_different_owners(self, pocket_storage):
        alice_pocket = await pocket_storage.create_pocket("alice", "Personal")
        bob_pocket = await pocket_storage.create_pocket("bob", "Personal")
        assert alice_pocket.id != bob_pocket.id

    @pytest.mark.asyncio
    async def test_duplicate_name(self, pocket_storage):
        await pocket_storage.create_pocket("alice", "Travel")
        with pytest.raises(DuplicateError):
            await pocket_storage.create_pocket("alice", "Travel")

    @pytest.mark.asyncio
    async def test_rename(self, pocket_storage):
        pocket = await pocket_storage.create_pocket("alice", "Travel")
        renamed = await pocket_storage.rename_pocket(pocket.id, "Trips")
        assert renamed.name == "Trips"
        assert (await pocket_storage.get_pocket(pocket.id)).name == "Trips"

    @pytest.mark.asyncio
    async def test_rename_to_taken_name(self, pocket_storage):
        await pocket_storage.create_pocket("alice", "Travel")
        pocket = await pocket_storage.create_pocket("alice", "Food")
        with pytest.raises(DuplicateError):
            await pocket_storage.rename_pocket(pocket.id, "Travel")

    @pytest.mark.asyncio
    async def test_rename_missing(self, pocket_storage):
        with pytest.raises(NotFoundError):
            await pocket_storage.rename_pocket(str(uuid4()), "Anything")

    @pytest.mark.asyncio
    async def test_delete_keeps_invoices_and_drops_members(
        self, database, pocket_storage, invoice_storage
    ):
        pocket = await pocket_storage.create_pocket("alice", "Household")
        await pocket_storage.add_member(pocket.id, "bob")
        invoice = await invoice_storage.save_invoice(make_draft(), pocket.id, "bob", None)

        assert await pocket_storage.delete_pocket(pocket.id) is True

        orphan = await invoice_storage.get_invoice(invoice.id)
        assert orphan is not None
        assert orphan.pocket_id is None
        assert orphan.item_count == 2
        assert count_rows(database, PocketMemberRow) == 0

    @pytest.mark.asyncio
    async def test_membership(self, pocket_storage):
        pocket = await pocket_storage.create_pocket("alice", "Household")
        await pocket_storage.add_member(pocket.id, "bob")

        assert await pocket_storage.is_member(pocket.id, "bob") is True
        assert await pocket_storage.is_member(pocket.id, "carol") is False

        shared = await pocket_storage.list_shared_pockets("bob")
        assert [p.id for p in shared] == [pocket.id]
        assert shared[0].is_owner is False

        members = await pocket_storage.list_members(pocket.id)
        assert [(m.user_id, m.email) for m in members] == [("bob", "bob@example.com")]

        with pytest.raises(DuplicateError):
            await pocket_storage.add_member(pocket.id, "bob")

        assert await pocket_storage.remove_member(pocket.id, "bob") is True
        assert await pocket_storage.remove_member(pocket.id, "bob") is False
        assert await pocket_storage.list_shared_pockets("bob") == []


class TestUsers:

    @pytest.mark.asyncio
    async def test_find_by_email_ignores_case(self, user_storage):
        user = await user_storage.find_user_by_email("  BOB@Example.com ")
        assert user.user_id == "bob"

    @pytest.mark.asyncio
    async def test_register_and_set_currency(self, user_storage):
        await user_storage.register_user(
            Identity(user_id="dave", name="Dave", email="dave@example.com")
        )
        assert await user_storage.set_currency("dave", "USD") is True
        assert (await user_storage.get_user("dave")).currency == "USD"

    @pytest.mark.asyncio
    async def test_set_currency_unknown_user(self, user_storage):
        assert await user_storage.set_currency("nobody", "USD") is False


class TestAuditStorage:

    @pytest.mark.asyncio
    async def test_append_and_query(self, audit_storage):
        correlation_id = uuid4()
        await audit_storage.append_event(AuditEventBuilder.invoice_submitted(
            user_id="alice", source="text", correlation_id=correlation_id,
        ))
        await audit_storage.append_event(AuditEventBuilder.extraction_completed(
            user_id="alice", item_count=2, correlation_id=correlation_id,
        ))

        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert [event.event_type.value for event in events] == [
            "invoice_submitted",
            "extraction_completed",
        ]
        assert len(await audit_storage.get_recent_events(limit=1)) == 1
