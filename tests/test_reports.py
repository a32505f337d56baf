"""Tests for the read views, user settings and display helpers."""

from datetime import date
from decimal import Decimal

import pytest

from pocketbook.currency import format_amount, get_currency_config, is_supported
from pocketbook.errors import InvalidInputError
from pocketbook.models.invoice import Identity, View
from pocketbook.orchestrator import create_app_components, month_range
from pocketbook.views import INVOICE_VIEWS, ViewCache

from tests.conftest import MILK_AND_BREAD, NASI_GORENG, FakeGeminiModel, make_agent


MAY_20 = date(2024, 5, 20)


@pytest.fixture
def two_meals(database):
    """Components whose model answers with two different receipts."""
    model = FakeGeminiModel(MILK_AND_BREAD, NASI_GORENG)
    return create_app_components(database=database, agent=make_agent(model))


class TestDashboard:

    @pytest.mark.asyncio
    async def test_month_total_and_recent(self, two_meals, alice):
        await two_meals.invoice_flow.process_invoice(alice, raw_text="milk and bread")
        await two_meals.invoice_flow.process_invoice(alice, raw_text="nasi goreng")

        result = await two_meals.report_flow.dashboard(alice, today=MAY_20)

        assert result.success is True
        summary = result.data
        assert summary.month == "2024-05"
        assert summary.total_month_spend == Decimal("15025")
        assert [i.summary for i in summary.recent_invoices] == [
            "Makan Siang di Warung",
            "Belanja Susu dan Roti",
        ]
        assert [p.name for p in summary.pockets] == ["Personal"]

    @pytest.mark.asyncio
    async def test_other_month_is_empty(self, two_meals, alice):
        await two_meals.invoice_flow.process_invoice(alice, raw_text="milk and bread")
        result = await two_meals.report_flow.dashboard(alice, today=date(2024, 6, 1))
        assert result.data.total_month_spend == 0
        assert len(result.data.recent_invoices) == 1

    @pytest.mark.asyncio
    async def test_is_refreshed_after_a_write(self, two_meals, alice):
        before = await two_meals.report_flow.dashboard(alice, today=MAY_20)
        await two_meals.invoice_flow.process_invoice(alice, raw_text="milk and bread")
        after = await two_meals.report_flow.dashboard(alice, today=MAY_20)

        assert before.data.total_month_spend == 0
        assert after.data.total_month_spend == Decimal("25")

    @pytest.mark.asyncio
    async def test_shared_pocket_is_visible_to_members(self, two_meals, alice, bob, carol):
        pocket = await two_meals.pocket_flow.create_pocket(alice, "Household")
        await two_meals.pocket_flow.share_pocket(alice, pocket.data.id, "bob@example.com")
        await two_meals.invoice_flow.process_invoice(
            alice, raw_text="milk and bread", pocket_id=pocket.data.id
        )

        as_member = await two_meals.report_flow.dashboard(bob, today=MAY_20)
        as_outsider = await two_meals.report_flow.dashboard(carol, today=MAY_20)

        assert as_member.data.total_month_spend == Decimal("25")
        assert as_outsider.data.total_month_spend == 0
        assert as_outsider.data.recent_invoices == []

    @pytest.mark.asyncio
    async def test_foreign_pocket_filter_is_refused(self, two_meals, alice, carol):
        pocket = await two_meals.pocket_flow.create_pocket(alice, "Household")
        result = await two_meals.report_flow.dashboard(carol, pocket_id=pocket.data.id)
        assert result.success is False

    @pytest.mark.asyncio
    async def test_total_is_formatted_in_user_currency(self, two_meals, alice):
        await two_meals.invoice_flow.process_invoice(alice, raw_text="milk and bread")
        await two_meals.invoice_flow.process_invoice(alice, raw_text="nasi goreng")

        result = await two_meals.report_flow.dashboard(alice, today=MAY_20)

        assert result.data.currency == "IDR"
        assert result.data.total_month_spend_display == "Rp 15.025"

    @pytest.mark.asyncio
    async def test_display_follows_currency_change(self, two_meals, bob):
        await two_meals.invoice_flow.process_invoice(bob, raw_text="milk and bread")
        before = await two_meals.report_flow.dashboard(bob, today=MAY_20)

        await two_meals.settings_flow.update_currency(bob, "USD")
        after = await two_meals.report_flow.dashboard(bob, today=MAY_20)

        assert before.data.total_month_spend_display == "Rp 25"
        assert after.data.currency == "USD"
        assert after.data.total_month_spend_display == "$ 25.00"

    @pytest.mark.asyncio
    async def test_changing_a_result_leaves_the_cache_alone(self, two_meals, alice):
        await two_meals.invoice_flow.process_invoice(alice, raw_text="milk and bread")

        first = await two_meals.report_flow.dashboard(alice, today=MAY_20)
        first.data.recent_invoices.clear()
        first.data.total_month_spend = Decimal("0")
        second = await two_meals.report_flow.dashboard(alice, today=MAY_20)

        assert len(second.data.recent_invoices) == 1
        assert second.data.total_month_spend == Decimal("25")

    @pytest.mark.asyncio
    async def test_requires_identity(self, two_meals):
        assert (await two_meals.report_flow.dashboard(None)).error == "Unauthorized"


class TestAnalysis:

    @pytest.mark.asyncio
    async def test_breakdown(self, two_meals, alice):
        await two_meals.invoice_flow.process_invoice(alice, raw_text="milk and bread")
        await two_meals.invoice_flow.process_invoice(alice, raw_text="nasi goreng")

        result = await two_meals.report_flow.analysis(alice, month="2024-05")

        report = result.data
        assert report.month == "2024-05"
        assert [(d.name, d.value) for d in report.daily_totals] == [
            ("01 May", Decimal("25")),
            ("03 May", Decimal("15000")),
        ]
        assert [(c.name, c.value) for c in report.category_totals] == [
            ("Makan & Minum", Decimal("15000")),
            ("Sembako", Decimal("25")),
        ]
        assert report.top_items[0].name == "Nasi Goreng"
        assert len(report.top_items) == 3

    @pytest.mark.asyncio
    async def test_pocket_filter(self, two_meals, alice):
        pocket = await two_meals.pocket_flow.create_pocket(alice, "Food")
        await two_meals.invoice_flow.process_invoice(alice, raw_text="milk and bread")
        await two_meals.invoice_flow.process_invoice(
            alice, raw_text="nasi goreng", pocket_id=pocket.data.id
        )

        result = await two_meals.report_flow.analysis(
            alice, pocket_id=pocket.data.id, month="2024-05"
        )
        assert [d.value for d in result.data.daily_totals] == [Decimal("15000")]

    @pytest.mark.asyncio
    async def test_bad_month(self, two_meals, alice):
        result = await two_meals.report_flow.analysis(alice, month="2024-13")
        assert result.success is False


class TestUserSettings:

    @pytest.mark.asyncio
    async def test_stored_currency(self, components, alice):
        result = await components.settings_flow.get_user_settings(alice)
        assert result.data.currency == "IDR"

    @pytest.mark.asyncio
    async def test_default_currency(self, components, bob):
        result = await components.settings_flow.get_user_settings(bob)
        assert result.data.currency == "IDR"

    @pytest.mark.asyncio
    async def test_update_currency(self, components, bob):
        updated = await components.settings_flow.update_currency(bob, " usd ")
        stored = await components.settings_flow.get_user_settings(bob)

        assert updated.data.currency == "USD"
        assert stored.data.currency == "USD"

    @pytest.mark.asyncio
    async def test_unsupported_currency(self, components, bob):
        result = await components.settings_flow.update_currency(bob, "XYZ")
        assert result.error == "Invalid currency code"

    @pytest.mark.asyncio
    async def test_unknown_user(self, components):
        result = await components.settings_flow.update_currency(
            Identity(user_id="ghost"), "USD"
        )
        assert result.error == "User not found"


class TestMonthRange:

    def test_explicit_month(self):
        assert month_range("2024-02") == (date(2024, 2, 1), date(2024, 2, 29), "2024-02")

    def test_defaults_to_current_month(self):
        assert month_range(today=date(2024, 12, 15)) == (
            date(2024, 12, 1),
            date(2024, 12, 31),
            "2024-12",
        )

    def test_invalid(self):
        with pytest.raises(InvalidInputError):
            month_range("2024/02")


class TestViewCache:

    def test_invalidate_drops_whole_views(self):
        cache = ViewCache()
        cache.set(View.HOME, ("alice", None), "home")
        cache.set(View.INVOICES, ("alice", 1), "page")
        cache.set(View.POCKETS, "alice", "pockets")

        cache.invalidate(*INVOICE_VIEWS)

        assert cache.get(View.HOME, ("alice", None)) is None
        assert cache.size(View.INVOICES) == 0
        assert cache.get(View.POCKETS, "alice") == "pockets"

    def test_values_are_copied(self):
        cache = ViewCache()
        pockets = ["Personal"]
        cache.set(View.POCKETS, "alice", pockets)

        pockets.append("Travel")
        cache.get(View.POCKETS, "alice").append("Household")

        assert cache.get(View.POCKETS, "alice") == ["Personal"]

    def test_clear(self):
        cache = ViewCache()
        cache.set(View.POCKETS, "alice", "pockets")
        cache.clear()
        assert cache.size(View.POCKETS) == 0


class TestCurrency:

    def test_supported(self):
        assert is_supported("IDR")
        assert not is_supported("idr")

    def test_unknown_falls_back_to_default(self):
        assert get_currency_config("XYZ").code == "IDR"

    def test_format_rupiah(self):
        assert format_amount(Decimal("15000"), "IDR") == "Rp 15.000"

    def test_format_dollars(self):
        assert format_amount(Decimal("1250.5"), "USD") == "$ 1,250.50"
