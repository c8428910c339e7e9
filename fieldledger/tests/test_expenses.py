import pytest
from decimal import Decimal
from sqlalchemy.future import select

from fieldledger.core.enums import OrderStatus, AuditAction
from fieldledger.core.exceptions import ValidationError, OrderLockedError, NotFoundError, AuthorizationError
from fieldledger.models.audit import Audit
from fieldledger.services import expenses, lifecycle


@pytest.mark.integration
class TestAddExpense:

    @pytest.mark.asyncio
    async def test_expense_updates_totals(self, db, order_factory):
        order = await order_factory(final_price=Decimal("150000"))

        financials = await expenses.add_expense(db, order.id, Decimal("20000"), "Materials", "cable", 7)
        assert financials.final_price == Decimal("150000")
        assert financials.total_expenses == Decimal("20000")
        assert financials.net_profit == Decimal("130000")
        assert len(financials.expenses) == 1
        assert financials.expenses[0].category == "Materials"
        assert financials.expenses[0].actor_id == 7

    @pytest.mark.asyncio
    async def test_totals_equal_sum_of_expenses(self, db, order_factory):
        order = await order_factory(final_price=Decimal("1000"))
        for amount in ("10.50", "20.25", "300"):
            financials = await expenses.add_expense(db, order.id, Decimal(amount), "Other", None, 1)

        assert financials.total_expenses == sum(e.amount for e in financials.expenses)
        assert financials.total_expenses == Decimal("330.75")
        assert financials.net_profit == financials.final_price - financials.total_expenses

    @pytest.mark.asyncio
    async def test_expense_may_push_profit_negative(self, db, order_factory):
        order = await order_factory(final_price=Decimal("100"))
        financials = await expenses.add_expense(db, order.id, Decimal("250"), "Fuel", None, 1)
        assert financials.net_profit == Decimal("-150")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    async def test_non_positive_amount_rejected(self, db, order_factory, amount):
        order = await order_factory()
        with pytest.raises(ValidationError):
            await expenses.add_expense(db, order.id, amount, "Other", None, 1)
        financials = await expenses.get_financials(db, order.id)
        assert financials.expenses == []

    @pytest.mark.asyncio
    async def test_blank_category_defaults_to_other(self, db, order_factory):
        order = await order_factory()
        financials = await expenses.add_expense(db, order.id, Decimal("1"), "  ", None, 1)
        assert financials.expenses[0].category == "Other"

    @pytest.mark.asyncio
    async def test_unknown_order(self, db):
        with pytest.raises(NotFoundError):
            await expenses.add_expense(db, 9999, Decimal("1"), "Other", None, 1)

    @pytest.mark.asyncio
    async def test_expense_is_audited(self, db, order_factory):
        order = await order_factory()
        await expenses.add_expense(db, order.id, Decimal("5"), "Other", None, 42)

        res = await db.execute(select(Audit).where(Audit.action == str(AuditAction.ADD_EXPENSE)))
        audits = res.scalars().all()
        assert len(audits) == 1
        assert audits[0].actor_id == 42

    @pytest.mark.asyncio
    async def test_stale_reader_cannot_add_after_cancel(self, db, other_db, owner, order_factory):
        order = await order_factory()
        await lifecycle.get_order(other_db, order.id)

        await lifecycle.transition(db, order.id, owner, OrderStatus.CANCELED)
        with pytest.raises(OrderLockedError):
            await expenses.add_expense(other_db, order.id, Decimal("10"), "Other", None, 1)

        financials = await expenses.get_financials(db, order.id)
        assert financials.total_expenses == Decimal("0")


@pytest.mark.integration
class TestCrewScope:

    @pytest.mark.asyncio
    async def test_foreign_crew_cannot_touch_financials(self, db, crew_factory, order_factory):
        holder = await crew_factory()
        stranger = await crew_factory()
        held = await order_factory(final_price=Decimal("1000"), crew=holder, status=OrderStatus.WORK)
        unclaimed = await order_factory(final_price=Decimal("1000"))

        for order in (held, unclaimed):
            with pytest.raises(AuthorizationError):
                await expenses.add_expense(db, order.id, Decimal("400"), "Other", None, 1, crew_id=stranger.id)
            with pytest.raises(AuthorizationError):
                await expenses.set_final_price(db, order.id, Decimal("10"), 1, crew_id=stranger.id)

        financials = await expenses.get_financials(db, held.id)
        assert financials.net_profit == Decimal("1000")
        assert financials.expenses == []

    @pytest.mark.asyncio
    async def test_holder_adds_expense(self, db, crew_factory, order_factory):
        crew = await crew_factory()
        order = await order_factory(final_price=Decimal("1000"), crew=crew, status=OrderStatus.WORK)
        financials = await expenses.add_expense(db, order.id, Decimal("400"), "Fuel", None, 1, crew_id=crew.id)
        assert financials.net_profit == Decimal("600")


@pytest.mark.integration
class TestFinalPrice:

    @pytest.mark.asyncio
    async def test_price_change_recomputes_profit(self, db, order_factory):
        order = await order_factory(final_price=Decimal("1000"))
        await expenses.add_expense(db, order.id, Decimal("300"), "Other", None, 1)

        financials = await expenses.set_final_price(db, order.id, Decimal("1500"), 1)
        assert financials.final_price == Decimal("1500")
        assert financials.total_expenses == Decimal("300")
        assert financials.net_profit == Decimal("1200")

    @pytest.mark.asyncio
    async def test_non_positive_price_rejected(self, db, order_factory):
        order = await order_factory()
        with pytest.raises(ValidationError):
            await expenses.set_final_price(db, order.id, Decimal("0"), 1)


@pytest.mark.integration
class TestLockedOrders:

    @pytest.mark.asyncio
    async def test_settled_order_refuses_every_financial_write(self, db, crew_factory, order_factory):
        crew = await crew_factory()
        order = await order_factory(final_price=Decimal("1000"), crew=crew, status=OrderStatus.DONE)
        before = await expenses.get_financials(db, order.id)

        with pytest.raises(OrderLockedError):
            await expenses.add_expense(db, order.id, Decimal("10"), "Other", None, 1)
        with pytest.raises(OrderLockedError):
            await expenses.set_final_price(db, order.id, Decimal("2000"), 1)

        assert await expenses.get_financials(db, order.id) == before

    @pytest.mark.asyncio
    async def test_canceled_order_is_locked(self, db, order_factory):
        order = await order_factory(status=OrderStatus.CANCELED)
        with pytest.raises(OrderLockedError):
            await expenses.add_expense(db, order.id, Decimal("10"), "Other", None, 1)
        with pytest.raises(OrderLockedError):
            await expenses.set_final_price(db, order.id, Decimal("10"), 1)
