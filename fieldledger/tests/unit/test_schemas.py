import pytest
from decimal import Decimal
from pydantic import ValidationError

from fieldledger.schemas.order import OrderCreate, ExpenseCreate, OrderFinancials, StatusUpdate
from fieldledger.schemas.crew import CrewCreate
from fieldledger.schemas.incassation import IncassationCreate
from fieldledger.core.enums import OrderStatus


@pytest.mark.unit
class TestRequestSchemas:

    @pytest.mark.parametrize("amount", [0, -1, "-0.01"])
    def test_expense_amount_must_be_positive(self, amount):
        with pytest.raises(ValidationError):
            ExpenseCreate(amount=amount)

    def test_expense_defaults_category(self):
        assert ExpenseCreate(amount="10").category == "Other"

    def test_order_price_must_be_positive(self):
        with pytest.raises(ValidationError):
            OrderCreate(final_price=0)

    def test_crew_share_bounds(self):
        CrewCreate(name="A", lead_actor_id=1, profit_share=0)
        CrewCreate(name="A", lead_actor_id=1, profit_share=100)
        with pytest.raises(ValidationError):
            CrewCreate(name="A", lead_actor_id=1, profit_share="100.5")

    def test_incassation_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            IncassationCreate(amount=0)

    def test_status_must_be_known(self):
        assert StatusUpdate(status="work").status == OrderStatus.WORK
        with pytest.raises(ValidationError):
            StatusUpdate(status="archived")


@pytest.mark.unit
class TestOrderFinancials:

    def test_opening_record_is_complete(self):
        financials = OrderFinancials.opening(Decimal("150000"))
        assert financials.total_expenses == Decimal("0")
        assert financials.net_profit == Decimal("150000")
        assert financials.expenses == []

    def test_record_is_immutable(self):
        financials = OrderFinancials.opening(Decimal("10"))
        with pytest.raises(ValidationError):
            financials.net_profit = Decimal("0")
