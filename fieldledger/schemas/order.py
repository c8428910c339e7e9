from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime
from fieldledger.core.enums import OrderStatus


class OrderCreate(BaseModel):
    final_price: Decimal = Field(gt=0)
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    address: Optional[str] = None


class StatusUpdate(BaseModel):
    status: OrderStatus


class OrderTransfer(BaseModel):
    from_crew_id: int
    to_crew_id: int


class OrderAssign(BaseModel):
    crew_id: int


class ExpenseCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    category: str = Field(default="Other", min_length=1, max_length=100)
    comment: Optional[str] = Field(default=None, max_length=500)


class PriceUpdate(BaseModel):
    final_price: Decimal = Field(gt=0)


class ExpenseOut(BaseModel):
    id: int
    order_id: int
    amount: Decimal
    category: str
    comment: Optional[str] = None
    actor_id: Optional[int] = None
    created_at: datetime


class OrderFinancials(BaseModel):
    """Financial record of one order, always complete.

    ``net_profit == final_price - total_expenses`` and ``total_expenses`` is the
    sum of ``expenses``.
    """
    model_config = ConfigDict(frozen=True)

    final_price: Decimal
    total_expenses: Decimal = Decimal("0")
    net_profit: Decimal
    expenses: List[ExpenseOut] = Field(default_factory=list)

    @classmethod
    def opening(cls, final_price: Decimal) -> "OrderFinancials":
        return cls(final_price=final_price, total_expenses=Decimal("0"), net_profit=final_price)


class OrderOut(BaseModel):
    id: int
    status: OrderStatus
    crew_id: Optional[int] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    address: Optional[str] = None
    final_price: Decimal
    total_expenses: Decimal
    net_profit: Decimal
    created_by: Optional[int] = None
    settled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class SettlementOut(BaseModel):
    order_id: int
    crew_id: int
    net_profit: Decimal
    crew_share: Decimal
    owner_share: Decimal
    crew_debt: Decimal
