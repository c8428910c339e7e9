from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from fieldledger.core.enums import AccountKind, Direction, TransactionCategory


class AccountCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    kind: AccountKind = AccountKind.COMPANY_CASH


class AccountOut(BaseModel):
    id: int
    name: str
    kind: AccountKind
    crew_id: Optional[int] = None
    balance: Decimal


class TransactionCreate(BaseModel):
    account_id: int
    amount: Decimal = Field(gt=0)
    direction: Direction
    category: TransactionCategory = TransactionCategory.OTHER
    order_id: Optional[int] = None
    comment: Optional[str] = Field(default=None, max_length=500)


class TransactionOut(BaseModel):
    id: int
    account_id: int
    actor_id: Optional[int] = None
    amount: Decimal
    direction: Direction
    category: TransactionCategory
    order_id: Optional[int] = None
    reference: Optional[str] = None
    comment: Optional[str] = None
    created_at: datetime


class FundsTransfer(BaseModel):
    from_account_id: int
    to_account_id: int
    amount: Decimal = Field(gt=0)
    comment: Optional[str] = Field(default=None, max_length=500)


class FundsTransferOut(BaseModel):
    reference: str
    debit: TransactionOut
    credit: TransactionOut


class CrewDebtOut(BaseModel):
    crew_id: int
    debt: Decimal


class BalanceMismatch(BaseModel):
    account_id: int
    cached_balance: Decimal
    ledger_sum: Decimal


class StatusBucket(BaseModel):
    count: int = 0
    price_sum: Decimal = Decimal("0")
    net_profit_sum: Decimal = Decimal("0")


class OrderStats(BaseModel):
    breakdown: Dict[str, StatusBucket]
    total_revenue: Decimal
    total_net_profit: Decimal
    potential_revenue: Decimal
    active_count: int


class AccountList(BaseModel):
    accounts: List[AccountOut]
