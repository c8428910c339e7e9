from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from fieldledger.core.enums import IncassationState


class IncassationCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    crew_id: Optional[int] = None


class IncassationOut(BaseModel):
    request_id: str
    crew_id: int
    amount: Decimal
    state: IncassationState
    debt_snapshot: Decimal
    requested_by: Optional[int] = None
    resolved_by: Optional[int] = None
    requested_at: datetime
    resolved_at: Optional[datetime] = None


class IncassationConfirmed(BaseModel):
    request_id: str
    crew_id: int
    amount: Decimal
    new_debt: Decimal
