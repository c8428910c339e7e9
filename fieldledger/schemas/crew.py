from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class CrewCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    lead_actor_id: int
    profit_share: Decimal = Field(ge=0, le=100)


class CrewUpdate(BaseModel):
    active: bool


class CrewOut(BaseModel):
    id: int
    name: str
    lead_actor_id: int
    profit_share: Decimal
    active: bool
    account_id: Optional[int] = None
    created_at: datetime
