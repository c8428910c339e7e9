from sqlalchemy import Column, String, Boolean, Numeric, BigInteger
from fieldledger.models.base import BaseModel


class Crew(BaseModel):
    __tablename__ = "crews"

    name = Column(String(120), nullable=False, unique=True)
    lead_actor_id = Column(BigInteger, nullable=False, index=True)
    profit_share = Column(Numeric(5, 2), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
