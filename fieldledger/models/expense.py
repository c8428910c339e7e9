from sqlalchemy import Column, String, ForeignKey, Numeric, BigInteger
from fieldledger.models.base import BaseModel


class Expense(BaseModel):
    """Append-only; rows are never updated or deleted."""
    __tablename__ = "expenses"

    order_id = Column(ForeignKey("orders.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    category = Column(String(100), nullable=False)
    comment = Column(String(500), nullable=True)
    actor_id = Column(BigInteger, nullable=True)
