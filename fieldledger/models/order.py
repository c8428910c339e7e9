from sqlalchemy import Column, String, ForeignKey, Enum, Numeric, BigInteger, DateTime
from sqlalchemy.orm import relationship
from fieldledger.models.base import BaseModel
from fieldledger.core.enums import OrderStatus, LOCKED_STATUSES


class Order(BaseModel):
    __tablename__ = "orders"

    crew_id = Column(ForeignKey("crews.id"), nullable=True, index=True)
    crew = relationship("Crew", backref="orders")

    status = Column(Enum(OrderStatus), default=OrderStatus.NEW, nullable=False, index=True)

    client_name = Column(String(120), nullable=True)
    client_phone = Column(String(40), nullable=True)
    address = Column(String(255), nullable=True)
    created_by = Column(BigInteger, nullable=True)

    # Embedded financial record, written only through the expense ledger and settlement
    final_price = Column(Numeric(12, 2), nullable=False)
    total_expenses = Column(Numeric(12, 2), nullable=False, default=0)
    net_profit = Column(Numeric(12, 2), nullable=False)

    settled_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_locked(self) -> bool:
        return self.status in LOCKED_STATUSES
