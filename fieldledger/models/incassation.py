from sqlalchemy import Column, String, ForeignKey, Enum, Numeric, BigInteger, DateTime
from fieldledger.models.base import BaseModel
from fieldledger.core.enums import IncassationState


class IncassationRequest(BaseModel):
    __tablename__ = "incassation_requests"

    reference = Column(String(36), nullable=False, unique=True, index=True)
    crew_id = Column(ForeignKey("crews.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    state = Column(Enum(IncassationState), nullable=False, default=IncassationState.PENDING)
    debt_snapshot = Column(Numeric(12, 2), nullable=False)
    requested_by = Column(BigInteger, nullable=True)
    resolved_by = Column(BigInteger, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
