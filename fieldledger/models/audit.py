from sqlalchemy import Column, String, BigInteger
from fieldledger.models.base import BaseModel

class Audit(BaseModel):
    __tablename__ = "audits"

    actor_id = Column(BigInteger, nullable=True, index=True)

    action = Column(String(64), nullable=False)
    payload_hash = Column(String(128), nullable=False)
