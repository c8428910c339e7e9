from sqlalchemy import Column, String, ForeignKey, Enum, Numeric, BigInteger, Index, text
from sqlalchemy.orm import relationship
from fieldledger.models.base import BaseModel
from fieldledger.core.enums import AccountKind, Direction, TransactionCategory


class Account(BaseModel):
    __tablename__ = "accounts"

    name = Column(String(255), nullable=False)
    kind = Column(Enum(AccountKind), nullable=False, default=AccountKind.COMPANY_CASH)
    crew_id = Column(ForeignKey("crews.id"), nullable=True, unique=True)
    crew = relationship("Crew", backref="accounts")

    # Projection of the account's transactions; written only together with one
    balance = Column(Numeric(12, 2), nullable=False, default=0)


class Transaction(BaseModel):
    """Ledger row. The source of truth for every balance; never updated."""
    __tablename__ = "transactions"

    account_id = Column(ForeignKey("accounts.id"), nullable=False)
    actor_id = Column(BigInteger, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    direction = Column(Enum(Direction), nullable=False)
    category = Column(Enum(TransactionCategory), nullable=False)
    order_id = Column(ForeignKey("orders.id"), nullable=True, index=True)
    reference = Column(String(64), nullable=True, index=True)
    comment = Column(String(500), nullable=True)

    __table_args__ = (
        Index("ix_transactions_account_category", "account_id", "category"),
        # One settlement pair per order
        Index(
            "uq_transactions_settlement",
            "order_id",
            "category",
            unique=True,
            postgresql_where=text("category IN ('EARNINGS', 'WITHHELD')"),
            sqlite_where=text("category IN ('EARNINGS', 'WITHHELD')"),
        ),
    )

    @property
    def signed_amount(self):
        return self.amount if self.direction == Direction.INCOME else -self.amount
