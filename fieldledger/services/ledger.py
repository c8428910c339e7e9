"""Account ledger: cached balances that only move together with a logged transaction.

Every public mutation here runs inside ``atomic()``. The ``apply_entry`` helper
does not commit and is meant for callers composing several postings into one
unit (transfers, settlement, incassation).
"""
import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Tuple
from sqlalchemy import update, func, case
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from fieldledger.db.session import atomic
from fieldledger.models.account import Account, Transaction
from fieldledger.core.config import settings
from fieldledger.core.enums import AccountKind, Direction, TransactionCategory, AuditAction, SETTLEMENT_CATEGORIES
from fieldledger.core.exceptions import ValidationError, NotFoundError, check_not_found
from fieldledger.core.audit_log import log_audit
from fieldledger.core.metrics import ledger_postings
from fieldledger.schemas.ledger import BalanceMismatch
from fieldledger.services.crews import get_crew_account
from fieldledger.utils.money import to_money

logger = logging.getLogger(__name__)


async def apply_entry(
    db: AsyncSession,
    account_id: int,
    amount: Decimal,
    direction: Direction,
    category: TransactionCategory,
    actor_id: Optional[int],
    order_id: Optional[int] = None,
    comment: Optional[str] = None,
    reference: Optional[str] = None,
) -> Transaction:
    amount = Decimal(str(amount))
    signed = amount if direction == Direction.INCOME else -amount

    res = await db.execute(
        update(Account)
        .where(Account.id == account_id)
        .values(balance=Account.balance + signed)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise NotFoundError(f"Account with id {account_id} not found", account_id)

    txn = Transaction(
        account_id=account_id,
        actor_id=actor_id,
        amount=amount,
        direction=direction,
        category=category,
        order_id=order_id,
        reference=reference,
        comment=comment,
    )
    db.add(txn)
    await db.flush()
    ledger_postings.labels(category=str(category), direction=str(direction)).inc()
    return txn


async def post(
    db: AsyncSession,
    account_id: int,
    amount: Decimal,
    direction: Direction,
    category: TransactionCategory,
    actor_id: Optional[int],
    order_id: Optional[int] = None,
    comment: Optional[str] = None,
) -> Transaction:
    if amount is None or Decimal(str(amount)) <= 0:
        raise ValidationError("Amount must be greater than zero")
    if TransactionCategory(category) in SETTLEMENT_CATEGORIES:
        raise ValidationError(f"{category} entries are posted only by order settlement")

    async with atomic(db):
        txn = await apply_entry(
            db, account_id, amount, Direction(direction), TransactionCategory(category),
            actor_id, order_id=order_id, comment=comment,
        )
        log_audit(db, actor_id, AuditAction.POST_TRANSACTION, {
            "account_id": account_id, "amount": amount, "direction": direction,
            "category": category, "order_id": order_id,
        })

    await db.refresh(txn)
    logger.info(f"Posted {direction} {amount} ({category}) on account {account_id}")
    return txn


async def transfer(
    db: AsyncSession,
    from_id: int,
    to_id: int,
    amount: Decimal,
    actor_id: Optional[int],
    comment: Optional[str] = None,
) -> Tuple[str, Transaction, Transaction]:
    """Move money between two accounts; both legs share one reference."""
    if amount is None or Decimal(str(amount)) <= 0:
        raise ValidationError("Amount must be greater than zero")
    if from_id == to_id:
        raise ValidationError("Cannot transfer to the same account")

    reference = str(uuid.uuid4())
    async with atomic(db):
        debit = await apply_entry(
            db, from_id, amount, Direction.EXPENSE, TransactionCategory.TRANSFER,
            actor_id, comment=comment, reference=reference,
        )
        credit = await apply_entry(
            db, to_id, amount, Direction.INCOME, TransactionCategory.TRANSFER,
            actor_id, comment=comment, reference=reference,
        )
        log_audit(db, actor_id, AuditAction.TRANSFER_FUNDS, {
            "from": from_id, "to": to_id, "amount": amount, "reference": reference,
        })

    await db.refresh(debit)
    await db.refresh(credit)
    logger.info(f"Transferred {amount} from account {from_id} to {to_id} ({reference})")
    return reference, debit, credit


async def open_account(
    db: AsyncSession,
    name: str,
    kind: AccountKind = AccountKind.COMPANY_CASH,
    actor_id: Optional[int] = None,
) -> Account:
    kind = AccountKind(kind)
    if kind == AccountKind.CREW_VIRTUAL:
        raise ValidationError("Crew accounts are opened when the crew is registered")
    if not name or not name.strip():
        raise ValidationError("Account name is required")

    async with atomic(db):
        account = Account(name=name.strip(), kind=kind, balance=Decimal("0"))
        db.add(account)
        log_audit(db, actor_id, AuditAction.OPEN_ACCOUNT, {"name": name, "kind": kind})

    await db.refresh(account)
    logger.info(f"Opened {kind} account {account.id} '{account.name}'")
    return account


async def get_account(db: AsyncSession, account_id: int) -> Account:
    res = await db.execute(
        select(Account)
        .where(Account.id == account_id)
        .execution_options(populate_existing=True)
    )
    account = res.scalars().first()
    check_not_found(account, "Account", account_id)
    return account


async def get_main_cash_account(db: AsyncSession) -> Account:
    if settings.MAIN_CASH_ACCOUNT_ID is not None:
        return await get_account(db, settings.MAIN_CASH_ACCOUNT_ID)

    res = await db.execute(
        select(Account)
        .where(Account.kind == AccountKind.COMPANY_CASH)
        .order_by(Account.id)
        .limit(1)
    )
    account = res.scalars().first()
    check_not_found(account, "Main cash account")
    return account


async def crew_debt(db: AsyncSession, crew_id: int) -> Decimal:
    """What the crew owes the company: withheld shares minus confirmed handovers."""
    account = await get_crew_account(db, crew_id)

    withheld = await db.execute(
        select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.account_id == account.id,
            Transaction.category == TransactionCategory.WITHHELD,
        )
    )
    handed_over = await db.execute(
        select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.account_id == account.id,
            Transaction.category == TransactionCategory.INCASSATION,
            Transaction.direction == Direction.INCOME,
        )
    )
    return to_money(withheld.scalar()) - to_money(handed_over.scalar())


async def balances_snapshot(db: AsyncSession) -> List[Account]:
    res = await db.execute(
        select(Account).order_by(Account.id).execution_options(populate_existing=True)
    )
    return list(res.scalars().all())


async def list_transactions(
    db: AsyncSession,
    account_id: Optional[int] = None,
    order_id: Optional[int] = None,
    limit: int = 100,
) -> List[Transaction]:
    q = select(Transaction)
    if account_id is not None:
        q = q.where(Transaction.account_id == account_id)
    if order_id is not None:
        q = q.where(Transaction.order_id == order_id)
    q = q.order_by(Transaction.id.desc()).limit(limit)
    res = await db.execute(q)
    return list(res.scalars().all())


async def reconcile(db: AsyncSession) -> List[BalanceMismatch]:
    """Accounts whose cached balance disagrees with their transaction log."""
    signed = case(
        (Transaction.direction == Direction.INCOME, Transaction.amount),
        else_=-Transaction.amount,
    )
    res = await db.execute(
        select(Account.id, Account.balance, func.coalesce(func.sum(signed), 0))
        .outerjoin(Transaction, Transaction.account_id == Account.id)
        .group_by(Account.id, Account.balance)
        .order_by(Account.id)
    )

    mismatches = []
    for account_id, balance, ledger_sum in res.all():
        if to_money(balance) != to_money(ledger_sum):
            mismatches.append(BalanceMismatch(
                account_id=account_id,
                cached_balance=to_money(balance),
                ledger_sum=to_money(ledger_sum),
            ))
    if mismatches:
        logger.error(f"Ledger reconciliation found {len(mismatches)} mismatched accounts")
    return mismatches
