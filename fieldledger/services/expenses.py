import logging
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from fieldledger.db.session import atomic
from fieldledger.models.order import Order
from fieldledger.models.expense import Expense
from fieldledger.core.enums import AuditAction, UNLOCKED_STATUSES
from fieldledger.core.exceptions import ValidationError, OrderLockedError
from fieldledger.core.audit_log import log_audit
from fieldledger.core.metrics import conflicts
from fieldledger.core.response_builders import build_expense_response
from fieldledger.schemas.order import OrderFinancials
from fieldledger.services.lifecycle import get_order, get_modifiable_order, enforce_held_by

logger = logging.getLogger(__name__)


async def list_expenses(db: AsyncSession, order_id: int) -> List[Expense]:
    res = await db.execute(
        select(Expense).where(Expense.order_id == order_id).order_by(Expense.id)
    )
    return list(res.scalars().all())


async def get_financials(db: AsyncSession, order_id: int) -> OrderFinancials:
    order = await get_order(db, order_id)
    expenses = await list_expenses(db, order_id)
    return OrderFinancials(
        final_price=order.final_price,
        total_expenses=order.total_expenses,
        net_profit=order.net_profit,
        expenses=[build_expense_response(e) for e in expenses],
    )


async def add_expense(
    db: AsyncSession,
    order_id: int,
    amount: Decimal,
    category: str,
    comment: Optional[str],
    actor_id: Optional[int],
    crew_id: Optional[int] = None,
) -> OrderFinancials:
    """Append an expense and fold it into the order totals in one unit.

    The totals move through a single UPDATE guarded by the unlocked statuses,
    so concurrent expenses add up and nothing lands after settlement. With
    ``crew_id`` set, only an order held by that crew accepts the expense.
    """
    if amount is None or Decimal(str(amount)) <= 0:
        raise ValidationError("Expense amount must be greater than zero")
    amount = Decimal(str(amount))
    category = (category or "Other").strip() or "Other"

    order = await get_modifiable_order(db, order_id)
    if crew_id is not None:
        enforce_held_by(order, crew_id)

    async with atomic(db):
        res = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status.in_(UNLOCKED_STATUSES))
            .values(
                total_expenses=Order.total_expenses + amount,
                net_profit=Order.final_price - Order.total_expenses - amount,
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            conflicts.labels(operation="add_expense").inc()
            raise OrderLockedError(f"Order {order_id} was locked before the expense was recorded", order_id)

        db.add(Expense(
            order_id=order_id,
            amount=amount,
            category=category,
            comment=comment,
            actor_id=actor_id,
        ))
        log_audit(db, actor_id, AuditAction.ADD_EXPENSE, {
            "order_id": order_id, "amount": amount, "category": category,
        })

    await db.refresh(order)
    logger.info(f"Expense {amount} ({category}) added to order {order_id}, net profit {order.net_profit}")
    return await get_financials(db, order_id)


async def set_final_price(
    db: AsyncSession,
    order_id: int,
    new_price: Decimal,
    actor_id: Optional[int],
    crew_id: Optional[int] = None,
) -> OrderFinancials:
    if new_price is None or Decimal(str(new_price)) <= 0:
        raise ValidationError("Final price must be greater than zero")
    new_price = Decimal(str(new_price))

    order = await get_modifiable_order(db, order_id)
    if crew_id is not None:
        enforce_held_by(order, crew_id)
    old_price = order.final_price

    async with atomic(db):
        res = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status.in_(UNLOCKED_STATUSES))
            .values(
                final_price=new_price,
                net_profit=new_price - Order.total_expenses,
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            conflicts.labels(operation="set_final_price").inc()
            raise OrderLockedError(f"Order {order_id} was locked before the price changed", order_id)
        log_audit(db, actor_id, AuditAction.SET_FINAL_PRICE, {
            "order_id": order_id, "old": old_price, "new": new_price,
        })

    await db.refresh(order)
    logger.info(f"Order {order_id} price {old_price} -> {new_price}")
    return await get_financials(db, order_id)
