"""One-shot order settlement.

Closing an order splits its net profit by the crew's share and books both
halves on the crew's virtual account:

* ``Earnings`` income of the crew share, a running total of what the crew made;
* ``Withheld`` expense of the company share, which the crew now owes because it
  collected the client's cash.

Neither share is clamped. A loss-making order yields negative shares and
reduces the crew's recorded earnings and debt accordingly.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from fieldledger.db.session import atomic
from fieldledger.models.order import Order
from fieldledger.core.enums import OrderStatus, Direction, TransactionCategory, AuditAction
from fieldledger.core.exceptions import (
    ConflictError, OrderLockedError, AlreadyFinalizedError, check_not_found,
)
from fieldledger.core.audit_log import log_audit
from fieldledger.core.metrics import settlements, settled_net_profit, conflicts
from fieldledger.schemas.order import SettlementOut
from fieldledger.services import notifier
from fieldledger.services.crews import get_crew, get_crew_account
from fieldledger.services.ledger import apply_entry, crew_debt
from fieldledger.utils.money import round_unit

logger = logging.getLogger(__name__)


def split_profit(net_profit: Decimal, profit_share: Decimal):
    """Return (crew_share, owner_share) for a net profit and a share percentage."""
    net_profit = Decimal(str(net_profit))
    crew_share = round_unit(net_profit * Decimal(str(profit_share)) / Decimal(100))
    return crew_share, net_profit - crew_share


async def finalize_order(db: AsyncSession, order_id: int, actor_id: Optional[int] = None) -> SettlementOut:
    res = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    order = res.scalars().first()
    check_not_found(order, "Order", order_id)

    if order.status == OrderStatus.DONE or order.settled_at is not None:
        conflicts.labels(operation="finalize").inc()
        raise AlreadyFinalizedError(f"Order {order_id} is already finalized", order_id)
    if order.status == OrderStatus.CANCELED:
        raise OrderLockedError(f"Order {order_id} is canceled and cannot be settled", order_id)
    if order.status != OrderStatus.WORK:
        raise ConflictError(f"Order {order_id} must be in {OrderStatus.WORK} to finalize, not {order.status}", order_id)
    if order.crew_id is None:
        raise ConflictError(f"Order {order_id} has no crew to settle with", order_id)

    crew = await get_crew(db, order.crew_id)
    account = await get_crew_account(db, crew.id)
    net_profit = order.net_profit
    crew_share, owner_share = split_profit(net_profit, crew.profit_share)

    async with atomic(db):
        upd = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.WORK)
            .values(status=OrderStatus.DONE, settled_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if upd.rowcount == 0:
            conflicts.labels(operation="finalize").inc()
            logger.warning(f"Order {order_id} was finalized concurrently")
            raise AlreadyFinalizedError(f"Order {order_id} is already finalized", order_id)

        await apply_entry(
            db, account.id, crew_share, Direction.INCOME, TransactionCategory.EARNINGS,
            actor_id, order_id=order_id, comment=f"Crew share of order #{order_id}",
        )
        await apply_entry(
            db, account.id, owner_share, Direction.EXPENSE, TransactionCategory.WITHHELD,
            actor_id, order_id=order_id, comment=f"Company share of order #{order_id}",
        )
        log_audit(db, actor_id, AuditAction.FINALIZE_ORDER, {
            "order_id": order_id, "crew_id": crew.id,
            "crew_share": crew_share, "owner_share": owner_share,
        })

    await db.refresh(order)
    settlements.inc()
    settled_net_profit.observe(float(net_profit))
    debt = await crew_debt(db, crew.id)
    logger.info(
        f"Order {order_id} settled: net {net_profit}, crew {crew.id} share {crew_share}, "
        f"company share {owner_share}, crew debt now {debt}"
    )

    notifier.dispatch(crew.lead_actor_id, "order_settled", {
        "order_id": order_id,
        "crew_share": str(crew_share),
        "owner_share": str(owner_share),
        "crew_debt": str(debt),
    })
    return SettlementOut(
        order_id=order_id,
        crew_id=crew.id,
        net_profit=net_profit,
        crew_share=crew_share,
        owner_share=owner_share,
        crew_debt=debt,
    )
