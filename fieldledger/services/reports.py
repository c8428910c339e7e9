import logging
from decimal import Decimal
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from fieldledger.models.order import Order
from fieldledger.core.enums import OrderStatus, UNLOCKED_STATUSES, IN_PROGRESS_STATUSES
from fieldledger.schemas.ledger import OrderStats, StatusBucket
from fieldledger.utils.money import to_money

logger = logging.getLogger(__name__)


async def order_stats(db: AsyncSession) -> OrderStats:
    """Per-status breakdown plus revenue figures for the office dashboard.

    Revenue and net profit count settled orders only; potential revenue is the
    price of everything still open.
    """
    res = await db.execute(
        select(
            Order.status,
            func.count(Order.id),
            func.coalesce(func.sum(Order.final_price), 0),
            func.coalesce(func.sum(Order.net_profit), 0),
        ).group_by(Order.status)
    )

    breakdown = {str(s): StatusBucket() for s in OrderStatus}
    for status, count, price_sum, profit_sum in res.all():
        breakdown[str(OrderStatus(status))] = StatusBucket(
            count=count,
            price_sum=to_money(price_sum),
            net_profit_sum=to_money(profit_sum),
        )

    done = breakdown[str(OrderStatus.DONE)]
    potential = sum((breakdown[str(s)].price_sum for s in UNLOCKED_STATUSES), Decimal("0.00"))
    active = sum(breakdown[str(s)].count for s in IN_PROGRESS_STATUSES)

    return OrderStats(
        breakdown=breakdown,
        total_revenue=done.price_sum,
        total_net_profit=done.net_profit_sum,
        potential_revenue=to_money(potential),
        active_count=active,
    )
