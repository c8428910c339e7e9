"""Order state machine.

Every state change is a conditional UPDATE guarded by the state the caller
observed. Zero affected rows means another request got there first, which is
reported as a conflict and never retried.
"""
import logging
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from fieldledger.db.session import atomic
from fieldledger.models.order import Order
from fieldledger.core.enums import (
    OrderStatus, UserRole, AuditAction, IN_PROGRESS_STATUSES,
)
from fieldledger.core.exceptions import (
    ValidationError, ConflictError, AlreadyClaimedError, OrderLockedError,
    CrewMismatchError, AuthorizationError, check_not_found,
)
from fieldledger.core.audit_log import log_audit
from fieldledger.core.metrics import conflicts
from fieldledger.core.policy import authorize_transition
from fieldledger.core.security import Actor
from fieldledger.schemas.order import OrderFinancials
from fieldledger.services import notifier
from fieldledger.services.crews import get_active_crew, list_crews

logger = logging.getLogger(__name__)


def enforce_modifiable(order: Order) -> None:
    if order.is_locked:
        raise OrderLockedError(f"Order {order.id} is {order.status} and can no longer be changed", order.id)


def enforce_held_by(order: Order, crew_id: Optional[int]) -> None:
    if crew_id is None or order.crew_id != crew_id:
        raise AuthorizationError(f"Order {order.id} is not held by your crew", order.id)


async def get_order(db: AsyncSession, order_id: int) -> Order:
    res = await db.execute(select(Order).where(Order.id == order_id))
    order = res.scalars().first()
    check_not_found(order, "Order", order_id)
    return order


async def get_modifiable_order(db: AsyncSession, order_id: int) -> Order:
    order = await get_order(db, order_id)
    enforce_modifiable(order)
    return order


async def list_orders(
    db: AsyncSession,
    status: Optional[OrderStatus] = None,
    crew_id: Optional[int] = None,
    limit: int = 20,
    offset: int = 0,
) -> List[Order]:
    q = select(Order)
    if status is not None:
        q = q.where(Order.status == OrderStatus(status))
    if crew_id is not None:
        q = q.where(Order.crew_id == crew_id)
    q = q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset)
    res = await db.execute(q)
    return list(res.scalars().all())


async def create_order(
    db: AsyncSession,
    final_price: Decimal,
    client_name: Optional[str] = None,
    client_phone: Optional[str] = None,
    address: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> Order:
    """Open an order in the NEW pool with a complete financial record."""
    if final_price is None or Decimal(str(final_price)) <= 0:
        raise ValidationError("Final price must be greater than zero")

    financials = OrderFinancials.opening(Decimal(str(final_price)))
    async with atomic(db):
        order = Order(
            status=OrderStatus.NEW,
            client_name=client_name,
            client_phone=client_phone,
            address=address,
            created_by=actor_id,
            final_price=financials.final_price,
            total_expenses=financials.total_expenses,
            net_profit=financials.net_profit,
        )
        db.add(order)
        await db.flush()
        log_audit(db, actor_id, AuditAction.CREATE_ORDER, {
            "order_id": order.id, "final_price": financials.final_price,
        })

    await db.refresh(order)
    logger.info(f"Order {order.id} created with price {order.final_price}")

    for crew in await list_crews(db, active_only=True):
        notifier.dispatch(crew.lead_actor_id, "order_available", {
            "order_id": order.id, "final_price": str(order.final_price),
        })
    return order


async def claim(db: AsyncSession, order_id: int, crew_id: int) -> Order:
    order = await get_modifiable_order(db, order_id)
    crew = await get_active_crew(db, crew_id)

    if order.status != OrderStatus.NEW:
        conflicts.labels(operation="claim").inc()
        raise AlreadyClaimedError(f"Order {order_id} is already taken", order_id)

    async with atomic(db):
        res = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.NEW)
            .values(status=OrderStatus.PROCESSING, crew_id=crew.id)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            conflicts.labels(operation="claim").inc()
            logger.warning(f"Crew {crew_id} lost the claim race for order {order_id}")
            raise AlreadyClaimedError(f"Order {order_id} is already taken", order_id)
        log_audit(db, crew.lead_actor_id, AuditAction.CLAIM_ORDER, {"order_id": order_id, "crew_id": crew.id})

    await db.refresh(order)
    logger.info(f"Order {order_id} claimed by crew {crew.id}")
    return order


async def transition(db: AsyncSession, order_id: int, actor: Actor, new_status: OrderStatus) -> Order:
    try:
        new_status = OrderStatus(new_status)
    except ValueError:
        raise ValidationError(f"Invalid status: {new_status}")

    order = await get_modifiable_order(db, order_id)
    current = order.status

    if actor.role == UserRole.CREW:
        enforce_held_by(order, actor.crew_id)
    authorize_transition(actor.role, current, new_status)

    async with atomic(db):
        res = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == current)
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            conflicts.labels(operation="transition").inc()
            raise ConflictError(f"Order {order_id} changed while updating its status", order_id)
        log_audit(db, actor.id, AuditAction.CHANGE_STATUS, {
            "order_id": order_id, "from": current, "to": new_status,
        })

    await db.refresh(order)
    logger.info(f"Order {order_id} moved {current} -> {new_status} by {actor.role} {actor.id}")
    return order


async def refuse(db: AsyncSession, order_id: int, crew_id: int, actor_id: Optional[int] = None) -> Order:
    """Hand an in-progress order back to the NEW pool."""
    order = await get_modifiable_order(db, order_id)
    if order.crew_id != crew_id or order.status not in IN_PROGRESS_STATUSES:
        raise CrewMismatchError(f"Order {order_id} is not held by crew {crew_id}", order_id)

    async with atomic(db):
        res = await db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.crew_id == crew_id,
                Order.status.in_(IN_PROGRESS_STATUSES),
            )
            .values(status=OrderStatus.NEW, crew_id=None)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            conflicts.labels(operation="refuse").inc()
            raise CrewMismatchError(f"Order {order_id} is not held by crew {crew_id}", order_id)
        log_audit(db, actor_id, AuditAction.REFUSE_ORDER, {"order_id": order_id, "crew_id": crew_id})

    await db.refresh(order)
    logger.info(f"Crew {crew_id} refused order {order_id}, back in the pool")
    return order


async def transfer(
    db: AsyncSession,
    order_id: int,
    from_crew: int,
    to_crew: int,
    actor_id: Optional[int] = None,
) -> Order:
    order = await get_modifiable_order(db, order_id)
    target = await get_active_crew(db, to_crew)
    if from_crew == to_crew:
        raise ValidationError("Source and target crew are the same")
    if order.crew_id != from_crew or order.status not in IN_PROGRESS_STATUSES:
        raise CrewMismatchError(f"Order {order_id} is not held by crew {from_crew}", order_id)

    async with atomic(db):
        res = await db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.crew_id == from_crew,
                Order.status.in_(IN_PROGRESS_STATUSES),
            )
            .values(crew_id=target.id)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            conflicts.labels(operation="transfer").inc()
            raise CrewMismatchError(f"Order {order_id} is not held by crew {from_crew}", order_id)
        log_audit(db, actor_id, AuditAction.TRANSFER_ORDER, {
            "order_id": order_id, "from": from_crew, "to": target.id,
        })

    await db.refresh(order)
    logger.info(f"Order {order_id} transferred from crew {from_crew} to crew {target.id}")
    notifier.dispatch(target.lead_actor_id, "order_transferred", {"order_id": order_id})
    return order


async def assign(db: AsyncSession, order_id: int, crew_id: int, actor_id: Optional[int] = None) -> Order:
    """Office override: put any unlocked order on a crew's list."""
    order = await get_modifiable_order(db, order_id)
    crew = await get_active_crew(db, crew_id)
    current = order.status
    target_status = OrderStatus.PROCESSING if current == OrderStatus.NEW else current

    async with atomic(db):
        res = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == current)
            .values(crew_id=crew.id, status=target_status)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            conflicts.labels(operation="assign").inc()
            raise ConflictError(f"Order {order_id} changed before it could be assigned", order_id)
        log_audit(db, actor_id, AuditAction.ASSIGN_ORDER, {"order_id": order_id, "crew_id": crew.id})

    await db.refresh(order)
    logger.info(f"Order {order_id} assigned to crew {crew.id}")
    notifier.dispatch(crew.lead_actor_id, "order_assigned", {"order_id": order_id})
    return order
