from fastapi import APIRouter, Depends, HTTPException, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List

from fieldledger.db.session import get_db
from fieldledger.schemas.order import (
    OrderCreate, OrderOut, StatusUpdate, OrderTransfer, OrderAssign,
    ExpenseCreate, PriceUpdate, OrderFinancials, SettlementOut,
)
from fieldledger.core.enums import OrderStatus, UserRole
from fieldledger.core.policy import Action, authorize
from fieldledger.core.rate_limit import rate_limited
from fieldledger.core.security import Actor, require_crew
from fieldledger.core.response_builders import build_order_response, build_order_response_list
from fieldledger.services import lifecycle, expenses, settlement
from fieldledger.utils.idempotency import get_idempotent, set_idempotent

router = APIRouter(prefix="/orders", tags=["orders"])


def _acting_crew(actor: Actor, crew_id: Optional[int]) -> int:
    """Crew members act for the crew on their token; office staff name one explicitly."""
    if actor.role == UserRole.CREW:
        own = require_crew(actor)
        if crew_id is not None and crew_id != own:
            raise HTTPException(status_code=403, detail="Cannot act for another crew")
        return own
    if crew_id is None:
        raise HTTPException(status_code=400, detail="crew_id is required")
    return crew_id


def _crew_scope(actor: Actor) -> Optional[int]:
    """Crew callers may only touch orders their crew holds; office staff are unrestricted."""
    return require_crew(actor) if actor.role == UserRole.CREW else None


@router.post("/", response_model=OrderOut)
async def create_order(
    payload: OrderCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.CREATE_ORDER)
    order = await lifecycle.create_order(
        db,
        final_price=payload.final_price,
        client_name=payload.client_name,
        client_phone=payload.client_phone,
        address=payload.address,
        actor_id=actor.id,
    )
    return build_order_response(order)


@router.get("/", response_model=List[OrderOut])
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    crew_id: Optional[int] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.VIEW_ORDERS)
    orders = await lifecycle.list_orders(db, status=status, crew_id=crew_id, limit=limit, offset=offset)
    return build_order_response_list(orders)


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.VIEW_ORDERS)
    order = await lifecycle.get_order(db, order_id)
    return build_order_response(order)


@router.post("/{order_id}/claim", response_model=OrderOut)
async def claim_order(
    order_id: int,
    crew_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.CLAIM_ORDER)
    order = await lifecycle.claim(db, order_id, _acting_crew(actor, crew_id))
    return build_order_response(order)


@router.post("/{order_id}/refuse", response_model=OrderOut)
async def refuse_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.REFUSE_ORDER)
    if actor.role == UserRole.CREW:
        crew_id = require_crew(actor)
    else:
        crew_id = (await lifecycle.get_order(db, order_id)).crew_id
    order = await lifecycle.refuse(db, order_id, crew_id, actor_id=actor.id)
    return build_order_response(order)


@router.post("/{order_id}/transfer", response_model=OrderOut)
async def transfer_order(
    order_id: int,
    payload: OrderTransfer,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.TRANSFER_ORDER)
    order = await lifecycle.transfer(
        db, order_id, payload.from_crew_id, payload.to_crew_id, actor_id=actor.id
    )
    return build_order_response(order)


@router.post("/{order_id}/assign", response_model=OrderOut)
async def assign_order(
    order_id: int,
    payload: OrderAssign,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.ASSIGN_ORDER)
    order = await lifecycle.assign(db, order_id, payload.crew_id, actor_id=actor.id)
    return build_order_response(order)


@router.patch("/{order_id}/status", response_model=OrderOut)
async def change_status(
    order_id: int,
    payload: StatusUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.CHANGE_STATUS)
    order = await lifecycle.transition(db, order_id, actor, payload.status)
    return build_order_response(order)


@router.get("/{order_id}/expenses", response_model=OrderFinancials)
async def get_financials(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.VIEW_ORDERS)
    return await expenses.get_financials(db, order_id)


@router.post("/{order_id}/expenses", response_model=OrderFinancials)
async def add_expense(
    order_id: int,
    payload: ExpenseCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.ADD_EXPENSE)

    scope = f"expense:{order_id}:{actor.id}"
    cached = await get_idempotent(scope, idempotency_key)
    if cached:
        return cached

    financials = await expenses.add_expense(
        db, order_id, payload.amount, payload.category, payload.comment, actor.id,
        crew_id=_crew_scope(actor),
    )
    await set_idempotent(scope, idempotency_key, financials.model_dump(mode="json"))
    return financials


@router.put("/{order_id}/price", response_model=OrderFinancials)
async def set_final_price(
    order_id: int,
    payload: PriceUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.SET_FINAL_PRICE)
    return await expenses.set_final_price(
        db, order_id, payload.final_price, actor.id, crew_id=_crew_scope(actor)
    )


@router.post("/{order_id}/finalize", response_model=SettlementOut)
async def finalize_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.FINALIZE_ORDER)
    return await settlement.finalize_order(db, order_id, actor_id=actor.id)
