from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from fieldledger.db.session import get_db
from fieldledger.schemas.crew import CrewCreate, CrewUpdate, CrewOut
from fieldledger.core.policy import Action, authorize
from fieldledger.core.rate_limit import rate_limited
from fieldledger.core.security import Actor
from fieldledger.core.response_builders import build_crew_response
from fieldledger.services import crews

router = APIRouter(prefix="/crews", tags=["crews"])


@router.post("/", response_model=CrewOut)
async def register_crew(
    payload: CrewCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.MANAGE_CREWS)
    crew, account = await crews.register_crew(
        db, payload.name, payload.lead_actor_id, payload.profit_share, actor_id=actor.id
    )
    return build_crew_response(crew, account_id=account.id)


@router.get("/", response_model=List[CrewOut])
async def list_crews(
    active_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.VIEW_ORDERS)
    result = []
    for crew in await crews.list_crews(db, active_only=active_only):
        account = await crews.get_crew_account(db, crew.id)
        result.append(build_crew_response(crew, account_id=account.id))
    return result


@router.get("/{crew_id}", response_model=CrewOut)
async def get_crew(
    crew_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.VIEW_ORDERS)
    crew = await crews.get_crew(db, crew_id)
    account = await crews.get_crew_account(db, crew.id)
    return build_crew_response(crew, account_id=account.id)


@router.patch("/{crew_id}", response_model=CrewOut)
async def update_crew(
    crew_id: int,
    payload: CrewUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.MANAGE_CREWS)
    crew = await crews.set_crew_active(db, crew_id, payload.active, actor_id=actor.id)
    account = await crews.get_crew_account(db, crew.id)
    return build_crew_response(crew, account_id=account.id)
