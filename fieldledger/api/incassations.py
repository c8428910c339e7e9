from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List

from fieldledger.db.session import get_db
from fieldledger.schemas.incassation import IncassationCreate, IncassationOut, IncassationConfirmed
from fieldledger.core.enums import IncassationState, UserRole
from fieldledger.core.policy import Action, authorize
from fieldledger.core.rate_limit import rate_limited
from fieldledger.core.security import Actor, require_crew
from fieldledger.core.response_builders import build_incassation_response
from fieldledger.services import incassation

router = APIRouter(prefix="/incassations", tags=["incassations"])


@router.post("/", response_model=IncassationOut)
async def request_incassation(
    payload: IncassationCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.REQUEST_INCASSATION)
    if actor.role == UserRole.CREW:
        crew_id = require_crew(actor)
        if payload.crew_id is not None and payload.crew_id != crew_id:
            raise HTTPException(status_code=403, detail="Cannot hand over cash for another crew")
    else:
        crew_id = payload.crew_id
        if crew_id is None:
            raise HTTPException(status_code=400, detail="crew_id is required")

    ticket = await incassation.request(db, crew_id, payload.amount, requester_id=actor.id)
    return build_incassation_response(ticket)


@router.get("/", response_model=List[IncassationOut])
async def list_requests(
    state: Optional[IncassationState] = Query(None),
    crew_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    if actor.role == UserRole.CREW:
        crew_id = require_crew(actor)
    else:
        authorize(actor.role, Action.RESOLVE_INCASSATION)
    tickets = await incassation.list_requests(db, state=state, crew_id=crew_id, limit=limit)
    return [build_incassation_response(t) for t in tickets]


@router.post("/{request_id}/confirm", response_model=IncassationConfirmed)
async def confirm_incassation(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.RESOLVE_INCASSATION)
    ticket, new_debt = await incassation.confirm(db, request_id, actor.id)
    return IncassationConfirmed(
        request_id=ticket.reference,
        crew_id=ticket.crew_id,
        amount=ticket.amount,
        new_debt=new_debt,
    )


@router.post("/{request_id}/reject", response_model=IncassationOut)
async def reject_incassation(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.RESOLVE_INCASSATION)
    ticket = await incassation.reject(db, request_id, actor.id)
    return build_incassation_response(ticket)
