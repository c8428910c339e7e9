from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List

from fieldledger.db.session import get_db
from fieldledger.schemas.ledger import (
    AccountCreate, AccountOut, TransactionCreate, TransactionOut,
    FundsTransfer, FundsTransferOut, CrewDebtOut, BalanceMismatch, OrderStats,
)
from fieldledger.core.enums import UserRole
from fieldledger.core.policy import Action, authorize
from fieldledger.core.rate_limit import rate_limited
from fieldledger.core.security import Actor
from fieldledger.core.response_builders import (
    build_account_response, build_account_response_list,
    build_transaction_response, build_transaction_response_list,
)
from fieldledger.services import ledger, reports
from fieldledger.services.crews import get_crew

router = APIRouter(prefix="/finance", tags=["finance"])


@router.get("/accounts", response_model=List[AccountOut])
async def get_account_balances(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.VIEW_BALANCES)
    accounts = await ledger.balances_snapshot(db)
    return build_account_response_list(accounts)


@router.post("/accounts", response_model=AccountOut)
async def open_account(
    payload: AccountCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.OPEN_ACCOUNT)
    account = await ledger.open_account(db, payload.name, payload.kind, actor_id=actor.id)
    return build_account_response(account)


@router.get("/transactions", response_model=List[TransactionOut])
async def list_transactions(
    account_id: Optional[int] = Query(None),
    order_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.VIEW_BALANCES)
    txns = await ledger.list_transactions(db, account_id=account_id, order_id=order_id, limit=limit)
    return build_transaction_response_list(txns)


@router.post("/transactions", response_model=TransactionOut)
async def post_transaction(
    payload: TransactionCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.POST_TRANSACTION)
    txn = await ledger.post(
        db,
        payload.account_id,
        payload.amount,
        payload.direction,
        payload.category,
        actor.id,
        order_id=payload.order_id,
        comment=payload.comment,
    )
    return build_transaction_response(txn)


@router.post("/transfers", response_model=FundsTransferOut)
async def transfer_funds(
    payload: FundsTransfer,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.TRANSFER_FUNDS)
    reference, debit, credit = await ledger.transfer(
        db, payload.from_account_id, payload.to_account_id, payload.amount, actor.id, payload.comment
    )
    return FundsTransferOut(
        reference=reference,
        debit=build_transaction_response(debit),
        credit=build_transaction_response(credit),
    )


@router.get("/crews/{crew_id}/debt", response_model=CrewDebtOut)
async def get_crew_debt(
    crew_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.VIEW_DEBT)
    if actor.role == UserRole.CREW and actor.crew_id != crew_id:
        raise HTTPException(status_code=403, detail="Crews can only see their own debt")
    crew = await get_crew(db, crew_id)
    debt = await ledger.crew_debt(db, crew.id)
    return CrewDebtOut(crew_id=crew.id, debt=debt)


@router.get("/reconcile", response_model=List[BalanceMismatch])
async def reconcile(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.VIEW_REPORTS)
    return await ledger.reconcile(db)


@router.get("/stats", response_model=OrderStats)
async def order_stats(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(rate_limited),
):
    authorize(actor.role, Action.VIEW_REPORTS)
    return await reports.order_stats(db)
