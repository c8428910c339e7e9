"""Cash handover from a crew to the company.

A crew declares a handover with ``request``; the debt only drops once the
receiving side calls ``confirm``. Each request carries a reference minted at
request time and resolves exactly once, so a replayed confirm cannot credit
the same cash twice.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from fieldledger.db.session import atomic
from fieldledger.models.incassation import IncassationRequest
from fieldledger.core.config import settings
from fieldledger.core.enums import IncassationState, Direction, TransactionCategory, AuditAction
from fieldledger.core.exceptions import ValidationError, AlreadyResolvedError, check_not_found
from fieldledger.core.audit_log import log_audit
from fieldledger.core.metrics import incassations, conflicts
from fieldledger.services import notifier
from fieldledger.services.crews import get_crew, get_crew_account
from fieldledger.services.ledger import apply_entry, crew_debt, get_main_cash_account

logger = logging.getLogger(__name__)


async def get_request(db: AsyncSession, request_id: str) -> IncassationRequest:
    res = await db.execute(
        select(IncassationRequest).where(IncassationRequest.reference == str(request_id))
    )
    request = res.scalars().first()
    check_not_found(request, "Incassation request", request_id)
    return request


async def list_requests(
    db: AsyncSession,
    state: Optional[IncassationState] = None,
    crew_id: Optional[int] = None,
    limit: int = 50,
) -> List[IncassationRequest]:
    q = select(IncassationRequest)
    if state is not None:
        q = q.where(IncassationRequest.state == IncassationState(state))
    if crew_id is not None:
        q = q.where(IncassationRequest.crew_id == crew_id)
    q = q.order_by(IncassationRequest.id.desc()).limit(limit)
    res = await db.execute(q)
    return list(res.scalars().all())


async def request(
    db: AsyncSession,
    crew_id: int,
    amount: Decimal,
    requester_id: Optional[int] = None,
) -> IncassationRequest:
    """Record the intent to hand over cash. No ledger entry is posted."""
    if amount is None or Decimal(str(amount)) <= 0:
        raise ValidationError("Incassation amount must be greater than zero")
    amount = Decimal(str(amount))

    crew = await get_crew(db, crew_id)
    debt = await crew_debt(db, crew.id)

    async with atomic(db):
        ticket = IncassationRequest(
            reference=str(uuid.uuid4()),
            crew_id=crew.id,
            amount=amount,
            state=IncassationState.PENDING,
            debt_snapshot=debt,
            requested_by=requester_id if requester_id is not None else crew.lead_actor_id,
        )
        db.add(ticket)
        log_audit(db, requester_id, AuditAction.REQUEST_INCASSATION, {
            "reference": ticket.reference, "crew_id": crew.id, "amount": amount,
        })

    await db.refresh(ticket)
    incassations.labels(outcome="requested").inc()
    logger.info(f"Crew {crew.id} requested incassation {ticket.reference} of {amount} (debt {debt})")

    notifier.dispatch(settings.OWNER_ACTOR_ID, "incassation_requested", {
        "request_id": ticket.reference,
        "crew_id": crew.id,
        "crew_name": crew.name,
        "amount": str(amount),
        "current_debt": str(debt),
    })
    return ticket


async def _resolve(
    db: AsyncSession,
    ticket: IncassationRequest,
    state: IncassationState,
    approver_id: Optional[int],
) -> None:
    res = await db.execute(
        update(IncassationRequest)
        .where(
            IncassationRequest.id == ticket.id,
            IncassationRequest.state == IncassationState.PENDING,
        )
        .values(state=state, resolved_by=approver_id, resolved_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        conflicts.labels(operation="incassation").inc()
        raise AlreadyResolvedError(f"Incassation request {ticket.reference} is already resolved", ticket.reference)


def _ensure_pending(ticket: IncassationRequest) -> None:
    if ticket.state != IncassationState.PENDING:
        conflicts.labels(operation="incassation").inc()
        raise AlreadyResolvedError(
            f"Incassation request {ticket.reference} is already {ticket.state}", ticket.reference
        )


async def confirm(db: AsyncSession, request_id: str, approver_id: Optional[int]) -> Tuple[IncassationRequest, Decimal]:
    """Accept the handed-over cash; returns the request and the crew's new debt."""
    ticket = await get_request(db, request_id)
    _ensure_pending(ticket)

    account = await get_crew_account(db, ticket.crew_id)
    cash = await get_main_cash_account(db) if settings.MIRROR_INCASSATION_TO_CASH else None

    async with atomic(db):
        await _resolve(db, ticket, IncassationState.CONFIRMED, approver_id)
        await apply_entry(
            db, account.id, ticket.amount, Direction.INCOME, TransactionCategory.INCASSATION,
            approver_id, comment="Cash handed over by crew", reference=ticket.reference,
        )
        if cash is not None:
            await apply_entry(
                db, cash.id, ticket.amount, Direction.INCOME, TransactionCategory.INCASSATION,
                approver_id, comment=f"Incassation from crew {ticket.crew_id}", reference=ticket.reference,
            )
        log_audit(db, approver_id, AuditAction.CONFIRM_INCASSATION, {
            "reference": ticket.reference, "crew_id": ticket.crew_id, "amount": ticket.amount,
        })

    await db.refresh(ticket)
    new_debt = await crew_debt(db, ticket.crew_id)
    incassations.labels(outcome="confirmed").inc()
    logger.info(f"Incassation {ticket.reference} confirmed by {approver_id}, crew {ticket.crew_id} debt {new_debt}")

    notifier.dispatch(ticket.requested_by, "incassation_confirmed", {
        "request_id": ticket.reference,
        "amount": str(ticket.amount),
        "new_debt": str(new_debt),
    })
    return ticket, new_debt


async def reject(db: AsyncSession, request_id: str, approver_id: Optional[int]) -> IncassationRequest:
    ticket = await get_request(db, request_id)
    _ensure_pending(ticket)

    async with atomic(db):
        await _resolve(db, ticket, IncassationState.REJECTED, approver_id)
        log_audit(db, approver_id, AuditAction.REJECT_INCASSATION, {
            "reference": ticket.reference, "crew_id": ticket.crew_id, "amount": ticket.amount,
        })

    await db.refresh(ticket)
    incassations.labels(outcome="rejected").inc()
    logger.info(f"Incassation {ticket.reference} rejected by {approver_id}")

    notifier.dispatch(ticket.requested_by, "incassation_rejected", {
        "request_id": ticket.reference,
        "amount": str(ticket.amount),
    })
    return ticket
