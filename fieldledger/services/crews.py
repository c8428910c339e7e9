import logging
from decimal import Decimal
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from fieldledger.db.session import atomic
from fieldledger.models.crew import Crew
from fieldledger.models.account import Account
from fieldledger.core.enums import AccountKind, AuditAction
from fieldledger.core.exceptions import ValidationError, ConflictError, NotFoundError, check_not_found
from fieldledger.core.audit_log import log_audit

logger = logging.getLogger(__name__)


async def register_crew(
    db: AsyncSession,
    name: str,
    lead_actor_id: int,
    profit_share: Decimal,
    actor_id: Optional[int] = None,
) -> Tuple[Crew, Account]:
    """Create a crew together with the virtual account that tracks its debt."""
    profit_share = Decimal(str(profit_share))
    if not name or not name.strip():
        raise ValidationError("Crew name is required")
    if profit_share < 0 or profit_share > 100:
        raise ValidationError("Profit share must be between 0 and 100")

    res = await db.execute(select(Crew).where(Crew.name == name.strip()))
    if res.scalars().first():
        raise ConflictError(f"Crew '{name}' already exists")

    async with atomic(db):
        crew = Crew(
            name=name.strip(),
            lead_actor_id=int(lead_actor_id),
            profit_share=profit_share,
            active=True,
        )
        db.add(crew)
        await db.flush()

        account = Account(
            name=f"Crew: {crew.name}",
            kind=AccountKind.CREW_VIRTUAL,
            crew_id=crew.id,
            balance=Decimal("0"),
        )
        db.add(account)
        log_audit(db, actor_id, AuditAction.REGISTER_CREW, {
            "name": crew.name, "lead_actor_id": crew.lead_actor_id, "profit_share": profit_share,
        })

    await db.refresh(crew)
    await db.refresh(account)
    logger.info(f"Registered crew {crew.id} '{crew.name}' with account {account.id}")
    return crew, account


async def get_crew(db: AsyncSession, crew_id: int) -> Crew:
    res = await db.execute(select(Crew).where(Crew.id == crew_id))
    crew = res.scalars().first()
    check_not_found(crew, "Crew", crew_id)
    return crew


async def get_active_crew(db: AsyncSession, crew_id: int) -> Crew:
    crew = await get_crew(db, crew_id)
    if not crew.active:
        raise NotFoundError(f"Active crew with id {crew_id} not found", crew_id)
    return crew


async def get_crew_account(db: AsyncSession, crew_id: int) -> Account:
    res = await db.execute(
        select(Account).where(
            Account.crew_id == crew_id,
            Account.kind == AccountKind.CREW_VIRTUAL,
        )
    )
    account = res.scalars().first()
    check_not_found(account, "Virtual account for crew", crew_id)
    return account


async def list_crews(db: AsyncSession, active_only: bool = False) -> List[Crew]:
    q = select(Crew).order_by(Crew.id)
    if active_only:
        q = q.where(Crew.active.is_(True))
    res = await db.execute(q)
    return list(res.scalars().all())


async def set_crew_active(db: AsyncSession, crew_id: int, active: bool, actor_id: Optional[int] = None) -> Crew:
    crew = await get_crew(db, crew_id)
    async with atomic(db):
        crew.active = bool(active)
        db.add(crew)
        log_audit(db, actor_id, AuditAction.UPDATE_CREW, {"crew_id": crew_id, "active": active})
    await db.refresh(crew)
    logger.info(f"Crew {crew_id} active={crew.active}")
    return crew
