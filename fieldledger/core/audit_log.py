"""Audit trail for financial and lifecycle mutations.

Audit rows are added to the caller's session and committed with the mutation
they describe, so an operation and its audit entry land or vanish together.
"""
import logging
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from fieldledger.models.audit import Audit
from fieldledger.core.enums import AuditAction
from fieldledger.core.metrics import audit_logs_created
from fieldledger.utils.hashing import payload_hash

logger = logging.getLogger(__name__)


def log_audit(
    db: AsyncSession,
    actor_id: Optional[int],
    action: AuditAction,
    payload: Optional[dict] = None
) -> Audit:

    if payload is None:
        payload = {}

    if hasattr(payload, "model_dump"):
        payload_dict = payload.model_dump(exclude_unset=True)
    elif isinstance(payload, dict):
        payload_dict = payload
    else:
        payload_dict = {}

    audit_record = Audit(
        actor_id=int(actor_id) if actor_id is not None else None,
        action=str(action),
        payload_hash=payload_hash(payload_dict),
    )
    db.add(audit_record)
    audit_logs_created.labels(action=str(action)).inc()
    logger.debug(f"Audit {action} by actor {actor_id}")
    return audit_record
