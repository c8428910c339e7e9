"""Domain error taxonomy shared by the service layer and the HTTP surface."""
from typing import Optional


class LedgerError(Exception):
    """Base class for every error the services raise on purpose."""

    code = "ledger_error"

    def __init__(self, message: str, resource_id: Optional[object] = None):
        super().__init__(message)
        self.message = message
        self.resource_id = resource_id


class ValidationError(LedgerError):
    code = "validation"


class NotFoundError(LedgerError):
    code = "not_found"


class AuthorizationError(LedgerError):
    code = "authorization"


class PersistenceError(LedgerError):
    code = "persistence"


class ConflictError(LedgerError):
    code = "conflict"


class AlreadyClaimedError(ConflictError):
    code = "already_claimed"


class OrderLockedError(ConflictError):
    code = "order_locked"


class AlreadyFinalizedError(OrderLockedError):
    code = "already_finalized"


class AlreadyResolvedError(ConflictError):
    code = "already_resolved"


class CrewMismatchError(ConflictError):
    code = "crew_mismatch"


def check_not_found(item, resource_name: str = "Resource", resource_id: Optional[object] = None) -> None:

    if not item:
        if resource_id is not None:
            raise NotFoundError(f"{resource_name} with id {resource_id} not found", resource_id)
        raise NotFoundError(f"{resource_name} not found")
