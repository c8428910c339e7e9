"""Single authorization table for every role-gated operation.

Two tables live here: which role may perform which action, and which status
edges each role may request through ``transition``. Route handlers and the
lifecycle service both read from these and nothing else.
"""
from enum import Enum
from typing import FrozenSet, Tuple, Dict

from fieldledger.core.enums import UserRole, OrderStatus
from fieldledger.core.exceptions import AuthorizationError


class Action(str, Enum):
    CREATE_ORDER = "create_order"
    VIEW_ORDERS = "view_orders"
    CLAIM_ORDER = "claim_order"
    REFUSE_ORDER = "refuse_order"
    TRANSFER_ORDER = "transfer_order"
    ASSIGN_ORDER = "assign_order"
    CHANGE_STATUS = "change_status"
    ADD_EXPENSE = "add_expense"
    SET_FINAL_PRICE = "set_final_price"
    FINALIZE_ORDER = "finalize_order"
    VIEW_BALANCES = "view_balances"
    VIEW_DEBT = "view_debt"
    POST_TRANSACTION = "post_transaction"
    TRANSFER_FUNDS = "transfer_funds"
    OPEN_ACCOUNT = "open_account"
    REQUEST_INCASSATION = "request_incassation"
    RESOLVE_INCASSATION = "resolve_incassation"
    MANAGE_CREWS = "manage_crews"
    VIEW_REPORTS = "view_reports"

    def __str__(self):
        return self.value


_STAFF = frozenset({UserRole.OWNER, UserRole.ADMIN})
_OFFICE = frozenset({UserRole.OWNER, UserRole.ADMIN, UserRole.MANAGER})
_EVERYONE = frozenset(UserRole)

ACTION_POLICY: Dict[Action, FrozenSet[UserRole]] = {
    Action.CREATE_ORDER: _OFFICE,
    Action.VIEW_ORDERS: _EVERYONE,
    Action.CLAIM_ORDER: frozenset({UserRole.CREW, UserRole.MANAGER}),
    Action.REFUSE_ORDER: frozenset({UserRole.CREW, UserRole.MANAGER, UserRole.ADMIN, UserRole.OWNER}),
    Action.TRANSFER_ORDER: _OFFICE,
    Action.ASSIGN_ORDER: _STAFF,
    Action.CHANGE_STATUS: _EVERYONE,
    Action.ADD_EXPENSE: _EVERYONE,
    Action.SET_FINAL_PRICE: _STAFF,
    Action.FINALIZE_ORDER: _STAFF,
    Action.VIEW_BALANCES: _STAFF,
    Action.VIEW_DEBT: _EVERYONE,
    Action.POST_TRANSACTION: _STAFF,
    Action.TRANSFER_FUNDS: _STAFF,
    Action.OPEN_ACCOUNT: _STAFF,
    Action.REQUEST_INCASSATION: frozenset({UserRole.CREW, UserRole.MANAGER}),
    Action.RESOLVE_INCASSATION: _STAFF,
    Action.MANAGE_CREWS: _STAFF,
    Action.VIEW_REPORTS: _STAFF,
}

_ACTIVE_CYCLE = frozenset({
    (OrderStatus.PROCESSING, OrderStatus.WORK),
    (OrderStatus.WORK, OrderStatus.PROCESSING),
})
_CANCEL = frozenset({
    (OrderStatus.NEW, OrderStatus.CANCELED),
    (OrderStatus.PROCESSING, OrderStatus.CANCELED),
    (OrderStatus.WORK, OrderStatus.CANCELED),
})

# DONE is absent on purpose: only settlement reaches it
STATUS_EDGES: Dict[UserRole, FrozenSet[Tuple[OrderStatus, OrderStatus]]] = {
    UserRole.CREW: _ACTIVE_CYCLE,
    UserRole.MANAGER: _ACTIVE_CYCLE | _CANCEL,
    UserRole.ADMIN: _ACTIVE_CYCLE | _CANCEL,
    UserRole.OWNER: _ACTIVE_CYCLE | _CANCEL,
}


def is_allowed(role: UserRole, action: Action) -> bool:
    return UserRole(role) in ACTION_POLICY.get(action, frozenset())


def authorize(role: UserRole, action: Action) -> None:
    if not is_allowed(role, action):
        raise AuthorizationError(f"Role '{role}' may not {action.value.replace('_', ' ')}")


def can_transition(role: UserRole, current: OrderStatus, target: OrderStatus) -> bool:
    return (current, target) in STATUS_EDGES.get(UserRole(role), frozenset())


def authorize_transition(role: UserRole, current: OrderStatus, target: OrderStatus) -> None:
    if not can_transition(role, current, target):
        hint = " (use finalize)" if target == OrderStatus.DONE else ""
        raise AuthorizationError(f"Role '{role}' may not move an order from {current} to {target}{hint}")
