from enum import Enum


class UserRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    CREW = "crew"

    def __str__(self):
        return self.value


class OrderStatus(str, Enum):
    NEW = "new"
    PROCESSING = "processing"
    WORK = "work"
    DONE = "done"
    CANCELED = "canceled"

    def __str__(self):
        return self.value


LOCKED_STATUSES = frozenset({OrderStatus.DONE, OrderStatus.CANCELED})
UNLOCKED_STATUSES = frozenset(set(OrderStatus) - LOCKED_STATUSES)
IN_PROGRESS_STATUSES = frozenset({OrderStatus.PROCESSING, OrderStatus.WORK})


class AccountKind(str, Enum):
    COMPANY_CASH = "company_cash"
    BANK = "bank"
    SAFE = "safe"
    CREW_VIRTUAL = "crew_virtual"

    def __str__(self):
        return self.value


class Direction(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"

    def __str__(self):
        return self.value


class TransactionCategory(str, Enum):
    EARNINGS = "earnings"
    WITHHELD = "withheld"
    INCASSATION = "incassation"
    TRANSFER = "transfer"
    OTHER = "other"

    def __str__(self):
        return self.value


# Posted only by order settlement, one of each per order
SETTLEMENT_CATEGORIES = frozenset({TransactionCategory.EARNINGS, TransactionCategory.WITHHELD})


class IncassationState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"

    def __str__(self):
        return self.value


class AuditAction(str, Enum):
    CREATE_ORDER = "create_order"
    CLAIM_ORDER = "claim_order"
    CHANGE_STATUS = "change_status"
    REFUSE_ORDER = "refuse_order"
    TRANSFER_ORDER = "transfer_order"
    ASSIGN_ORDER = "assign_order"
    ADD_EXPENSE = "add_expense"
    SET_FINAL_PRICE = "set_final_price"
    FINALIZE_ORDER = "finalize_order"
    POST_TRANSACTION = "post_transaction"
    TRANSFER_FUNDS = "transfer_funds"
    OPEN_ACCOUNT = "open_account"
    REQUEST_INCASSATION = "request_incassation"
    CONFIRM_INCASSATION = "confirm_incassation"
    REJECT_INCASSATION = "reject_incassation"
    REGISTER_CREW = "register_crew"
    UPDATE_CREW = "update_crew"

    def __str__(self):
        return self.value
