from typing import Optional
from fieldledger.models.order import Order
from fieldledger.models.expense import Expense
from fieldledger.models.account import Account, Transaction
from fieldledger.models.crew import Crew
from fieldledger.models.incassation import IncassationRequest
from fieldledger.schemas.order import OrderOut, ExpenseOut
from fieldledger.schemas.ledger import AccountOut, TransactionOut
from fieldledger.schemas.crew import CrewOut
from fieldledger.schemas.incassation import IncassationOut


def build_order_response(order: Order) -> OrderOut:
    return OrderOut(
        id=order.id,
        status=order.status,
        crew_id=order.crew_id,
        client_name=order.client_name,
        client_phone=order.client_phone,
        address=order.address,
        final_price=order.final_price,
        total_expenses=order.total_expenses,
        net_profit=order.net_profit,
        created_by=order.created_by,
        settled_at=order.settled_at,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def build_expense_response(expense: Expense) -> ExpenseOut:
    return ExpenseOut(
        id=expense.id,
        order_id=expense.order_id,
        amount=expense.amount,
        category=expense.category,
        comment=expense.comment,
        actor_id=expense.actor_id,
        created_at=expense.created_at,
    )


def build_account_response(account: Account) -> AccountOut:
    return AccountOut(
        id=account.id,
        name=account.name,
        kind=account.kind,
        crew_id=account.crew_id,
        balance=account.balance,
    )


def build_transaction_response(txn: Transaction) -> TransactionOut:
    return TransactionOut(
        id=txn.id,
        account_id=txn.account_id,
        actor_id=txn.actor_id,
        amount=txn.amount,
        direction=txn.direction,
        category=txn.category,
        order_id=txn.order_id,
        reference=txn.reference,
        comment=txn.comment,
        created_at=txn.created_at,
    )


def build_crew_response(crew: Crew, account_id: Optional[int] = None) -> CrewOut:
    return CrewOut(
        id=crew.id,
        name=crew.name,
        lead_actor_id=crew.lead_actor_id,
        profit_share=crew.profit_share,
        active=crew.active,
        account_id=account_id,
        created_at=crew.created_at,
    )


def build_incassation_response(request: IncassationRequest) -> IncassationOut:
    return IncassationOut(
        request_id=request.reference,
        crew_id=request.crew_id,
        amount=request.amount,
        state=request.state,
        debt_snapshot=request.debt_snapshot,
        requested_by=request.requested_by,
        resolved_by=request.resolved_by,
        requested_at=request.created_at,
        resolved_at=request.resolved_at,
    )


def build_order_response_list(orders: list) -> list:
    return [build_order_response(order) for order in orders]


def build_account_response_list(accounts: list) -> list:
    return [build_account_response(account) for account in accounts]


def build_transaction_response_list(transactions: list) -> list:
    return [build_transaction_response(txn) for txn in transactions]
