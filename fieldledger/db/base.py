# Import every model so Base.metadata knows all tables before create_all
from fieldledger.models.base import Base  # noqa: F401
from fieldledger.models.crew import Crew  # noqa: F401
from fieldledger.models.order import Order  # noqa: F401
from fieldledger.models.expense import Expense  # noqa: F401
from fieldledger.models.account import Account, Transaction  # noqa: F401
from fieldledger.models.incassation import IncassationRequest  # noqa: F401
from fieldledger.models.audit import Audit  # noqa: F401
