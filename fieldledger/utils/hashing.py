import hashlib
import json
from decimal import Decimal
from enum import Enum
from fieldledger.utils.money import to_money


def _canonical(value):
    # Decimal("100") and Decimal("100.00") must hash the same
    if isinstance(value, Decimal):
        return str(to_money(value))
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def payload_hash(payload: dict) -> str:
    s = json.dumps(payload, sort_keys=True, default=_canonical)
    return hashlib.sha256(s.encode()).hexdigest()
