from decimal import Decimal, ROUND_HALF_UP

CENTS = Decimal("0.01")
UNIT = Decimal("1")


def to_money(value) -> Decimal:
    """Normalize a driver value (Decimal, float, int or None) to two decimal places."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def round_unit(value: Decimal) -> Decimal:
    """Round half away from zero to a whole currency unit."""
    return Decimal(value).quantize(UNIT, rounding=ROUND_HALF_UP)
