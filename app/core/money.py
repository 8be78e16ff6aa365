from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from app.core.errors import ValidationError

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Decimal rounded to two places; accepts int, float, str or Decimal."""
    if value is None:
        return Decimal("0.00")
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value}")
    return d.quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value) -> str:
    return f"{to_money(value):.2f}"
