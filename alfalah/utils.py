import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .exceptions import ValidationError

TWO_PLACES = Decimal("0.01")


def format_amount(amount) -> str:
    """Fix ``amount`` to two decimals, rounding half up (``100.005`` -> ``"100.01"``).

    Parsed from its string form so floats never leak binary rounding into the
    result.
    """
    if amount is None or isinstance(amount, bool) or str(amount).strip() == "":
        raise ValidationError("Invalid amount")
    try:
        value = Decimal(str(amount).strip())
        if not value.is_finite():
            raise ValidationError("Invalid amount")
        # quantize raises InvalidOperation past the context precision (e.g. "1e30")
        value = value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValidationError("Invalid amount")
    if value <= 0:
        raise ValidationError("Invalid amount")
    return format(value, "f")


def generate_order_id(prefix="ORD") -> str:
    # e.g. ORD-1718000000000
    return f"{prefix}-{int(time.time() * 1000)}"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def first_present(data: dict, *keys):
    """Return the first non-empty value among ``keys`` (gateways are loose about casing)."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None
