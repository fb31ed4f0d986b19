import re
import secrets
import string
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENTS = Decimal("0.01")
MAX_MONEY = Decimal("9999999999999999.99")
CODE_ALPHABET = string.ascii_uppercase + string.digits


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def validate_phone(phone):
    return re.match(r'^\+?\d{10,15}$', phone or "") is not None


def mask_phone(phone: str) -> str:
    if not phone or len(phone) < 4:
        return phone
    return f"{'*' * (len(phone) - 4)}{phone[-4:]}"


def to_money(value, field_name="amount") -> Decimal:
    """Convert user input into a 2-place Decimal, raising ValueError on junk."""
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field_name} is required")
    try:
        amount = Decimal(str(value))
        if not amount.is_finite():
            raise ValueError(f"{field_name} must be a number")
        amount = amount.quantize(CENTS, ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f"{field_name} must be a number")
    # Numeric(18, 2) columns
    if abs(amount) > MAX_MONEY:
        raise ValueError(f"{field_name} is too large")
    return amount


def format_cop(amount) -> str:
    """Format an amount the way the dashboard shows it: $ 20.000 (COP, no decimals)."""
    value = Decimal(str(amount or 0)).quantize(Decimal("1"), ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    grouped = f"{abs(int(value)):,}".replace(",", ".")
    return f"{sign}$ {grouped}"


def generate_code(length=6, exists=None):
    """Random upper-case code; `exists` is a predicate used to avoid collisions."""
    for _ in range(10):
        code = ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))
        if exists is None or not exists(code):
            return code
    # fallback
    return ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length + 2))


def money_float(value) -> float:
    return float(value) if value is not None else 0.0
