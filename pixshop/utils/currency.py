"""Price formatting for buyer-facing texts."""
from decimal import Decimal, ROUND_HALF_UP

_SYMBOLS = {"BRL": "R$", "USD": "US$"}


def to_minor_units(amount: Decimal | float | str) -> int:
    """29.90 -> 2990 (provider amounts are integer cents)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value: int | str) -> Decimal:
    return (Decimal(str(value)) / 100).quantize(Decimal("0.01"))


def format_price(amount: Decimal | float | str, currency: str = "BRL") -> str:
    """Return a string like «R$ 29,90» (Brazilian separators)."""
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    integer, _, cents = f"{value:,.2f}".partition(".")
    integer = integer.replace(",", ".")
    return f"{_SYMBOLS.get(currency, currency)} {integer},{cents}"
