from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

ZERO = Decimal("0")
ONE = Decimal("1")
CENT = Decimal("0.01")
RATE = Decimal("0.0001")

# ISO 4217 minor-unit exponents that differ from the usual 2.
ZERO_DECIMAL_CURRENCIES = {
    "BIF", "CLP", "DJF", "GNF", "ISK", "JPY", "KMF", "KRW", "MGA", "PYG",
    "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
}
THREE_DECIMAL_CURRENCIES = {"BHD", "IQD", "JOD", "KWD", "LYD", "OMR", "TND"}


def to_decimal(v: Any) -> Decimal:
    """Lenient numeric coercion: None, blanks, NaN and garbage become 0."""
    if v is None or isinstance(v, bool):
        return ZERO
    if isinstance(v, Decimal):
        return v if v.is_finite() else ZERO
    try:
        d = Decimal(str(v).strip())
    except (InvalidOperation, ValueError):
        return ZERO
    return d if d.is_finite() else ZERO


def minor_unit_exponent(currency: str | None) -> int:
    code = (currency or "").upper()
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def from_minor_units(amount: Any, currency: str | None) -> Decimal:
    """Integer minor units (cents, fils, yen) -> Decimal major units."""
    return to_decimal(amount).scaleb(-minor_unit_exponent(currency))


def quantize_money(d: Decimal) -> Decimal:
    return d.quantize(CENT, rounding=ROUND_HALF_UP)


def quantize_rate(d: Decimal) -> Decimal:
    return d.quantize(RATE, rounding=ROUND_HALF_UP)


def safe_ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    """numerator / denominator, or exactly 0 when the denominator is 0."""
    if denominator == 0:
        return ZERO
    return numerator / denominator
