"""Currency normalization against a fixed USD rate table.

Amounts are Decimals rounded to three places, half away from zero. Unknown
codes use a multiplier of 1.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Mapping, Optional

CANONICAL_CURRENCY = "USD"

# Value of one unit of the currency in USD.
EXCHANGE_RATES: Dict[str, Decimal] = {
    "USD": Decimal("1"),
    "EUR": Decimal("1.08"),
    "GBP": Decimal("1.27"),
    "JPY": Decimal("0.0067"),
    "INR": Decimal("0.012"),
    "CAD": Decimal("0.74"),
    "AUD": Decimal("0.66"),
    "CNY": Decimal("0.14"),
}

_THREE_PLACES = Decimal("0.001")


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round3(value: Any) -> Decimal:
    """Round to 3 decimal places, half away from zero."""
    return _to_decimal(value).quantize(_THREE_PLACES, rounding=ROUND_HALF_UP)


def build_rate_table(overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Decimal]:
    """Merge configured rate overrides into the built-in table."""
    rates = dict(EXCHANGE_RATES)
    for code, rate in (overrides or {}).items():
        rates[str(code).upper()] = _to_decimal(rate)
    return rates


def get_exchange_rate(code: Optional[str], rates: Optional[Mapping[str, Decimal]] = None) -> Decimal:
    table = rates or EXCHANGE_RATES
    rate = table.get((code or "").upper())
    return rate if rate else Decimal("1")


def to_canonical(amount: Any, from_code: Optional[str], rates: Optional[Mapping[str, Decimal]] = None) -> Decimal:
    """Convert an amount in `from_code` to USD."""
    return round3(_to_decimal(amount) * get_exchange_rate(from_code, rates))


def from_canonical(amount: Any, to_code: Optional[str], rates: Optional[Mapping[str, Decimal]] = None) -> Decimal:
    """Convert a USD amount to `to_code`."""
    return round3(_to_decimal(amount) / get_exchange_rate(to_code, rates))


def convert(
    amount: Any,
    from_code: Optional[str],
    to_code: Optional[str],
    rates: Optional[Mapping[str, Decimal]] = None,
) -> Decimal:
    """Convert between two currencies through USD."""
    if (from_code or "").upper() == (to_code or "").upper():
        return round3(amount)
    return from_canonical(to_canonical(amount, from_code, rates), to_code, rates)
