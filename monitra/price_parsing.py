"""Region-aware price parsing and currency detection."""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Tuple

MIN_VALID_PRICE = Decimal("1")
MAX_VALID_PRICE = Decimal("10000000")

# Digits with grouping/decimal separators; NBSP and narrow NBSP are used as
# thousands separators in several locales.
_NUMBER_RE = re.compile(r"\d[\d.,\u00a0\u202f]*")
_SPACE_SEPARATORS = ("\u00a0", "\u202f")

ISO_CURRENCY_CODES = (
    "USD", "EUR", "GBP", "JPY", "INR", "CAD", "AUD", "CNY", "SGD",
    "HKD", "CHF", "NZD", "MXN", "BRL", "ZAR", "KRW", "ARS",
)
_ISO_RE = re.compile(r"\b(" + "|".join(ISO_CURRENCY_CODES) + r")\b")

_DOLLAR_VARIANTS = (
    (re.compile(r"(?<![A-Za-z])US\$"), "USD"),
    (re.compile(r"(?<![A-Za-z])HK\$|Hong Kong", re.IGNORECASE), "HKD"),
    (re.compile(r"(?<![A-Za-z])NZ\$|New Zealand", re.IGNORECASE), "NZD"),
    (re.compile(r"(?<![A-Za-z])C\$|Canadian", re.IGNORECASE), "CAD"),
    (re.compile(r"(?<![A-Za-z])A\$|Australian", re.IGNORECASE), "AUD"),
    (re.compile(r"(?<![A-Za-z])S\$|Singapore", re.IGNORECASE), "SGD"),
)

_PHRASES = (
    (re.compile(r"\bRs\.?(?=\s*\d)|\brupees?\b", re.IGNORECASE), "INR"),
    (re.compile(r"\beuros?\b", re.IGNORECASE), "EUR"),
    (re.compile(r"\bsterling\b", re.IGNORECASE), "GBP"),
    (re.compile(r"\byen\b", re.IGNORECASE), "JPY"),
)

_SYMBOL_RE = re.compile(r"US\$|HK\$|NZ\$|C\$|A\$|S\$|Rs\.?(?=\s*\d)|₹|€|£|¥|元|\$")
CURRENCY_SYMBOL_CHARS = "₹€£¥$"

# A number written right after or right before a currency marker.
_MARKER = r"(?:US\$|HK\$|NZ\$|C\$|A\$|S\$|\bRs\.?|₹|€|£|¥|元|\$|\b(?:" + "|".join(ISO_CURRENCY_CODES) + r")\b)"
_NUMBER = r"(\d[\d.,\u00a0\u202f]*)"
_MARKED_NUMBER_RES = (
    re.compile(_MARKER + r"\s*" + _NUMBER),
    re.compile(_NUMBER + r"\s*" + _MARKER),
)


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (TypeError, ValueError, InvalidOperation):
        return None


def is_valid_price(price: Any) -> bool:
    """A usable price lies within [1, 10,000,000]."""
    amount = _to_decimal(price)
    if amount is None or not amount.is_finite():
        return False
    return MIN_VALID_PRICE <= amount <= MAX_VALID_PRICE


def _normalize_number(token: str) -> Optional[Decimal]:
    for space in _SPACE_SEPARATORS:
        token = token.replace(space, "")
    token = token.strip(".,")
    if not token:
        return None

    has_dot = "." in token
    has_comma = "," in token

    if has_dot and has_comma:
        # The right-most separator is the decimal mark.
        decimal_mark = "." if token.rfind(".") > token.rfind(",") else ","
        group_mark = "," if decimal_mark == "." else "."
        cleaned = token.replace(group_mark, "").replace(decimal_mark, ".")
    elif has_dot or has_comma:
        separator = "." if has_dot else ","
        head, _, tail = token.rpartition(separator)
        if len(tail) == 3:
            # 1,234 / 1,09,900 / 1.500
            cleaned = token.replace(separator, "")
        else:
            # 89,99 / 19.99
            cleaned = f"{head.replace(separator, '')}.{tail}"
    else:
        cleaned = token

    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def parse_price_amount(text: Optional[str]) -> Optional[Decimal]:
    """Parse the price number in `text`, disambiguating regional separators.

    A number next to a currency marker wins over an earlier bare number
    ("Pack of 2 ₹499" gives 499); otherwise the first number is used.
    Three digits after the final separator mean grouping, one or two mean a
    decimal part. Handles "₹1,09,900", "1,234.56", "89,99 €" and "1.234,56".
    """
    if not text:
        return None
    for pattern in _MARKED_NUMBER_RES:
        for match in pattern.finditer(text):
            amount = _normalize_number(match.group(1))
            if amount is not None:
                return amount
    for match in _NUMBER_RE.finditer(text):
        amount = _normalize_number(match.group())
        if amount is not None:
            return amount
    return None


def detect_currency(text: Optional[str]) -> Optional[str]:
    """Return the ISO code hinted by `text`, or None when nothing is found."""
    if not text:
        return None

    match = _ISO_RE.search(text)
    if match:
        return match.group(1)

    if "₹" in text:
        return "INR"
    if "€" in text:
        return "EUR"
    if "£" in text:
        return "GBP"
    if "元" in text:
        return "CNY"
    if "¥" in text:
        return "JPY"
    if "$" in text:
        for pattern, code in _DOLLAR_VARIANTS:
            if pattern.search(text):
                return code
        return "USD"

    for pattern, code in _PHRASES:
        if pattern.search(text):
            return code
    return None


def find_currency_symbol(text: Optional[str]) -> Optional[str]:
    """Return the first currency symbol (or "Rs.") appearing in `text`."""
    if not text:
        return None
    match = _SYMBOL_RE.search(text)
    return match.group(0) if match else None


def parse_price(text: Optional[str]) -> Tuple[Optional[Decimal], Optional[str]]:
    """Parse amount and currency from a single price text."""
    return parse_price_amount(text), detect_currency(text)
