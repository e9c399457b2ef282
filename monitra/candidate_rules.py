"""Ordered classification rules for price candidates.

Each rule is a plain predicate over a `CandidateContext` so it can be tested
on its own. `classify_candidate` runs them in order and sets the matching
tag on the candidate; any tag rejects the candidate.
"""

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Optional, Tuple

from monitra.records import PriceCandidate

_RATING_RE = re.compile(r"\b(ratings?|reviews?|stars?|rated|votes?)\b", re.IGNORECASE)

_DISCOUNT_RE = re.compile(r"\b(off|save|saving|savings|discount|discounted)\b", re.IGNORECASE)
_SAVE_AMOUNT_RE = re.compile(r"save\s*(?:US\$|Rs\.?|[₹$€£¥])\s*\d", re.IGNORECASE)

_FEE_RE = re.compile(
    r"\b(shipping|delivery|taxe?s?|vat|gst|warranty|protect|protection|insurance|installation)\b",
    re.IGNORECASE,
)
# Weaker vocabulary that only marks a fee when the amount is small.
_FEE_CONTEXT_RE = re.compile(
    r"\b(fee|fees|charge|charges|handling|convenience|packaging|surcharge)\b", re.IGNORECASE
)
_ADDEND_RE = re.compile(r"\+\s*(?:US\$|Rs\.?|[₹$€£¥])\s*\d")
# "Inclusive of all taxes" accompanies the real price on many storefronts.
_TAX_INCLUDED_RE = re.compile(
    r"\b(incl(?:usive|\.)?\s+(?:of\s+)?(?:all\s+)?taxes|tax(?:es)?\s+included|incl\.?\s+vat)\b",
    re.IGNORECASE,
)
FEE_SMALL_AMOUNT_LIMIT = Decimal("1000")

_STRIKE_TAGS = {"s", "strike", "del"}
_STRIKE_CLASS_RE = re.compile(
    r"(old|original|mrp|list|was|before|compare|regular|strike|crossed)[-_]?price"
    r"|price[-_]?(old|was|original|before|list|mrp|strike)"
    r"|\bmrp\b|line-through|strikethrough|crossed",
    re.IGNORECASE,
)
STRIKE_ANCESTOR_DEPTH = 3


@dataclass
class CandidateContext:
    """Text, element and parsed amount of one price candidate."""

    text: str
    element: Any = None
    amount: Optional[Decimal] = None


def looks_like_rating(text: Optional[str]) -> bool:
    return bool(text) and bool(_RATING_RE.search(text))


def looks_like_discount(text: Optional[str]) -> bool:
    if not text:
        return False
    return bool(_DISCOUNT_RE.search(text) or _SAVE_AMOUNT_RE.search(text))


def looks_like_fee(text: Optional[str], amount: Optional[Decimal] = None) -> bool:
    if not text:
        return False
    if _ADDEND_RE.search(text):
        return True
    cleaned = _TAX_INCLUDED_RE.sub(" ", text)
    if _FEE_RE.search(cleaned):
        return True
    if amount is not None and amount < FEE_SMALL_AMOUNT_LIMIT and _FEE_CONTEXT_RE.search(cleaned):
        return True
    return False


def _element_is_struck(element: Any) -> bool:
    name = (getattr(element, "name", None) or "").lower()
    if name in _STRIKE_TAGS:
        return True
    get = getattr(element, "get", None)
    if get is None:
        return False
    style = (get("style") or "").replace(" ", "").lower()
    if "line-through" in style:
        return True
    classes = get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return any(_STRIKE_CLASS_RE.search(cls) for cls in classes)


def _wraps_struck_text(element: Any) -> bool:
    # <span><del>₹499</del></span>: all of the wrapper's text is struck.
    find_all = getattr(element, "find_all", None)
    if find_all is None:
        return False
    text = element.get_text(" ", strip=True)
    return any(child.get_text(" ", strip=True) == text for child in find_all(sorted(_STRIKE_TAGS)))


def looks_struck_through(element: Any, depth: int = STRIKE_ANCESTOR_DEPTH) -> bool:
    """True if the element or one of its `depth` nearest ancestors is struck through."""
    if _wraps_struck_text(element):
        return True
    current = element
    for _ in range(depth + 1):
        if current is None or getattr(current, "name", None) in (None, "[document]"):
            return False
        if _element_is_struck(current):
            return True
        current = getattr(current, "parent", None)
    return False


def is_suspicious_price(price: Any, source_text: str = "") -> bool:
    """Rating-shaped values: rating vocabulary, or many decimals on a large number."""
    if looks_like_rating(source_text):
        return True
    if price is None:
        return False
    amount = price if isinstance(price, Decimal) else Decimal(str(price))
    if not amount.is_finite():
        return True
    exponent = amount.normalize().as_tuple().exponent
    decimal_places = -exponent if isinstance(exponent, int) and exponent < 0 else 0
    return decimal_places > 2 and amount > Decimal("10000")


@dataclass(frozen=True)
class CandidateRule:
    """A named predicate that sets one classification flag on a candidate."""

    name: str
    flag: str
    predicate: Callable[[CandidateContext], bool]


CANDIDATE_RULES: Tuple[CandidateRule, ...] = (
    CandidateRule("rating", "is_rating", lambda ctx: looks_like_rating(ctx.text)),
    CandidateRule("discount", "is_discount", lambda ctx: looks_like_discount(ctx.text)),
    CandidateRule("fee", "is_fee", lambda ctx: looks_like_fee(ctx.text, ctx.amount)),
    CandidateRule("strikethrough", "is_strikethrough", lambda ctx: looks_struck_through(ctx.element)),
)


def classify_candidate(context: CandidateContext, currency: Optional[str] = None) -> PriceCandidate:
    """Build a PriceCandidate and tag it with every rule that matches."""
    candidate = PriceCandidate(amount=context.amount, currency=currency, source_text=context.text)
    for rule in CANDIDATE_RULES:
        if rule.predicate(context):
            setattr(candidate, rule.flag, True)
    return candidate
