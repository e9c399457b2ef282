"""Typed records passed between the extraction tiers."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple


class LocatorStability(IntEnum):
    """Preference order for proposed locators (lower is better)."""

    SEMANTIC = 0
    STABLE_ID = 1
    STABLE_CLASS = 2
    STRUCTURAL = 3
    TEXT_PATTERN = 4
    VOLATILE = 5

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", " ")


@dataclass(frozen=True)
class LocatorPair:
    """Name and price locators learned for a domain."""

    name_locator: str
    price_locator: str

    def is_complete(self) -> bool:
        return bool((self.name_locator or "").strip() and (self.price_locator or "").strip())


@dataclass
class LocatorCandidate:
    """A proposed locator for a name or price element found by the page analyzer."""

    text: str
    locator: str
    stability: LocatorStability
    tag: str
    currency_symbol: Optional[str] = None
    currency: Optional[str] = None


@dataclass
class PageAnalysis:
    """Ranked locator candidates for a page plus the flags the fallback heuristics use."""

    name_candidates: List[LocatorCandidate] = field(default_factory=list)
    price_candidates: List[LocatorCandidate] = field(default_factory=list)
    title: str = ""
    has_semantic_attributes: bool = False
    has_data_attributes: bool = False
    has_currency_symbols: bool = False

    def to_summary(self, max_chars: int = 2500, max_candidates: int = 8) -> str:
        """Render the analysis as the compact text handed to the language model."""
        lines = ["HTML Structure Analysis for Product Page:", ""]

        lines.append("=== PRODUCT NAME CANDIDATES ===")
        if self.name_candidates:
            for idx, candidate in enumerate(self.name_candidates[:max_candidates], start=1):
                lines.append(f'{idx}. Selector: "{candidate.locator}" ({candidate.stability.label})')
                lines.append(f'   Text: "{candidate.text}"')
                lines.append(f"   Tag: <{candidate.tag}>")
                lines.append("")
        else:
            lines.append("No obvious name candidates found. Check h1, h2, or title elements.")
            lines.append("")

        lines.append("=== PRICE CANDIDATES ===")
        if self.price_candidates:
            for idx, candidate in enumerate(self.price_candidates[:max_candidates], start=1):
                lines.append(f'{idx}. Selector: "{candidate.locator}" ({candidate.stability.label})')
                lines.append(f'   Text: "{candidate.text}"')
                symbol = candidate.currency_symbol or "none"
                lines.append(f"   Currency: {candidate.currency or 'unknown'} (symbol: {symbol})")
                lines.append("")
        else:
            lines.append("No obvious price candidates found. Search for elements with currency symbols.")
            lines.append("")

        if self.title:
            lines.append(f"Page Title: {self.title}")

        return "\n".join(lines)[:max_chars]


@dataclass
class PriceCandidate:
    """A text fragment matched by a price locator, with its classification tags."""

    amount: Optional[Decimal]
    currency: Optional[str]
    source_text: str
    is_rating: bool = False
    is_discount: bool = False
    is_fee: bool = False
    is_strikethrough: bool = False

    @property
    def rejected(self) -> bool:
        return self.is_rating or self.is_discount or self.is_fee or self.is_strikethrough

    @property
    def tags(self) -> List[str]:
        return [
            tag
            for tag, flagged in (
                ("rating", self.is_rating),
                ("discount", self.is_discount),
                ("fee", self.is_fee),
                ("strikethrough", self.is_strikethrough),
            )
            if flagged
        ]


@dataclass
class LocatorExtraction:
    """Result of one candidate-based extraction pass."""

    name: str = ""
    price: Decimal = Decimal("0")
    currency: Optional[str] = None
    brand: str = ""
    image_url: Optional[str] = None
    candidates: List[PriceCandidate] = field(default_factory=list)


@dataclass(frozen=True)
class ProductRecord:
    """Structured product data returned by the pipeline."""

    name: str
    brand: str
    price: Decimal
    currency: str
    source_url: str
    category: str = ""
    features: Tuple[str, ...] = ()
    description: Optional[str] = None
    image_url: Optional[str] = None
    ai_verified: bool = False

    def canonical_price(self, rates: Optional[Dict[str, Decimal]] = None) -> Decimal:
        """Price converted to the canonical currency (USD)."""
        from monitra.currency import to_canonical

        return to_canonical(self.price, self.currency, rates=rates)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "brand": self.brand,
            "price": str(self.price),
            "currency": self.currency,
            "category": self.category,
            "features": list(self.features),
            "description": self.description,
            "image_url": self.image_url,
            "source_url": self.source_url,
            "ai_verified": self.ai_verified,
        }
