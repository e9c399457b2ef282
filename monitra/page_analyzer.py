"""Structural page analysis that proposes name and price locators."""

import re
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag
from loguru import logger

from monitra.price_parsing import detect_currency, find_currency_symbol
from monitra.records import LocatorCandidate, LocatorStability, PageAnalysis

NON_CONTENT_TAGS = ("script", "style", "noscript", "svg", "iframe")
NAME_CANDIDATE_SELECTOR = 'h1, h2, [itemprop="name"], [data-product-title]'

_UNSTABLE_TOKEN_RE = re.compile(r"[A-Za-z0-9]{6,}")
_PRICE_KEYWORD_RE = re.compile(r"price|cost|amount", re.IGNORECASE)
_TEXT_PATTERN_PARENTS = {"div", "span", "p"}


def is_unstable_token(token: Optional[str]) -> bool:
    """A class or id that is a 6+ character alphanumeric run looks generated."""
    return bool(token) and bool(_UNSTABLE_TOKEN_RE.fullmatch(token))


def _classes(element: Tag) -> List[str]:
    value = element.get("class") or []
    if isinstance(value, str):
        value = value.split()
    return [cls for cls in value if cls]


def _text(element: Tag) -> str:
    return " ".join(element.get_text(" ", strip=True).split())


def _token_locator(prefix: str, token: str, stable: LocatorStability) -> Tuple[str, LocatorStability]:
    stability = LocatorStability.VOLATILE if is_unstable_token(token) else stable
    return f"{prefix}{token}", stability


class StructuralPageAnalyzer:
    """Scan raw markup and rank locator candidates by stability."""

    def __init__(self, max_text_length: int = 200, min_name_length: int = 6):
        self.max_text_length = max_text_length
        self.min_name_length = min_name_length

    def analyze(self, html: str) -> PageAnalysis:
        soup = BeautifulSoup(html or "", "lxml")
        for element in soup(list(NON_CONTENT_TAGS)):
            element.decompose()

        title_tag = soup.find("title")
        analysis = PageAnalysis(title=_text(title_tag) if title_tag else "")
        analysis.has_semantic_attributes = bool(soup.select("[itemprop]"))
        analysis.has_data_attributes = any(
            any(attr.startswith("data-") for attr in element.attrs) for element in soup.find_all(True)
        )

        analysis.name_candidates = self._rank(self._name_candidates(soup))
        analysis.price_candidates = self._rank(self._price_candidates(soup))
        analysis.has_currency_symbols = any(c.currency_symbol for c in analysis.price_candidates)

        logger.debug(
            "Page analysis: {} name candidates, {} price candidates (semantic={}, data={}, currency={})",
            len(analysis.name_candidates),
            len(analysis.price_candidates),
            analysis.has_semantic_attributes,
            analysis.has_data_attributes,
            analysis.has_currency_symbols,
        )
        return analysis

    @staticmethod
    def _rank(candidates: List[LocatorCandidate]) -> List[LocatorCandidate]:
        # Stable sort keeps document order within a tier; duplicates collapse.
        seen: Dict[str, LocatorCandidate] = {}
        for candidate in candidates:
            seen.setdefault(candidate.locator, candidate)
        return sorted(seen.values(), key=lambda c: int(c.stability))

    def _name_candidates(self, soup: BeautifulSoup) -> List[LocatorCandidate]:
        candidates = []
        for element in soup.select(NAME_CANDIDATE_SELECTOR):
            text = _text(element)
            if not (self.min_name_length <= len(text) < self.max_text_length):
                continue
            locator = self._name_locator(element)
            if locator:
                candidates.append(
                    LocatorCandidate(text=text[:100], locator=locator[0], stability=locator[1], tag=element.name)
                )
        return candidates

    @staticmethod
    def _name_locator(element: Tag) -> Optional[Tuple[str, LocatorStability]]:
        tag = element.name
        if element.get("itemprop") == "name":
            return '[itemprop="name"]', LocatorStability.SEMANTIC
        if element.has_attr("data-product-title"):
            return "[data-product-title]", LocatorStability.SEMANTIC

        element_id = element.get("id") or ""
        if element_id and not is_unstable_token(element_id):
            return f"#{element_id}", LocatorStability.STABLE_ID

        if tag in ("h1", "h2"):
            parent = element.parent
            parent_classes = _classes(parent) if isinstance(parent, Tag) else []
            if parent_classes and not is_unstable_token(parent_classes[0]):
                return f".{parent_classes[0]} {tag}", LocatorStability.STRUCTURAL
            return tag, LocatorStability.STRUCTURAL

        classes = _classes(element)
        if classes:
            return _token_locator(".", classes[0], LocatorStability.STABLE_CLASS)
        if element_id:
            return f"#{element_id}", LocatorStability.VOLATILE
        return None

    def _price_candidates(self, soup: BeautifulSoup) -> List[LocatorCandidate]:
        candidates = []
        for element in soup.find_all(True):
            if element.name in ("html", "body", "head", "title"):
                continue
            text = _text(element) or element.get("content") or element.get("data-price") or ""
            if not text or len(text) >= self.max_text_length or not re.search(r"\d", text):
                continue

            symbol = find_currency_symbol(text)
            has_price_hint = (
                element.get("itemprop") == "price"
                or element.has_attr("data-price")
                or _PRICE_KEYWORD_RE.search(element.get("aria-label") or "")
                or _PRICE_KEYWORD_RE.search(element.get("id") or "")
                or any(_PRICE_KEYWORD_RE.search(cls) for cls in _classes(element))
            )
            if not symbol and not has_price_hint:
                continue

            locator, stability = self._price_locator(element, symbol)
            candidates.append(
                LocatorCandidate(
                    text=text[:50],
                    locator=locator,
                    stability=stability,
                    tag=element.name,
                    currency_symbol=symbol,
                    currency=detect_currency(text),
                )
            )
        return candidates

    @staticmethod
    def _price_locator(element: Tag, symbol: Optional[str]) -> Tuple[str, LocatorStability]:
        if element.get("itemprop") == "price":
            return '[itemprop="price"]', LocatorStability.SEMANTIC
        if element.has_attr("data-price"):
            return "[data-price]", LocatorStability.SEMANTIC
        if _PRICE_KEYWORD_RE.search(element.get("aria-label") or ""):
            return '[aria-label*="price"]', LocatorStability.SEMANTIC

        element_id = element.get("id") or ""
        if element_id and _PRICE_KEYWORD_RE.search(element_id):
            return _token_locator("#", element_id, LocatorStability.STABLE_ID)

        classes = _classes(element)
        price_classes = [cls for cls in classes if _PRICE_KEYWORD_RE.search(cls)]
        if price_classes:
            return _token_locator(".", price_classes[0], LocatorStability.STABLE_CLASS)
        if classes and not is_unstable_token(classes[0]):
            return f".{classes[0]}", LocatorStability.STABLE_CLASS

        parent = element.parent
        parent_tag = parent.name if isinstance(parent, Tag) else ""
        if symbol and parent_tag in _TEXT_PATTERN_PARENTS:
            return f'{parent_tag}:contains("{symbol}")', LocatorStability.TEXT_PATTERN
        if classes:
            return f".{classes[0]}", LocatorStability.VOLATILE
        return element.name, LocatorStability.STRUCTURAL
