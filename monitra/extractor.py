"""Candidate-based product extraction from learned or cached locators."""

import re
import statistics
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
from urllib.parse import parse_qs, unquote_plus, urljoin, urlsplit

from bs4 import BeautifulSoup
from bs4.element import Tag
from loguru import logger
from soupsieve import SelectorSyntaxError

from monitra.candidate_rules import CandidateContext, classify_candidate
from monitra.errors import NoValidPriceFound
from monitra.price_parsing import detect_currency, is_valid_price, parse_price_amount
from monitra.records import LocatorExtraction, LocatorPair, PriceCandidate

GENERIC_NAME_LOCATORS = (
    "h1.product-title",
    "h1[data-product-title]",
    ".product-name",
    '[itemprop="name"]',
    "h1",
    ".title",
)

GENERIC_PRICE_LOCATORS = (
    '[itemprop="price"]',
    ".price",
    ".product-price",
    "[data-price]",
    ".current-price",
    ".price-current",
    "#priceblock_ourprice",
    "#priceblock_dealprice",
    "#priceblock_saleprice",
    ".a-price .a-offscreen",
    ".a-price-whole",
    "span.a-price-symbol + span.a-price-whole",
    '[data-a-color="price"] .a-price-whole',
    '.a-price[data-a-color="price"]',
    # Last resort for sites with generated class names.
    '*:contains("₹")',
    '*:contains("$")',
    '*:contains("€")',
    '*:contains("£")',
    '*:contains("¥")',
)

BRAND_LOCATORS = (
    '[itemprop="brand"]',
    ".brand",
    "[data-brand]",
    'meta[property="product:brand"]',
    "#productDetails_feature_div .po-brand span.po-break-word",
    "#productDetails_db_sections .po-brand span.po-break-word",
    "a#brand",
    'a[href*="/s?k="]',
    ".product-brand",
    "[data-asin] + a",
)

# Domain tokens that never name a brand.
DOMAIN_BRAND_DENYLIST = {
    "www", "http", "https", "com", "net", "org", "in", "co", "io",
    "shop", "store", "buy", "amazon", "flipkart", "ebay", "walmart", "target",
}
INVALID_BRAND_WORDS = {"www", "www.", "http", "https", "http:", "https:", "com", "net", "org"}

DEFAULT_OUTLIER_FACTOR = Decimal("10")

_CONTAINS_RE = re.compile(r"^(?P<prefix>.*?):(?:-soup-)?contains\(\s*(?P<quote>[\"'])(?P<needle>.*?)(?P=quote)\s*\)(?P<rest>.*)$")

_DIGIT_RE = re.compile(r"\d")

_Match = Tuple[PriceCandidate, Tag]


def split_locator_group(locator: Optional[str]) -> List[str]:
    """Split a comma-separated locator group, ignoring commas inside quotes or brackets."""
    parts, current, depth, quote = [], [], 0, None
    for char in locator or "":
        if quote:
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]":
            depth = max(0, depth - 1)
        elif char == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    parts.append("".join(current).strip())
    return [part for part in parts if part]


def element_text(element: Tag) -> str:
    text = " ".join(element.get_text(" ", strip=True).split())
    return text or (element.get("content") or element.get("data-price") or "").strip()


def domain_token(url: str) -> str:
    host = (urlsplit(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host.split(".")[0] if host else ""


def select_price(candidates: Sequence[PriceCandidate], outlier_factor=DEFAULT_OUTLIER_FACTOR) -> Optional[PriceCandidate]:
    """Pick the candidate closest to the median, after dropping large outliers.

    Amounts above `outlier_factor` times the median are outliers. Ties go to
    the smaller amount. If every amount is an outlier, the smallest candidate
    wins.
    """
    if not candidates:
        return None
    median = statistics.median([c.amount for c in candidates])
    limit = Decimal(str(outlier_factor)) * median
    kept = [c for c in candidates if c.amount <= limit]
    if not kept:
        return min(candidates, key=lambda c: c.amount)
    return min(kept, key=lambda c: (abs(c.amount - median), c.amount))


class CandidateExtractor:
    """Resolve a locator pair against a page and pick the current price."""

    def __init__(self, max_text_length: int = 200, outlier_factor=DEFAULT_OUTLIER_FACTOR):
        self.max_text_length = max_text_length
        self.outlier_factor = Decimal(str(outlier_factor))

    def extract(self, html: str, url: str, pair: Optional[LocatorPair] = None) -> LocatorExtraction:
        soup = BeautifulSoup(html or "", "lxml")
        name_locator = pair.name_locator if pair else None
        price_locator = pair.price_locator if pair else None

        name = self.extract_name(soup, name_locator)
        matches = self.price_matches(soup, price_locator)
        result = LocatorExtraction(name=name, candidates=[candidate for candidate, _ in matches])
        try:
            candidate, element = self._select(matches)
        except NoValidPriceFound as exc:
            logger.debug("{} (locator '{}')", exc, price_locator)
        else:
            result.price = candidate.amount
            result.currency = self.detect_context_currency(element)
            logger.debug("Price {} {} selected from {} candidates", result.price, result.currency, len(matches))

        result.brand = self.extract_brand(soup, url, name)
        result.image_url = self.extract_image(soup, url)
        return result

    # Locator resolution

    def resolve(self, soup: BeautifulSoup, locator: Optional[str]) -> List[Tag]:
        """Return every element matched by a locator group, in group order."""
        found: List[Tag] = []
        seen = set()
        for part in split_locator_group(locator):
            for element in self._resolve_part(soup, part):
                if id(element) not in seen:
                    seen.add(id(element))
                    found.append(element)
        return found

    def _resolve_part(self, soup: BeautifulSoup, part: str) -> List[Tag]:
        match = _CONTAINS_RE.match(part)
        if not match:
            return self._select_css(soup, part)

        prefix = match.group("prefix").strip() or "*"
        needle = match.group("needle")
        matched = []
        for element in self._select_css(soup, prefix):
            if element.name in ("html", "body"):
                continue
            text = element_text(element)
            if needle in text and len(text) < self.max_text_length:
                matched.append(element)
        # Keep the innermost matches so a wrapper does not repeat its children's prices.
        # A bare symbol child ("<span>₹</span>") does not shadow a wrapper carrying digits.
        numeric_ids = {id(element) for element in matched if _DIGIT_RE.search(element_text(element))}
        matched_ids = {id(element) for element in matched}
        innermost = []
        for element in matched:
            shadowing = numeric_ids if id(element) in numeric_ids else matched_ids
            if not any(id(child) in shadowing for child in element.find_all(True)):
                innermost.append(element)
        return innermost

    @staticmethod
    def _select_css(soup: BeautifulSoup, css: str) -> List[Tag]:
        try:
            return soup.select(css)
        except (SelectorSyntaxError, NotImplementedError, ValueError) as exc:
            logger.debug("Unsupported locator '{}': {}", css, exc)
            return []

    # Name

    def extract_name(self, soup: BeautifulSoup, locator: Optional[str]) -> str:
        if locator:
            name = self._first_text(soup, locator)
            if name:
                logger.debug("Name extracted via locator '{}'", locator)
                return name
            logger.debug("Name locator '{}' matched nothing usable", locator)

        for fallback in GENERIC_NAME_LOCATORS:
            name = self._first_text(soup, fallback)
            if name:
                logger.debug("Name extracted via fallback locator '{}'", fallback)
                return name
        return ""

    def _first_text(self, soup: BeautifulSoup, locator: str) -> str:
        for element in self.resolve(soup, locator):
            text = element_text(element)
            if text:
                return text
        return ""

    # Price

    def price_matches(self, soup: BeautifulSoup, locator: Optional[str]) -> List[_Match]:
        """Classify every element the price locator matches and keep the valid survivors.

        Falls back to the generic price locators when nothing survives.
        """
        if locator:
            survivors = self._classify(self.resolve(soup, locator), locator)
            if survivors:
                return survivors

        for fallback in GENERIC_PRICE_LOCATORS:
            survivors = self._classify(self.resolve(soup, fallback), fallback)
            if survivors:
                logger.debug("Price found via fallback locator '{}'", fallback)
                return survivors
        return []

    def _classify(self, elements: List[Tag], locator: str) -> List[_Match]:
        survivors: List[_Match] = []
        for element in elements:
            text = element_text(element)
            if not text or len(text) >= self.max_text_length:
                continue
            amount = parse_price_amount(text)
            candidate = classify_candidate(
                CandidateContext(text=text, element=element, amount=amount),
                currency=detect_currency(text),
            )
            if candidate.rejected:
                logger.debug("Rejected '{}' ({}) from '{}'", text[:50], ", ".join(candidate.tags), locator)
                continue
            if not is_valid_price(amount):
                continue
            survivors.append((candidate, element))
        return survivors

    def _select(self, matches: List[_Match]) -> _Match:
        winner = select_price([candidate for candidate, _ in matches], self.outlier_factor)
        if winner is None:
            raise NoValidPriceFound("No valid price candidate")
        return next(match for match in matches if match[0] is winner)

    @staticmethod
    def detect_context_currency(element: Optional[Tag]) -> Optional[str]:
        """Currency from the element text, then its parent, then its grandparent."""
        current = element
        for _ in range(3):
            if not isinstance(current, Tag) or current.name == "[document]":
                break
            currency = detect_currency(current.get_text(" ", strip=True))
            if currency:
                return currency
            current = current.parent
        return None

    # Brand and image

    def extract_brand(self, soup: BeautifulSoup, url: str, name: str) -> str:
        brand = ""
        for locator in BRAND_LOCATORS:
            element = next(iter(self._select_css(soup, locator)), None)
            if element is None:
                continue
            text = element_text(element) or (element.get("href") or "").strip()
            if "/s?k=" in text:
                keyword = parse_qs(urlsplit(text).query).get("k")
                text = unquote_plus(keyword[0]) if keyword else ""
            if len(text) > 1:
                brand = text
                logger.debug("Brand extracted via locator '{}'", locator)
                break

        if not brand and name:
            parts = name.split()
            if len(parts) > 1 and 2 <= len(parts[0]) <= 20 and parts[0][0].isupper():
                brand = parts[0]

        if not brand and name:
            token = domain_token(url)
            if token and token not in DOMAIN_BRAND_DENYLIST:
                brand = token

        brand = brand.strip()
        if brand.lower() in INVALID_BRAND_WORDS or len(brand) < 2:
            return ""
        return brand

    @staticmethod
    def extract_image(soup: BeautifulSoup, url: str) -> Optional[str]:
        og_image = soup.find("meta", attrs={"property": "og:image"})
        if og_image and og_image.get("content"):
            return urljoin(url, og_image["content"])
        for css in ('img[itemprop="image"]', ".product-image img", "img"):
            element = soup.select_one(css)
            if element is not None and element.get("src"):
                return urljoin(url, element["src"])
        return None
