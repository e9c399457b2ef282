"""Full-page product extraction through the language model."""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

from bs4 import BeautifulSoup, Comment
from loguru import logger

from monitra.errors import AIExtractionError, LLMServiceError
from monitra.extractor import INVALID_BRAND_WORDS
from monitra.price_parsing import detect_currency, is_valid_price, parse_price_amount
from monitra.records import ProductRecord

STRIPPED_TAGS = ("script", "style", "svg", "noscript", "iframe", "object", "embed", "audio", "video", "canvas")

SYSTEM_PROMPT = "You extract product information from web pages and answer with pure JSON only."

EXTRACTION_PROMPT = """Analyze the following content from a product page and extract the product details.

URL: {url}
Page Content: {content}

PRICE AND CURRENCY:
- Extract the CURRENT selling price exactly as displayed, in its ORIGINAL currency. DO NOT convert it.
- Ignore struck-through list prices, discount amounts ("save", "off"), ratings, shipping, tax and protection fees.
- Identify the currency from symbols or codes ($ = USD, € = EUR, £ = GBP, ₹ = INR, ¥ = JPY).
- Examples: "₹1,09,900" -> price 109900, currency "INR"; "€89,99" -> price 89.99, currency "EUR".

BRAND:
- The real manufacturer name (e.g. "Apple", "Samsung", "Nike").
- NEVER "www", a protocol, a domain name or a marketplace name (amazon, flipkart, ebay).

Return a JSON object with this exact structure:
{{
  "name": "string",
  "brand": "string",
  "price": number,
  "currency": "3-letter code",
  "category": "string",
  "features": ["string"],
  "description": "string",
  "imageUrl": "string"
}}
"""

_WHITESPACE_RE = re.compile(r"\s+")
_CURRENCY_CODE_RE = re.compile(r"^[A-Z]{3}$")


def clean_page_text(html: str, max_chars: int = 15000) -> str:
    """Readable page text with non-content elements and comments removed."""
    soup = BeautifulSoup(html or "", "lxml")
    for element in soup(list(STRIPPED_TAGS)):
        element.decompose()
    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()
    text = _WHITESPACE_RE.sub(" ", soup.get_text(" ")).strip()
    return text[:max_chars]


def _parse_ai_price(value: Any) -> Tuple[Decimal, Optional[str]]:
    if value is None or isinstance(value, bool):
        return Decimal("0"), None
    if isinstance(value, (int, float)):
        try:
            return Decimal(str(value)), None
        except InvalidOperation:
            return Decimal("0"), None
    text = str(value)
    amount = parse_price_amount(text)
    return (amount if amount is not None else Decimal("0")), detect_currency(text)


def _clean_brand(value: Any) -> str:
    brand = str(value or "").strip()
    if brand.lower() in INVALID_BRAND_WORDS or len(brand) < 2:
        return ""
    return brand


def _clean_features(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        if value:
            logger.debug("Ignoring AI features of type {}", type(value).__name__)
        return ()
    return tuple(str(feature).strip() for feature in value if feature)


class AIFullPageExtractor:
    """Ask the language model for the whole product record.

    `currency` is left empty when neither the reply nor the price text names
    one, unless a `default_currency` is given; the orchestrator applies its
    own default after merging with the locator tiers.
    """

    def __init__(self, llm, default_currency: Optional[str] = None, page_text_max_chars: int = 15000):
        self.llm = llm
        self.default_currency = default_currency
        self.page_text_max_chars = page_text_max_chars

    def extract(self, html: str, url: str) -> ProductRecord:
        content = clean_page_text(html, self.page_text_max_chars)
        logger.info("AI full-page extraction for {} ({} chars of page text)", url, len(content))
        try:
            data = self.llm.complete_json(EXTRACTION_PROMPT.format(url=url, content=content), system=SYSTEM_PROMPT)
        except LLMServiceError as exc:
            raise AIExtractionError(f"AI extraction failed for {url}: {exc}") from exc

        try:
            record = self._to_record(data, url)
        except (AttributeError, TypeError, ValueError) as exc:
            raise AIExtractionError(f"Unusable AI extraction reply for {url}: {exc}") from exc

        logger.info(
            "AI extraction result - name: '{}', price: {} {}, brand: '{}'",
            record.name[:60],
            record.price,
            record.currency or "N/A",
            record.brand or "N/A",
        )
        return record

    def _to_record(self, data: Dict[str, Any], url: str) -> ProductRecord:
        price, price_currency = _parse_ai_price(data.get("price"))
        if not is_valid_price(price):
            price = Decimal("0")

        currency = str(data.get("currency") or "").strip().upper()
        if not _CURRENCY_CODE_RE.match(currency):
            currency = price_currency or self.default_currency or ""

        return ProductRecord(
            name=" ".join(str(data.get("name") or "").split()),
            brand=_clean_brand(data.get("brand")),
            price=price,
            currency=currency,
            source_url=url,
            category=str(data.get("category") or ""),
            features=_clean_features(data.get("features")),
            description=data.get("description") or None,
            image_url=data.get("imageUrl") or data.get("image_url") or data.get("image") or None,
            ai_verified=True,
        )
