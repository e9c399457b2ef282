"""Language-model locator detection with a deterministic heuristic fallback."""

import re
from typing import Any, Optional

from loguru import logger

from monitra.errors import LLMServiceError, SelectorDetectionError
from monitra.page_analyzer import StructuralPageAnalyzer
from monitra.records import LocatorPair, PageAnalysis

SYSTEM_PROMPT = "You are an expert web scraping assistant. You answer with pure JSON only."

DETECTION_PROMPT = """Identify the most RELIABLE CSS selectors for extracting the product name and price from an e-commerce page.

Many sites use auto-generated class names (like "hZ3P6w bnqy13") that change frequently. Avoid them and use stable selectors instead.

PRIORITY ORDER (most stable first):
1. Semantic attributes: [itemprop="name"], [itemprop="price"], [data-price], [aria-label*="price"]
2. Stable IDs: #product-name (never random IDs like #a3b2c1)
3. Stable classes: .product-title (never 6+ character alphanumeric classes without dashes or underscores)
4. Structural: h1, h2, parent > child relationships (e.g. ".product-info > h1")
5. Text patterns: :contains() with a currency symbol, only as a last resort

The price selector must capture the price WITH its currency symbol or code. If several currencies are present, prefer the main product price.

HTML Structure Analysis:
{summary}

If no good selector exists, use "h1" for the name or "[itemprop='price']" for the price.

Return ONLY a JSON object, no markdown:
{{"priceSelector": "css selector string", "nameSelector": "css selector string"}}
"""

# Priority list used when the model cannot be reached or answers badly.
SEMANTIC_FALLBACK = LocatorPair('[itemprop="name"], h1', '[itemprop="price"], [data-price], .price')
DATA_ATTRIBUTE_FALLBACK = LocatorPair(
    "[data-product-title], h1, h2",
    '[data-price], [data-product-price], div:contains("₹"), div:contains("$")',
)
CURRENCY_FALLBACK = LocatorPair(
    'h1, h2, [class*="title"], [class*="name"]',
    'div:contains("₹"), span:contains("₹"), div:contains("$"), [class*="price"]',
)
GENERIC_FALLBACK = LocatorPair(
    'h1, [itemprop="name"], .product-title, .product-name, [class*="title"]',
    '[itemprop="price"], [data-price], .price, .product-price, [class*="price"]',
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def clean_locator(value: Any) -> str:
    """Strip markdown fences, backticks and wrapping quotes from a model-proposed locator."""
    if value is None:
        return ""
    text = _FENCE_RE.sub("", str(value).strip()).strip()
    for quote in ("`", '"', "'"):
        if len(text) >= 2 and text.startswith(quote) and text.endswith(quote):
            text = text[1:-1].strip()
    return text


def fallback_locators(analysis: PageAnalysis) -> LocatorPair:
    """Pick a fixed locator pair based on what the analyzer saw on the page."""
    if analysis.has_semantic_attributes:
        return SEMANTIC_FALLBACK
    if analysis.has_data_attributes:
        return DATA_ATTRIBUTE_FALLBACK
    if analysis.has_currency_symbols:
        return CURRENCY_FALLBACK
    return GENERIC_FALLBACK


class AISelectorDetector:
    """Ask the language model for the best name and price locators."""

    def __init__(self, llm, analyzer: Optional[StructuralPageAnalyzer] = None, summary_max_chars: int = 2500):
        self.llm = llm
        self.analyzer = analyzer or StructuralPageAnalyzer()
        self.summary_max_chars = summary_max_chars

    def detect(self, html: str, analysis: Optional[PageAnalysis] = None) -> LocatorPair:
        """Return a locator pair; never raises for model failures."""
        analysis = analysis or self.analyzer.analyze(html)
        try:
            pair = self._ask_model(analysis)
            logger.info("Detected locators - name: '{}', price: '{}'", pair.name_locator, pair.price_locator)
            return pair
        except SelectorDetectionError as exc:
            pair = fallback_locators(analysis)
            logger.warning(
                "Selector detection failed ({}); using fallback locators - name: '{}', price: '{}'",
                exc,
                pair.name_locator,
                pair.price_locator,
            )
            return pair

    def _ask_model(self, analysis: PageAnalysis) -> LocatorPair:
        summary = analysis.to_summary(max_chars=self.summary_max_chars)
        logger.debug("Selector detection summary: {} chars", len(summary))
        try:
            data = self.llm.complete_json(DETECTION_PROMPT.format(summary=summary), system=SYSTEM_PROMPT)
        except LLMServiceError as exc:
            raise SelectorDetectionError(str(exc)) from exc

        pair = LocatorPair(
            name_locator=clean_locator(data.get("nameSelector") or data.get("name_selector")),
            price_locator=clean_locator(data.get("priceSelector") or data.get("price_selector")),
        )
        if not pair.is_complete():
            raise SelectorDetectionError(f"Model returned empty locators: {data}")
        return pair
