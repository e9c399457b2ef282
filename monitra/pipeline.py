"""Extraction orchestrator: cached locators, learning, then AI fallback."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from loguru import logger

from monitra.ai_extractor import AIFullPageExtractor
from monitra.candidate_rules import is_suspicious_price
from monitra.config_loader import get_extraction_config, get_fetcher_config, get_llm_config
from monitra.errors import AIExtractionError, InvalidExtractionResult
from monitra.extractor import CandidateExtractor
from monitra.fetcher import build_fetcher
from monitra.llm_client import LLMClient
from monitra.models import get_engine, get_session_factory, init_db
from monitra.page_analyzer import StructuralPageAnalyzer
from monitra.price_parsing import is_valid_price
from monitra.records import LocatorExtraction, LocatorPair, ProductRecord
from monitra.repositories import DomainLocatorStore, domain_from_url
from monitra.selector_detector import AISelectorDetector


class ExtractionState(str, Enum):
    START = "start"
    CACHE_LOOKUP = "cache_lookup"
    CACHED_EXTRACT = "cached_extract"
    LEARNING = "learning"
    AI_FALLBACK = "ai_fallback"
    DONE = "done"
    FAILED = "failed"


METHOD_CACHED = "cached_locators"
METHOD_LEARNED = "learned_locators"
METHOD_AI = "ai_fallback"


@dataclass
class ExtractionOutcome:
    """Final record plus the states visited and the tier that produced it."""

    record: ProductRecord
    states: List[ExtractionState] = field(default_factory=list)
    method: str = ""

    @property
    def used_ai(self) -> bool:
        return self.method == METHOD_AI


def _usable_price(price: Any) -> bool:
    return is_valid_price(price) and not is_suspicious_price(price)


def _is_complete(extraction: Optional[LocatorExtraction]) -> bool:
    return extraction is not None and bool(extraction.name) and _usable_price(extraction.price)


def _failure_reason(extraction: Optional[LocatorExtraction]) -> str:
    if extraction is None:
        return "extraction error"
    missing = []
    if not extraction.name:
        missing.append("name")
    if not _usable_price(extraction.price):
        missing.append("price")
    return f"missing {', '.join(missing)}" if missing else "unknown"


class ExtractionOrchestrator:
    """Run one URL through the extraction tiers.

    Collaborators are injected: `store` (get/upsert), `fetcher` (fetch),
    `selector_detector` (detect) and `ai_extractor` (extract).
    """

    def __init__(
        self,
        store,
        fetcher,
        selector_detector,
        ai_extractor,
        extractor: Optional[CandidateExtractor] = None,
        default_currency: str = "USD",
    ):
        self.store = store
        self.fetcher = fetcher
        self.selector_detector = selector_detector
        self.ai_extractor = ai_extractor
        self.extractor = extractor or CandidateExtractor()
        self.default_currency = default_currency

    def close(self):
        """Release the fetcher (browser process or HTTP session)."""
        stop = getattr(self.fetcher, "stop", None)
        if stop is not None:
            stop()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def extract(self, url: str) -> ProductRecord:
        return self.run(url).record

    def run(self, url: str) -> ExtractionOutcome:
        states = [ExtractionState.START]
        domain = domain_from_url(url)
        html = self.fetcher.fetch(url)

        states.append(ExtractionState.CACHE_LOOKUP)
        cached = self._lookup(domain)
        partial: Optional[LocatorExtraction] = None

        if cached is not None and cached.is_complete():
            states.append(ExtractionState.CACHED_EXTRACT)
            logger.info(
                "[{}] Using cached locators - name: '{}', price: '{}'", domain, cached.name_locator, cached.price_locator
            )
            partial = self._extract_with(html, url, cached, domain)
            if _is_complete(partial):
                return self._done(states, self._to_record(partial, url), METHOD_CACHED, domain)
            reason = _failure_reason(partial)
        else:
            reason = "no cached locators"

        states.append(ExtractionState.LEARNING)
        logger.info("[{}] Learning mode triggered - reason: {}", domain, reason)
        learned = self._learn(html, domain)
        if learned is not None:
            attempt = self._extract_with(html, url, learned, domain)
            if _is_complete(attempt):
                return self._done(states, self._to_record(attempt, url), METHOD_LEARNED, domain)
            partial = self._better_partial(partial, attempt)

        states.append(ExtractionState.AI_FALLBACK)
        logger.info("[{}] AI fallback - locator tiers gave: {}", domain, _failure_reason(partial))
        try:
            ai_record = self.ai_extractor.extract(html, url)
        except AIExtractionError:
            states.append(ExtractionState.FAILED)
            logger.error("[{}] AI extraction failed; giving up on {}", domain, url)
            raise

        record = self._merge(partial, ai_record, url)
        if not record.name or not _usable_price(record.price):
            states.append(ExtractionState.FAILED)
            raise InvalidExtractionResult(
                f"No valid product record for {url} (name={bool(record.name)}, price={record.price})"
            )
        return self._done(states, record, METHOD_AI, domain)

    # Tiers

    def _lookup(self, domain: str) -> Optional[LocatorPair]:
        try:
            return self.store.get(domain)
        except Exception as exc:
            logger.warning("[{}] Locator store read failed, treating as miss: {}", domain, exc)
            return None

    def _save(self, domain: str, pair: LocatorPair) -> None:
        try:
            self.store.upsert(domain, pair)
            logger.info("[{}] Saved locators", domain)
        except Exception as exc:
            logger.warning("[{}] Locator store write skipped: {}", domain, exc)

    def _learn(self, html: str, domain: str) -> Optional[LocatorPair]:
        try:
            pair = self.selector_detector.detect(html)
        except Exception as exc:
            logger.warning("[{}] Selector detection crashed: {}", domain, exc)
            return None
        if pair is None or not pair.is_complete():
            logger.warning("[{}] Selector detection returned no usable locators", domain)
            return None
        # Stored even if the retry below fails; the pair may work on a later fetch.
        self._save(domain, pair)
        return pair

    def _extract_with(self, html: str, url: str, pair: LocatorPair, domain: str) -> Optional[LocatorExtraction]:
        try:
            extraction = self.extractor.extract(html, url, pair)
        except Exception as exc:
            logger.warning("[{}] Locator extraction failed: {}", domain, exc)
            return None

        source_text = next((c.source_text for c in extraction.candidates if c.amount == extraction.price), "")
        if is_valid_price(extraction.price) and is_suspicious_price(extraction.price, source_text):
            logger.warning("[{}] Suspicious price {} (likely a rating), resetting to 0", domain, extraction.price)
            extraction.price = Decimal("0")

        logger.info(
            "[{}] Locator extraction - name: {}, price: {} {}",
            domain,
            bool(extraction.name),
            extraction.price,
            extraction.currency or "N/A",
        )
        return extraction

    @staticmethod
    def _better_partial(
        first: Optional[LocatorExtraction], second: Optional[LocatorExtraction]
    ) -> Optional[LocatorExtraction]:
        if first is None:
            return second
        if second is None:
            return first

        def score(extraction):
            return int(bool(extraction.name)) + int(_usable_price(extraction.price))

        return second if score(second) >= score(first) else first

    # Records

    def _to_record(self, extraction: LocatorExtraction, url: str) -> ProductRecord:
        return ProductRecord(
            name=extraction.name,
            brand=extraction.brand,
            price=extraction.price,
            currency=extraction.currency or self.default_currency,
            source_url=url,
            image_url=extraction.image_url,
        )

    def _merge(self, partial: Optional[LocatorExtraction], ai_record: ProductRecord, url: str) -> ProductRecord:
        """AI fields win wherever the AI filled them."""
        if partial is None:
            partial = LocatorExtraction()

        if is_valid_price(ai_record.price):
            price, currency = ai_record.price, ai_record.currency or partial.currency
        elif _usable_price(partial.price):
            price, currency = partial.price, partial.currency or ai_record.currency
        else:
            price, currency = Decimal("0"), ai_record.currency or partial.currency

        return ProductRecord(
            name=ai_record.name or partial.name,
            brand=ai_record.brand or partial.brand,
            price=price,
            currency=currency or self.default_currency,
            source_url=url,
            category=ai_record.category,
            features=ai_record.features,
            description=ai_record.description,
            image_url=ai_record.image_url or partial.image_url,
            ai_verified=ai_record.ai_verified,
        )

    @staticmethod
    def _done(states: List[ExtractionState], record: ProductRecord, method: str, domain: str) -> ExtractionOutcome:
        states.append(ExtractionState.DONE)
        logger.info(
            "[{}] EXTRACTION SUMMARY - method: {} | name: '{}' | price: {} {} | brand: {}",
            domain,
            method,
            record.name[:50],
            record.price,
            record.currency,
            record.brand or "N/A",
        )
        return ExtractionOutcome(record=record, states=states, method=method)


def build_orchestrator(config: Dict[str, Any], session_factory=None) -> ExtractionOrchestrator:
    """Wire the default collaborators from configuration."""
    extraction_config = get_extraction_config(config)
    max_text_length = int(extraction_config.get("candidate_text_max_length", 200))
    default_currency = extraction_config.get("default_currency", "USD")

    if session_factory is None:
        engine = get_engine(config)
        init_db(engine)
        session_factory = get_session_factory(engine)

    llm = LLMClient(get_llm_config(config))
    return ExtractionOrchestrator(
        store=DomainLocatorStore(session_factory),
        fetcher=build_fetcher({"fetcher": get_fetcher_config(config)}),
        selector_detector=AISelectorDetector(
            llm,
            analyzer=StructuralPageAnalyzer(max_text_length=max_text_length),
            summary_max_chars=int(extraction_config.get("summary_max_chars", 2500)),
        ),
        ai_extractor=AIFullPageExtractor(
            llm,
            page_text_max_chars=int(extraction_config.get("page_text_max_chars", 15000)),
        ),
        extractor=CandidateExtractor(
            max_text_length=max_text_length,
            outlier_factor=extraction_config.get("outlier_factor", 10),
        ),
        default_currency=default_currency,
    )
