"""Page fetchers: plain HTTP through requests, or a headless Chromium via Playwright."""

from typing import Any, Dict, Optional

import requests
from loguru import logger
from playwright.sync_api import Error as PlaywrightError, sync_playwright
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from monitra.errors import FetchError

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}
MIN_BODY_LENGTH = 250


def check_body(url: str, body: Optional[str], min_length: int = MIN_BODY_LENGTH) -> str:
    """Very short bodies are block pages or empty shells."""
    length = len(body or "")
    if length < min_length:
        raise FetchError(f"Insufficient content from {url} ({length} bytes)")
    return body


class PageFetcher:
    """Fetch raw markup with requests, retrying transient network errors."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, session: Optional[requests.Session] = None):
        config = config or {}
        self.timeout = float(config.get("timeout", 30))
        self.retry_attempts = int(config.get("retry_attempts", 3))
        self.min_body_length = int(config.get("min_body_length", MIN_BODY_LENGTH))
        self.session = session or requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)
        self.session.headers["User-Agent"] = config.get("user_agent") or DEFAULT_USER_AGENT

    def stop(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def fetch(self, url: str) -> str:
        logger.info("Fetching HTML for: {}", url)
        try:
            response = self._get(url)
        except requests.RequestException as exc:
            raise FetchError(f"Failed to fetch HTML from {url}: {exc}") from exc

        if response.status_code >= 400:
            raise FetchError(f"HTTP {response.status_code} for {url}")
        body = check_body(url, response.text, self.min_body_length)
        logger.debug("Fetched {} ({:.2f}KB)", url, len(body) / 1024)
        return body

    def _get(self, url: str) -> requests.Response:
        @retry(
            stop=stop_after_attempt(max(1, self.retry_attempts)),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
            reraise=True,
        )
        def _call():
            return self.session.get(url, timeout=self.timeout)

        return _call()


class BrowserPageFetcher:
    """Fetch rendered markup with a headless Chromium session."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, headless: Optional[bool] = None):
        config = config or {}
        browser_config = config.get("browser", {}) or {}
        self.timeout_ms = int(float(config.get("timeout", 30)) * 1000)
        self.retry_attempts = int(config.get("retry_attempts", 3))
        self.min_body_length = int(config.get("min_body_length", MIN_BODY_LENGTH))
        self.user_agent = config.get("user_agent") or DEFAULT_USER_AGENT
        self.viewport = browser_config.get("viewport", {"width": 1920, "height": 1080})
        self.wait_until = browser_config.get("wait_until", "domcontentloaded")
        self.headless = headless if headless is not None else browser_config.get("headless", True)

        self.playwright = None
        self.browser = None
        self.context = None

    def start(self):
        logger.info("Starting browser...")
        self.playwright = sync_playwright().start()
        self.browser = self.playwright.chromium.launch(
            headless=self.headless,
            args=["--no-sandbox", "--disable-dev-shm-usage"],
        )
        self.context = self.browser.new_context(
            viewport=self.viewport,
            user_agent=self.user_agent,
            extra_http_headers={"Accept-Language": DEFAULT_HEADERS["Accept-Language"]},
        )
        logger.info("Browser started successfully")

    def stop(self):
        for resource in (self.context, self.browser):
            if resource is not None:
                try:
                    resource.close()
                except PlaywrightError as exc:
                    logger.debug("Ignoring browser close error: {}", exc)
        if self.playwright is not None:
            self.playwright.stop()
        self.context = None
        self.browser = None
        self.playwright = None
        logger.info("Browser stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def fetch(self, url: str) -> str:
        if self.context is None:
            self.start()
        logger.info("Fetching rendered HTML for: {}", url)
        try:
            body = self._render(url)
        except PlaywrightError as exc:
            raise FetchError(f"Failed to render {url}: {exc}") from exc
        return check_body(url, body, self.min_body_length)

    def _render(self, url: str) -> str:
        @retry(
            stop=stop_after_attempt(max(1, self.retry_attempts)),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(PlaywrightError),
            reraise=True,
        )
        def _call():
            page = self.context.new_page()
            try:
                page.goto(url, timeout=self.timeout_ms, wait_until=self.wait_until)
                return page.content()
            finally:
                page.close()

        return _call()


def build_fetcher(config: Dict[str, Any]):
    """Create the fetcher selected by `fetcher.backend`."""
    fetcher_config = config.get("fetcher", {}) or {}
    backend = str(fetcher_config.get("backend", "http")).lower()
    if backend == "http":
        return PageFetcher(fetcher_config)
    if backend == "browser":
        return BrowserPageFetcher(fetcher_config)
    raise ValueError(f"Unsupported fetcher backend: {backend}")
