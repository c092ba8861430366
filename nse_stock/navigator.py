"""Page navigator for the NSE India site.

Handles getting from nowhere to a rendered quote page:
- opening the landing page and clearing whatever overlays it throws up
- searching for a symbol through the site search box
- falling back to the quote URL when search suggestions never appear

Design Rationale:
    NSE pushes cookie banners, notification prompts, modals and ads in an
    order that varies between visits. Each dismissal is an independent
    best-effort step: an overlay that is not there is the normal case and is
    logged at DEBUG only. Rendering settles on a bounded ``networkidle`` wait
    instead of fixed sleeps.
"""

from urllib.parse import quote

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from config.settings import GlobalConfig
from nse_stock.exceptions import NavigationError, SearchError
from nse_stock.locators import SEARCH_INPUT_PATTERNS, ElementLocator, xpath
from nse_stock.logger import get_logger

log = get_logger(__name__)

COOKIE_CONSENT_BUTTON = (
    "//button[contains(text(),'Accept') or contains(text(),'OK') "
    "or contains(@class,'cookie') or contains(@id,'cookie')]"
)
NOTIFICATION_CLOSE_BUTTON = (
    "//button[contains(@class,'notification') or contains(text(),'No Thanks') "
    "or contains(@aria-label,'notification')]"
)
MODAL_CLOSE_BUTTON = (
    "//button[contains(@class,'close') or contains(@aria-label,'close') "
    "or contains(@class,'modal-close')]"
)
AD_CLOSE_BUTTON = (
    "//button[contains(@class,'ad-close') or contains(@id,'ad-close') "
    "or contains(text(),'Skip Ad')]"
)


def suggestion_selector(symbol: str) -> str:
    """XPath of a search suggestion mentioning ``symbol``."""
    return (
        "//div[contains(@class,'suggestion') or contains(@class,'dropdown')]"
        f"//span[contains(text(),'{symbol}')]"
    )


class NSEHomePage:
    """Drives navigation on nseindia.com.

    Attributes:
        page: Playwright page owned by the calling worker.
        config: Supplies URLs and wait budgets.
        locator: Element locator bound to ``page``.
    """

    def __init__(
        self,
        page: Page,
        config: GlobalConfig,
        locator: ElementLocator | None = None,
    ) -> None:
        self.page = page
        self.config = config
        self.locator = locator or ElementLocator(page, config)

    def open(self, base_url: str | None = None) -> None:
        """Open the landing page (overlays are dismissed on arrival).

        Args:
            base_url: Override for ``config.nse_base_url``.

        Raises:
            NavigationError: If the landing page cannot be loaded.
        """
        url = base_url or self.config.nse_base_url
        log.info("Opening NSE home page", url=url)
        self._navigate(url)

    def search(self, symbol: str) -> None:
        """Search for ``symbol`` and land on its quote page.

        Types the symbol into the site search box and clicks the matching
        suggestion. If no suggestion appears within ``suggestion_wait``,
        navigates straight to the quote URL instead.

        Raises:
            SearchError: If no search input can be found.
            NavigationError: If the fallback navigation fails.
        """
        log.info("Searching for stock", symbol=symbol)

        search_input = self.locator.find(SEARCH_INPUT_PATTERNS, state="visible")
        if search_input is None:
            log.error("Search input field not found", symbol=symbol, url=self.page.url)
            raise SearchError(url=self.page.url, symbol=symbol)

        search_input.fill("")
        search_input.press_sequentially(symbol)

        if self._click_suggestion(symbol):
            self._arrive()
        else:
            log.warning("No suggestions found, trying direct navigation", symbol=symbol)
            self.open_detail_url(symbol)

        log.info("Stock search completed", symbol=symbol, url=self.page.url)

    def _click_suggestion(self, symbol: str) -> bool:
        suggestion = self.page.locator(xpath(suggestion_selector(symbol))).first
        try:
            suggestion.wait_for(state="visible", timeout=self.config.suggestion_wait * 1000)
            suggestion.click()
        except PlaywrightError as exc:
            log.debug("Suggestion not clickable", symbol=symbol, error=str(exc))
            return False
        log.info("Clicked on suggestion", symbol=symbol)
        return True

    def open_detail_url(self, symbol: str) -> None:
        """Navigate directly to the quote page of ``symbol``.

        Raises:
            NavigationError: If the quote page cannot be loaded.
        """
        url = f"{self.config.nse_get_quote_url}?symbol={quote(symbol)}"
        log.info("Navigating directly to quote page", url=url)
        self._navigate(url)

    def dismiss_overlays(self) -> None:
        """Close cookie, notification, modal and advertisement overlays if present."""
        self._dismiss("cookie consent", COOKIE_CONSENT_BUTTON, wait=True)
        self._dismiss("notification popup", NOTIFICATION_CLOSE_BUTTON)
        self._dismiss("modal dialog", MODAL_CLOSE_BUTTON)
        self._dismiss("advertisement", AD_CLOSE_BUTTON)

    def _dismiss(self, name: str, selector: str, wait: bool = False) -> bool:
        button = self.page.locator(xpath(selector)).first
        try:
            if wait:
                button.wait_for(state="visible", timeout=self.config.overlay_wait * 1000)
            elif not button.is_visible():
                log.debug("No overlay found", overlay=name)
                return False
            button.click(timeout=self.config.overlay_wait * 1000)
        except PlaywrightError:
            log.debug("No overlay found", overlay=name)
            return False
        log.info("Overlay dismissed", overlay=name)
        return True

    def is_page_loaded(self) -> bool:
        """True once the document title mentions NSE (within the explicit wait)."""
        try:
            self.page.wait_for_function(
                "() => document.title.includes('NSE')",
                timeout=self.config.explicit_wait_ms,
            )
            return True
        except PlaywrightError as exc:
            log.error("Page not loaded properly", url=self.page.url, error=str(exc))
            return False

    @property
    def title(self) -> str:
        return self.page.title()

    @property
    def current_url(self) -> str:
        return self.page.url

    def _navigate(self, url: str) -> None:
        """Load ``url`` and wait for rendering to settle.

        Raises:
            NavigationError: On timeout, missing response or HTTP status >= 400.
        """
        try:
            response = self.page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.config.page_load_timeout_ms,
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationError(
                url=url,
                reason=f"Navigation timeout after {self.config.page_load_timeout}s",
            ) from exc
        except PlaywrightError as exc:
            raise NavigationError(url=url, reason=str(exc)) from exc

        if response is None:
            raise NavigationError(url=url, reason="No response received")

        if response.status >= 400:
            raise NavigationError(
                url=url,
                reason=f"HTTP {response.status}",
                status_code=response.status,
            )

        log.info("Navigation successful", url=url, status_code=response.status)
        self._arrive()

    def _arrive(self) -> None:
        """Settle, then dismiss whatever overlays the new page shows."""
        self._settle()
        self.dismiss_overlays()

    def _settle(self) -> None:
        try:
            self.page.wait_for_load_state("networkidle", timeout=self.config.explicit_wait_ms)
        except PlaywrightError:
            log.debug("Network did not go idle within explicit wait", url=self.page.url)
