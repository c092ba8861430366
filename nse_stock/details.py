"""Page object for the NSE equity quote page."""

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from config.settings import GlobalConfig
from nse_stock.extractor import LocatedFields, StockDataExtractor
from nse_stock.locators import ElementLocator, FieldKind, xpath
from nse_stock.logger import get_logger
from nse_stock.models import StockRecord
from nse_stock.parsing import parse_price

log = get_logger(__name__)

PAGE_LOADED_SELECTOR = (
    "//span[contains(@class,'price')] | //span[contains(text(),'₹')] "
    "| //*[contains(@class,'stock-price')]"
)
STOCK_INFO_SELECTOR = "//span[contains(text(),'₹')] | //*[contains(@class,'price')]"


class StockDetailsPage:
    """Reads quote data from the currently displayed quote page.

    Attributes:
        page: Playwright page showing a quote.
        config: Supplies the explicit wait.
        locator: Field locator bound to the same page.
        extractor: Converts located text into a StockRecord.
    """

    def __init__(
        self,
        page: Page,
        config: GlobalConfig,
        locator: ElementLocator | None = None,
        extractor: StockDataExtractor | None = None,
    ) -> None:
        self.page = page
        self.config = config
        self.locator = locator or ElementLocator(page, config)
        self.extractor = extractor or StockDataExtractor()

    def wait_for_page_load(self) -> bool:
        """Wait until any price element is visible, then for the network to settle.

        Returns:
            True if a price element appeared within the explicit wait. A
            timeout is logged, not raised; extraction then yields sentinels.
        """
        try:
            self.page.locator(xpath(PAGE_LOADED_SELECTOR)).first.wait_for(
                state="visible", timeout=self.config.explicit_wait_ms
            )
        except PlaywrightError as exc:
            log.error("Quote page did not render a price", url=self.page.url, error=str(exc))
            return False

        try:
            self.page.wait_for_load_state("networkidle", timeout=self.config.explicit_wait_ms)
        except PlaywrightError:
            log.debug("Network did not go idle, continuing", url=self.page.url)

        log.info("Stock details page loaded", url=self.page.url)
        return True

    def is_stock_info_displayed(self) -> bool:
        try:
            return self.page.locator(xpath(STOCK_INFO_SELECTOR)).count() > 0
        except PlaywrightError as exc:
            log.debug("Stock info check failed", error=str(exc))
            return False

    def locate_fields(self) -> LocatedFields:
        """Run every field lookup against the current page."""
        return LocatedFields.from_mapping(self.locator.locate_all(), page_url=self.page.url)

    def extract_stock_info(self) -> StockRecord:
        """Locate and parse every field into a StockRecord."""
        log.info("Extracting stock information", url=self.page.url)
        return self.extractor.extract(self.locate_fields())

    def extract_52_week_high(self) -> float:
        return parse_price(self.locator.locate(FieldKind.WEEK_HIGH_52))

    def extract_52_week_low(self) -> float:
        return parse_price(self.locator.locate(FieldKind.WEEK_LOW_52))
