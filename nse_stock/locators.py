"""Element locator strategy for NSE quote pages.

The quote page markup changes often and differs between A/B variants, so
each semantic field is described by an ordered list of XPath patterns,
most specific first and most generic last. ``ElementLocator`` walks that
list and returns the first non-empty text a field's acceptance rule allows.

The table is plain data (``LOCATOR_TABLE``); adding a selector for a new
page variant never requires touching the lookup code.

Miss semantics:
    A pattern that matches nothing is logged at DEBUG and the next pattern
    is tried. A field whose whole list is exhausted yields ``None``; turning
    that into a sentinel value is the extractor's job. Nothing here raises
    for a missing element.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Locator, Page

from config.settings import GlobalConfig
from nse_stock.logger import get_logger
from nse_stock.parsing import parse_price

log = get_logger(__name__)


class FieldKind(str, Enum):
    """Semantic fields read from a quote page."""

    SYMBOL = "symbol"
    HEADING = "heading"
    COMPANY_NAME = "company_name"
    CURRENT_PRICE = "current_price"
    PRICE_CHANGE = "price_change"
    PERCENTAGE_CHANGE = "percentage_change"
    WEEK_HIGH_52 = "week_high_52"
    WEEK_LOW_52 = "week_low_52"
    VOLUME = "volume"
    MARKET_CAP = "market_cap"


@dataclass(frozen=True)
class LocatorPattern:
    """One XPath selector.

    Attributes:
        selector: XPath expression (without the ``xpath=`` engine prefix).
        bounded_wait: Wait up to the explicit wait for a match before reading.
            Later, more generic patterns read immediately.
        strip_label: Label text removed from the match before it is judged,
            for selectors that match an element holding both label and value
            (e.g. ``52WH 1,234.00``).
    """

    selector: str
    bounded_wait: bool = False
    strip_label: str = ""

    def clean(self, raw: str) -> str:
        text = raw.replace(self.strip_label, "", 1) if self.strip_label else raw
        return text.strip()


def _any_text(text: str) -> bool:
    return bool(text)


def _rupee_price(text: str) -> bool:
    return "₹" in text and parse_price(text) > 0


def _absolute_change(text: str) -> bool:
    return "%" not in text


def _percentage(text: str) -> bool:
    return "%" in text


def _positive_price(text: str) -> bool:
    return parse_price(text) > 0


@dataclass(frozen=True)
class FieldLocators:
    """Ordered patterns for one field plus the rule a text must satisfy."""

    patterns: tuple[LocatorPattern, ...]
    accept: Callable[[str], bool] = field(default=_any_text)


def _patterns(*selectors: str) -> tuple[LocatorPattern, ...]:
    """The first selector of every list waits; the rest are immediate reads."""
    return tuple(
        LocatorPattern(selector, bounded_wait=index == 0)
        for index, selector in enumerate(selectors)
    )


def _week_52_patterns(label: str, short_label: str) -> tuple[LocatorPattern, ...]:
    return _patterns(
        f"//span[contains(text(),'{label}')]/following-sibling::span",
        f"//td[contains(text(),'{label}')]/following-sibling::td",
        f"//div[contains(text(),'{label}')]//following::span[contains(text(),'₹')]",
        f"//*[contains(text(),'{short_label}')]/following-sibling::*[1]",
    ) + (
        # Label and value rendered in one element: "52WH 1,234.00"
        LocatorPattern(f"//*[contains(text(),'{short_label}')]", strip_label=short_label),
    )


def _labelled_value_patterns(label: str, css_class: str) -> tuple[LocatorPattern, ...]:
    return _patterns(
        f"//span[contains(text(),'{label}')]/following-sibling::span",
        f"//td[contains(text(),'{label}')]/following-sibling::td",
        f"//*[contains(@class,'{css_class}')]",
    )


LOCATOR_TABLE: dict[FieldKind, FieldLocators] = {
    FieldKind.SYMBOL: FieldLocators(
        _patterns(
            "//h1[contains(@class,'symbol')] | //span[contains(@class,'symbol')]",
            "//div[contains(@class,'stock-info')]//h1",
        )
    ),
    FieldKind.HEADING: FieldLocators(_patterns("//title | //h1")),
    FieldKind.COMPANY_NAME: FieldLocators(
        _patterns(
            "//div[contains(@class,'company-name')]",
            "//span[contains(@class,'company')]",
            "//h2[contains(@class,'company')] | //h3[contains(@class,'company')]",
        )
    ),
    FieldKind.CURRENT_PRICE: FieldLocators(
        _patterns(
            "//span[contains(@class,'price') and contains(text(),'₹')] | //span[@id='lastPrice']",
            "//div[contains(@class,'price')]//span[contains(text(),'₹')]",
            "//*[contains(@class,'current-price')] | //*[contains(@class,'ltp')]",
            "//span[contains(text(),'₹')]",
        ),
        accept=_rupee_price,
    ),
    FieldKind.PRICE_CHANGE: FieldLocators(
        _patterns(
            "//span[contains(@class,'change') and not(contains(@class,'percent'))]",
            "//span[contains(@class,'pChange')]",
            "//*[contains(@class,'price-change')]",
        ),
        accept=_absolute_change,
    ),
    FieldKind.PERCENTAGE_CHANGE: FieldLocators(
        _patterns(
            "//span[contains(@class,'percent') or contains(text(),'%')]",
            "//span[contains(@class,'pChange') and contains(text(),'%')]",
        ),
        accept=_percentage,
    ),
    FieldKind.WEEK_HIGH_52: FieldLocators(
        _week_52_patterns("52 Week High", "52WH"), accept=_positive_price
    ),
    FieldKind.WEEK_LOW_52: FieldLocators(
        _week_52_patterns("52 Week Low", "52WL"), accept=_positive_price
    ),
    FieldKind.VOLUME: FieldLocators(_labelled_value_patterns("Volume", "volume")),
    FieldKind.MARKET_CAP: FieldLocators(_labelled_value_patterns("Market Cap", "market-cap")),
}

SEARCH_INPUT_PATTERNS: tuple[LocatorPattern, ...] = _patterns(
    "//input[@placeholder='Search for stocks, indices, ETFs & more']",
    "//input[contains(@placeholder,'Search')]",
    "//input[@id='search-box']",
    "//input[contains(@class,'search')]",
    "//input[@name='search']",
)


def xpath(selector: str) -> str:
    """Prefix a raw XPath with Playwright's selector engine name."""
    return f"xpath={selector}"


class ElementLocator:
    """Resolves semantic fields to text on a live page.

    Attributes:
        page: Playwright page showing a quote.
        config: Supplies the explicit wait used by bounded patterns.
        table: Field-to-pattern mapping, ``LOCATOR_TABLE`` unless overridden.
    """

    def __init__(
        self,
        page: Page,
        config: GlobalConfig,
        table: dict[FieldKind, FieldLocators] | None = None,
    ) -> None:
        self.page = page
        self.config = config
        self.table = table if table is not None else LOCATOR_TABLE

    def _wait_for(self, locator: Locator, state: str = "attached") -> bool:
        try:
            locator.first.wait_for(state=state, timeout=self.config.explicit_wait_ms)
            return True
        except PlaywrightError:
            return False

    def _texts(self, pattern: LocatorPattern) -> list[str]:
        locator = self.page.locator(xpath(pattern.selector))
        if pattern.bounded_wait and not self._wait_for(locator):
            return []
        try:
            return locator.all_inner_texts()
        except PlaywrightError as exc:
            log.debug("Locator read failed", selector=pattern.selector, error=str(exc))
            return []

    def locate(self, field_kind: FieldKind) -> str | None:
        """Return the first accepted, trimmed text for ``field_kind``.

        Args:
            field_kind: Field to look up.

        Returns:
            The matched text, or None when every pattern missed.
        """
        locators = self.table[field_kind]

        for pattern in locators.patterns:
            for raw in self._texts(pattern):
                text = pattern.clean(raw)
                if text and locators.accept(text):
                    log.debug(
                        "Field located",
                        field=field_kind.value,
                        selector=pattern.selector,
                        text=text[:60],
                    )
                    return text
            log.debug("Locator miss", field=field_kind.value, selector=pattern.selector)

        log.debug("All locators exhausted", field=field_kind.value)
        return None

    def locate_all(self, fields: Sequence[FieldKind] | None = None) -> dict[FieldKind, str | None]:
        """Locate several fields; defaults to every field in the table."""
        return {kind: self.locate(kind) for kind in (fields or list(self.table))}

    def find(
        self,
        patterns: Sequence[LocatorPattern],
        state: str = "visible",
    ) -> Locator | None:
        """Return the first element matched by ``patterns`` that reaches ``state``.

        Bounded patterns wait up to the explicit wait; the others only
        check for an element that is already there.
        """
        for pattern in patterns:
            locator = self.page.locator(xpath(pattern.selector))
            if pattern.bounded_wait:
                if self._wait_for(locator, state=state):
                    return locator.first
            else:
                try:
                    if locator.count() > 0 and (state != "visible" or locator.first.is_visible()):
                        return locator.first
                except PlaywrightError as exc:
                    log.debug("Locator check failed", selector=pattern.selector, error=str(exc))
            log.debug("Element not found", selector=pattern.selector, state=state)
        return None
