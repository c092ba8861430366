"""Conversion of located quote-page text into a ``StockRecord``.

Extraction is total: whatever subset of fields the locator found, the
extractor returns a structurally complete record. Missing values become
sentinels (``0.0`` for numbers, ``"N/A"`` for free-form strings,
``"UNKNOWN"`` / ``"Unknown Company"`` for identity fields) and each
substitution is logged at WARNING so a degraded page is visible in the
run log without failing the check that happens not to need that field.

Symbol resolution falls back through three tiers: the dedicated symbol
element, the first word of the page heading, then the ``symbol`` query
parameter of the page address.
"""

from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from nse_stock.locators import FieldKind
from nse_stock.logger import get_logger
from nse_stock.models import NOT_AVAILABLE, UNKNOWN_COMPANY, UNKNOWN_SYMBOL, StockRecord
from nse_stock.parsing import first_token, parse_percentage, parse_price, symbol_from_url

log = get_logger(__name__)


class LocatedFields(BaseModel):
    """Raw text per field as returned by ``ElementLocator``.

    Attributes:
        texts: Field kind to located text (absent or None on a miss).
        page_url: Address of the page the texts came from.
    """

    model_config = ConfigDict(frozen=True)

    texts: dict[FieldKind, str | None] = Field(default_factory=dict)
    page_url: str = ""

    def get(self, field_kind: FieldKind) -> str | None:
        return self.texts.get(field_kind)

    @classmethod
    def from_mapping(cls, texts: Mapping[FieldKind, str | None], page_url: str) -> "LocatedFields":
        return cls(texts=dict(texts), page_url=page_url)


class StockDataExtractor:
    """Builds ``StockRecord`` objects from located text."""

    def extract(self, located: LocatedFields) -> StockRecord:
        """Convert located text into a record, substituting sentinels.

        Args:
            located: Texts gathered from one quote page.

        Returns:
            A fully populated record. Never raises for missing data.
        """
        symbol = self.extract_symbol(located)
        record = StockRecord(
            symbol=symbol,
            company_name=self.extract_company_name(located, symbol),
            current_price=self._number(located, FieldKind.CURRENT_PRICE, symbol),
            price_change=self._number(located, FieldKind.PRICE_CHANGE, symbol),
            percentage_change=self._number(
                located, FieldKind.PERCENTAGE_CHANGE, symbol, percentage=True
            ),
            week_high_52=self._number(located, FieldKind.WEEK_HIGH_52, symbol),
            week_low_52=self._number(located, FieldKind.WEEK_LOW_52, symbol),
            volume=self._free_text(located, FieldKind.VOLUME, symbol),
            market_cap=self._free_text(located, FieldKind.MARKET_CAP, symbol),
        )
        log.info("Stock record extracted", symbol=record.symbol, price=record.current_price)
        return record

    def extract_symbol(self, located: LocatedFields) -> str:
        structured = first_token(located.get(FieldKind.SYMBOL))
        if structured:
            return structured

        heading = first_token(located.get(FieldKind.HEADING))
        if heading:
            log.debug("Symbol taken from page heading", symbol=heading)
            return heading

        from_url = symbol_from_url(located.page_url)
        if from_url:
            log.debug("Symbol taken from page URL", symbol=from_url, url=located.page_url)
            return from_url

        log.warning("Symbol not found, using sentinel", url=located.page_url)
        return UNKNOWN_SYMBOL

    def extract_company_name(self, located: LocatedFields, symbol: str = "") -> str:
        name = (located.get(FieldKind.COMPANY_NAME) or "").strip()
        if name:
            return name
        log.warning("Company name not found, using sentinel", symbol=symbol)
        return UNKNOWN_COMPANY

    def _number(
        self,
        located: LocatedFields,
        field_kind: FieldKind,
        symbol: str,
        percentage: bool = False,
    ) -> float:
        text = located.get(field_kind)
        if not text:
            log.warning("Field not found, using 0.0", field=field_kind.value, symbol=symbol)
            return 0.0

        value = parse_percentage(text) if percentage else parse_price(text)
        if field_kind in (FieldKind.CURRENT_PRICE, FieldKind.WEEK_HIGH_52, FieldKind.WEEK_LOW_52):
            # price fields are unsigned in the model
            value = abs(value)
        return value

    def _free_text(self, located: LocatedFields, field_kind: FieldKind, symbol: str) -> str:
        text = (located.get(field_kind) or "").strip()
        if text:
            return text
        log.warning("Field not found, using N/A", field=field_kind.value, symbol=symbol)
        return NOT_AVAILABLE
