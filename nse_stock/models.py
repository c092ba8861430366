"""Stock record model.

``StockRecord`` is the single value object passed from extraction to the
assertions. Profit/loss figures are computed fields derived from
``current_price`` and ``purchase_price`` on every read, so they always agree
with the last assigned prices and cannot be set on their own.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

ProfitLossStatus = Literal["PROFIT", "LOSS", "BREAK_EVEN"]

UNKNOWN_SYMBOL = "UNKNOWN"
UNKNOWN_COMPANY = "Unknown Company"
NOT_AVAILABLE = "N/A"


class StockRecord(BaseModel):
    """Quote data for one symbol as displayed on the NSE quote page.

    Missing fields hold sentinel values (0.0, ``"N/A"``, ``"Unknown Company"``)
    rather than ``None``, so every record is structurally complete.

    Attributes:
        symbol: Exchange symbol, e.g. ``TATAMOTORS``.
        company_name: Display name of the listed company.
        current_price: Last traded price (non-negative).
        price_change: Absolute change since the previous close (signed).
        percentage_change: Relative change since the previous close (signed).
        week_high_52: Trailing 52-week high (0.0 when not displayed).
        week_low_52: Trailing 52-week low (0.0 when not displayed).
        volume: Traded volume as displayed.
        market_cap: Market capitalisation as displayed.
        purchase_price: Optional portfolio purchase price (0.0 when unset).
    """

    model_config = ConfigDict(validate_assignment=True)

    symbol: str = Field(default="", description="Exchange symbol")
    company_name: str = Field(default=UNKNOWN_COMPANY, description="Company display name")
    current_price: float = Field(default=0.0, ge=0.0, description="Last traded price")
    price_change: float = Field(default=0.0, description="Absolute change")
    percentage_change: float = Field(default=0.0, description="Percentage change")
    week_high_52: float = Field(default=0.0, ge=0.0, description="52-week high")
    week_low_52: float = Field(default=0.0, ge=0.0, description="52-week low")
    volume: str = Field(default=NOT_AVAILABLE, description="Traded volume")
    market_cap: str = Field(default=NOT_AVAILABLE, description="Market capitalisation")
    purchase_price: float = Field(default=0.0, ge=0.0, description="Purchase price")

    @computed_field
    @property
    def profit_loss(self) -> float:
        """``current_price - purchase_price``; 0.0 unless both prices are set."""
        if self.purchase_price > 0 and self.current_price > 0:
            return self.current_price - self.purchase_price
        return 0.0

    @computed_field
    @property
    def profit_loss_percentage(self) -> float:
        """Profit/loss relative to the purchase price, in percent."""
        if self.purchase_price > 0 and self.current_price > 0:
            return self.profit_loss / self.purchase_price * 100
        return 0.0

    @computed_field
    @property
    def profit_loss_status(self) -> ProfitLossStatus:
        """``PROFIT``, ``LOSS`` or ``BREAK_EVEN`` from the sign of profit_loss."""
        if self.profit_loss > 0:
            return "PROFIT"
        if self.profit_loss < 0:
            return "LOSS"
        return "BREAK_EVEN"

    @property
    def is_profit(self) -> bool:
        return self.profit_loss > 0

    @property
    def is_loss(self) -> bool:
        return self.profit_loss < 0

    @property
    def is_valid(self) -> bool:
        """A record is usable when it names a symbol and carries a price."""
        return bool(self.symbol) and self.symbol != UNKNOWN_SYMBOL and self.current_price > 0

    @property
    def has_52_week_data(self) -> bool:
        return self.week_high_52 > 0 and self.week_low_52 > 0

    @property
    def formatted_current_price(self) -> str:
        return f"₹{self.current_price:.2f}"

    @property
    def formatted_profit_loss(self) -> str:
        """E.g. ``+₹50.00 (10.00%)`` or ``-₹12.50 (-2.50%)``."""
        sign = "+" if self.profit_loss >= 0 else "-"
        return (
            f"{sign}₹{abs(self.profit_loss):.2f} "
            f"({self.profit_loss_percentage:.2f}%)"
        )

    @property
    def formatted_52_week_range(self) -> str:
        if not self.has_52_week_data:
            return NOT_AVAILABLE
        return f"₹{self.week_low_52:.2f} - ₹{self.week_high_52:.2f}"

    def with_purchase_price(self, purchase_price: float) -> "StockRecord":
        """Return a copy annotated with a purchase price (validated)."""
        data = self.model_dump(exclude=set(type(self).model_computed_fields))
        data["purchase_price"] = purchase_price
        return type(self).model_validate(data)

    def __str__(self) -> str:
        return (
            f"{self.symbol} ({self.company_name}) {self.formatted_current_price} "
            f"change={self.price_change:+.2f} ({self.percentage_change:+.2f}%) "
            f"52w={self.formatted_52_week_range} P/L={self.formatted_profit_loss} "
            f"[{self.profit_loss_status}]"
        )


CheckStatus = Literal["PASSED", "FAILED", "SKIPPED", "ERROR"]


class CheckResult(BaseModel):
    """Outcome of one check against one symbol in one browser.

    Attributes:
        name: Check name, e.g. ``profit_loss``.
        browser: Browser the check ran in.
        symbol: Symbol under test.
        status: PASSED, FAILED (assertion), SKIPPED or ERROR (provisioning,
            navigation or anything unexpected).
        attempts: Number of runs including retries.
        message: Failure or skip reason.
        record: Extracted record, when extraction got that far.
        screenshot: Screenshot captured for this outcome, if any.
    """

    name: str
    browser: str
    symbol: str
    status: CheckStatus
    attempts: int = 1
    duration_seconds: float = 0.0
    message: str = ""
    record: StockRecord | None = None
    screenshot: Path | None = None

    @property
    def test_id(self) -> str:
        return f"{self.name}[{self.browser}-{self.symbol}]"

    @property
    def passed(self) -> bool:
        return self.status in ("PASSED", "SKIPPED")
