"""Assertions and analysis over extracted stock records.

``StockValidator`` is what the checks call once a record has been
extracted. Every failed check raises ``StockAssertionError``, which pytest
reports as a test failure and the runner counts towards the retry policy.

The 52-week band tolerance is configuration, not a business rule: quote
pages occasionally show an intraday price that has not yet rolled into the
52-week figures, so the current price is allowed to sit slightly outside
the band (``price_range_tolerance`` of the high). A narrower, range-based
band (``price_range_warning_tolerance``) only produces a warning.
"""

from collections import Counter
from collections.abc import Iterable
from typing import Literal

from pydantic import BaseModel

from config.settings import GlobalConfig
from nse_stock.exceptions import StockAssertionError
from nse_stock.logger import get_logger
from nse_stock.models import StockRecord

log = get_logger(__name__)

PROFIT_LOSS_TOLERANCE = 0.01
NEAR_HIGH_THRESHOLD = 80.0
NEAR_LOW_THRESHOLD = 20.0

RangeZone = Literal["NEAR_HIGH", "NEAR_LOW", "MID_RANGE"]


class RangeAnalysis(BaseModel):
    """Where the current price sits inside the 52-week range.

    Attributes:
        position_percent: 0 at the 52-week low, 100 at the high.
        distance_from_high: ``high - current``.
        distance_from_low: ``current - low``.
        distance_from_high_percent: Distance from the high relative to the high.
        distance_from_low_percent: Distance from the low relative to the low.
        zone: NEAR_HIGH above 80 %, NEAR_LOW below 20 %, MID_RANGE otherwise.
    """

    symbol: str
    position_percent: float
    distance_from_high: float
    distance_from_low: float
    distance_from_high_percent: float
    distance_from_low_percent: float
    zone: RangeZone


class StockValidator:
    """Checks invariants of extracted records."""

    def __init__(self, config: GlobalConfig) -> None:
        self.config = config

    def assert_valid(self, record: StockRecord) -> None:
        """Record names a symbol and carries a positive price."""
        if not record.is_valid:
            raise StockAssertionError(
                record.symbol or "<empty>",
                "record_valid",
                "symbol missing or price not positive",
                current_price=record.current_price,
            )

    def assert_price_positive(self, record: StockRecord) -> None:
        if record.current_price <= 0:
            raise StockAssertionError(
                record.symbol,
                "price_positive",
                f"current price {record.current_price} is not positive",
            )

    def assert_symbol_matches(self, record: StockRecord, expected: str) -> None:
        """Displayed symbol contains the requested one (case-insensitive)."""
        if expected.upper() not in record.symbol.upper():
            raise StockAssertionError(
                record.symbol,
                "symbol_match",
                f"expected symbol {expected!r}",
                expected=expected,
            )

    def assert_52_week_consistency(self, record: StockRecord) -> bool:
        """Check the 52-week high/low against each other and the current price.

        Returns:
            False if the page shows no 52-week data (check skipped), True if
            the checks ran and passed.

        Raises:
            StockAssertionError: If high < low, or the current price lies
                outside ``[low - tol, high + tol]`` with
                ``tol = high * price_range_tolerance``.
        """
        if not record.has_52_week_data:
            log.warning("52-week data not available, skipping range check", symbol=record.symbol)
            return False

        high, low, price = record.week_high_52, record.week_low_52, record.current_price

        if high < low:
            raise StockAssertionError(
                record.symbol,
                "52_week_order",
                f"52-week high {high:.2f} is below 52-week low {low:.2f}",
                week_high_52=high,
                week_low_52=low,
            )

        if price > 0:
            tolerance = high * self.config.price_range_tolerance
            if not (low - tolerance <= price <= high + tolerance):
                raise StockAssertionError(
                    record.symbol,
                    "52_week_band",
                    f"price {price:.2f} outside {low:.2f}-{high:.2f} (tolerance {tolerance:.2f})",
                    current_price=price,
                    week_high_52=high,
                    week_low_52=low,
                    tolerance=tolerance,
                )

            soft = (high - low) * self.config.price_range_warning_tolerance
            if not (low - soft <= price <= high + soft):
                log.warning(
                    "Current price well outside 52-week range",
                    symbol=record.symbol,
                    current_price=price,
                    week_high_52=high,
                    week_low_52=low,
                )

        log.info("52-week range consistent", symbol=record.symbol, range=record.formatted_52_week_range)
        return True

    def assert_profit_loss(self, record: StockRecord, purchase_price: float | None = None) -> None:
        """Check profit/loss arithmetic and status for the record's purchase price.

        Args:
            record: Record to check.
            purchase_price: Expected purchase price; defaults to the record's own.

        Raises:
            StockAssertionError: If the derived figures disagree with the prices.
        """
        purchase = record.purchase_price if purchase_price is None else purchase_price
        if abs(record.purchase_price - purchase) > PROFIT_LOSS_TOLERANCE:
            raise StockAssertionError(
                record.symbol,
                "purchase_price",
                f"record carries {record.purchase_price}, expected {purchase}",
            )

        if purchase > 0 and record.current_price > 0:
            expected = record.current_price - purchase
            expected_percent = expected / purchase * 100
        else:
            expected = expected_percent = 0.0

        if abs(record.profit_loss - expected) > PROFIT_LOSS_TOLERANCE:
            raise StockAssertionError(
                record.symbol,
                "profit_loss",
                f"profit/loss {record.profit_loss:.2f} != {expected:.2f}",
            )
        if abs(record.profit_loss_percentage - expected_percent) > PROFIT_LOSS_TOLERANCE:
            raise StockAssertionError(
                record.symbol,
                "profit_loss_percentage",
                f"profit/loss % {record.profit_loss_percentage:.2f} != {expected_percent:.2f}",
            )

        expected_status = "PROFIT" if expected > 0 else "LOSS" if expected < 0 else "BREAK_EVEN"
        if record.profit_loss_status != expected_status:
            raise StockAssertionError(
                record.symbol,
                "profit_loss_status",
                f"status {record.profit_loss_status} != {expected_status}",
            )

        log.info(
            "Profit/loss verified",
            symbol=record.symbol,
            purchase_price=purchase,
            current_price=record.current_price,
            result=record.formatted_profit_loss,
            status=record.profit_loss_status,
        )

    def analyse_52_week_range(self, record: StockRecord) -> RangeAnalysis | None:
        """Position of the current price within the 52-week range.

        Returns:
            None when 52-week data is missing or the range is empty.
        """
        if not record.has_52_week_data or record.current_price <= 0:
            return None
        high, low, price = record.week_high_52, record.week_low_52, record.current_price
        span = high - low
        if span <= 0:
            return None

        position = (price - low) / span * 100
        if position > NEAR_HIGH_THRESHOLD:
            zone: RangeZone = "NEAR_HIGH"
        elif position < NEAR_LOW_THRESHOLD:
            zone = "NEAR_LOW"
        else:
            zone = "MID_RANGE"

        analysis = RangeAnalysis(
            symbol=record.symbol,
            position_percent=position,
            distance_from_high=high - price,
            distance_from_low=price - low,
            distance_from_high_percent=(high - price) / high * 100,
            distance_from_low_percent=(price - low) / low * 100,
            zone=zone,
        )
        log.info(
            "52-week range analysis",
            symbol=record.symbol,
            position=f"{position:.2f}%",
            zone=zone,
        )
        return analysis


def summarise_profit_loss(records: Iterable[StockRecord]) -> dict[str, int]:
    """Count records per profit/loss status, only those with a purchase price."""
    counts = Counter(
        record.profit_loss_status for record in records if record.purchase_price > 0
    )
    return {status: counts.get(status, 0) for status in ("PROFIT", "LOSS", "BREAK_EVEN")}
