"""Tests for record assertions and 52-week analysis.

Validates StockValidator using:
- Parametrized tests for boundary conditions of the 52-week band
- Property-based testing (hypothesis) for the profit/loss arithmetic
- Invariant checks on the zone classification

Testing Philosophy:
    The validator is what turns a scraped page into a pass or a fail. A
    false failure costs a retry and a screenshot; a false pass hides a
    broken page. Both directions are tested.
"""

from typing import Callable

import pytest
from hypothesis import given, strategies as st

from config.settings import GlobalConfig
from nse_stock.exceptions import StockAssertionError
from nse_stock.models import StockRecord
from nse_stock.validator import StockValidator, summarise_profit_loss


@pytest.fixture
def validator(mock_config: GlobalConfig) -> StockValidator:
    return StockValidator(mock_config)


def quote(price: float, high: float = 1000.0, low: float = 500.0, **fields) -> StockRecord:
    return StockRecord(
        symbol="INFY", current_price=price, week_high_52=high, week_low_52=low, **fields
    )


class TestBasicAssertions:
    """Test suite for identity and price assertions."""

    def test_valid_record_passes(self, validator: StockValidator, sample_record: StockRecord) -> None:
        validator.assert_valid(sample_record)
        validator.assert_price_positive(sample_record)
        validator.assert_symbol_matches(sample_record, "tatamotors")

    def test_unknown_symbol_is_invalid(self, validator: StockValidator) -> None:
        with pytest.raises(StockAssertionError) as exc_info:
            validator.assert_valid(StockRecord(symbol="UNKNOWN", current_price=10.0))

        assert exc_info.value.check == "record_valid"

    def test_zero_price_fails(self, validator: StockValidator) -> None:
        with pytest.raises(StockAssertionError) as exc_info:
            validator.assert_price_positive(StockRecord(symbol="INFY"))

        assert exc_info.value.symbol == "INFY"
        assert exc_info.value.check == "price_positive"

    def test_symbol_mismatch(self, validator: StockValidator, sample_record: StockRecord) -> None:
        with pytest.raises(StockAssertionError, match="RELIANCE"):
            validator.assert_symbol_matches(sample_record, "RELIANCE")

    def test_assertion_errors_are_assertion_errors(self, validator: StockValidator) -> None:
        """pytest must report these as failures, not errors."""
        with pytest.raises(AssertionError):
            validator.assert_price_positive(StockRecord(symbol="INFY"))


class Test52WeekConsistency:
    """Test suite for the 52-week band assertion."""

    def test_missing_data_skips(self, validator: StockValidator) -> None:
        assert validator.assert_52_week_consistency(StockRecord(symbol="INFY", current_price=1.0)) is False

    def test_high_below_low_fails(self, validator: StockValidator) -> None:
        with pytest.raises(StockAssertionError) as exc_info:
            validator.assert_52_week_consistency(quote(600.0, high=500.0, low=700.0))

        assert exc_info.value.check == "52_week_order"

    @pytest.mark.parametrize(
        "price",
        [500.0, 750.0, 1000.0, 1099.0, 401.0],
        ids=["at-low", "mid", "at-high", "just-inside-upper-tolerance", "just-inside-lower-tolerance"],
    )
    def test_price_within_tolerated_band(self, validator: StockValidator, price: float) -> None:
        """Tolerance is 10 % of the high: the band is [400, 1100]."""
        assert validator.assert_52_week_consistency(quote(price)) is True

    @pytest.mark.parametrize("price", [1101.0, 399.0, 5000.0])
    def test_price_outside_tolerated_band_fails(self, validator: StockValidator, price: float) -> None:
        with pytest.raises(StockAssertionError) as exc_info:
            validator.assert_52_week_consistency(quote(price))

        assert exc_info.value.check == "52_week_band"

    def test_tolerance_is_configurable(self, config_factory: Callable[..., GlobalConfig]) -> None:
        strict = StockValidator(config_factory(price_range_tolerance=0.0))

        with pytest.raises(StockAssertionError):
            strict.assert_52_week_consistency(quote(1000.5))

    def test_soft_band_only_warns(self, validator: StockValidator, log_records: list) -> None:
        """Only a price more than 20 % of the range past a bound warns."""
        assert validator.assert_52_week_consistency(quote(1090.0, high=1000.0, low=500.0)) is True
        assert validator.assert_52_week_consistency(quote(1050.0, high=1000.0, low=900.0)) is True

        warnings = [r for r in log_records if r["level"].name == "WARNING"]
        assert len(warnings) == 1
        assert warnings[0]["extra"]["current_price"] == 1050.0

    def test_equal_high_and_low(self, validator: StockValidator) -> None:
        assert validator.assert_52_week_consistency(quote(800.0, high=800.0, low=800.0)) is True


class TestProfitLoss:
    """Test suite for the profit/loss assertion."""

    @pytest.mark.parametrize("current,purchase", [(550.0, 500.0), (450.0, 500.0), (500.0, 500.0)])
    def test_consistent_record_passes(
        self, validator: StockValidator, current: float, purchase: float
    ) -> None:
        record = StockRecord(symbol="TATAMOTORS", current_price=current, purchase_price=purchase)

        validator.assert_profit_loss(record, purchase)

    def test_defaults_to_record_purchase_price(self, validator: StockValidator) -> None:
        validator.assert_profit_loss(
            StockRecord(symbol="SBIN", current_price=620.0, purchase_price=600.0)
        )

    def test_wrong_purchase_price_fails(self, validator: StockValidator) -> None:
        record = StockRecord(symbol="SBIN", current_price=620.0, purchase_price=600.0)

        with pytest.raises(StockAssertionError) as exc_info:
            validator.assert_profit_loss(record, 550.0)

        assert exc_info.value.check == "purchase_price"

    def test_no_purchase_price_is_break_even(self, validator: StockValidator) -> None:
        validator.assert_profit_loss(StockRecord(symbol="ITC", current_price=430.0), 0.0)

    @given(
        current=st.floats(min_value=0.01, max_value=1e5, allow_nan=False),
        purchase=st.floats(min_value=0.01, max_value=1e5, allow_nan=False),
    )
    def test_model_arithmetic_always_passes(self, current: float, purchase: float) -> None:
        """The computed fields can never disagree with the assertion."""
        validator = StockValidator(GlobalConfig.model_construct())
        record = StockRecord(symbol="X", current_price=current, purchase_price=purchase)

        validator.assert_profit_loss(record, purchase)


class TestRangeAnalysis:
    """Test suite for 52-week range positioning."""

    @pytest.mark.parametrize(
        "price,zone",
        [(950.0, "NEAR_HIGH"), (550.0, "NEAR_LOW"), (750.0, "MID_RANGE"), (900.0, "MID_RANGE")],
    )
    def test_zones(self, validator: StockValidator, price: float, zone: str) -> None:
        analysis = validator.analyse_52_week_range(quote(price))

        assert analysis is not None
        assert analysis.zone == zone

    def test_distances(self, validator: StockValidator) -> None:
        analysis = validator.analyse_52_week_range(quote(750.0))

        assert analysis.position_percent == pytest.approx(50.0)
        assert analysis.distance_from_high == pytest.approx(250.0)
        assert analysis.distance_from_low == pytest.approx(250.0)
        assert analysis.distance_from_high_percent == pytest.approx(25.0)
        assert analysis.distance_from_low_percent == pytest.approx(50.0)

    @pytest.mark.parametrize(
        "record",
        [
            StockRecord(symbol="INFY", current_price=750.0),
            quote(0.0),
            quote(800.0, high=800.0, low=800.0),
        ],
        ids=["no-52-week-data", "no-price", "empty-range"],
    )
    def test_not_analysable(self, validator: StockValidator, record: StockRecord) -> None:
        assert validator.analyse_52_week_range(record) is None


class TestSummary:
    """Test suite for portfolio summaries."""

    def test_counts_per_status(self) -> None:
        records = [
            StockRecord(symbol="A", current_price=110.0, purchase_price=100.0),
            StockRecord(symbol="B", current_price=120.0, purchase_price=100.0),
            StockRecord(symbol="C", current_price=90.0, purchase_price=100.0),
            StockRecord(symbol="D", current_price=100.0, purchase_price=100.0),
            StockRecord(symbol="E", current_price=100.0),
        ]

        assert summarise_profit_loss(records) == {"PROFIT": 2, "LOSS": 1, "BREAK_EVEN": 1}

    def test_empty(self) -> None:
        assert summarise_profit_loss([]) == {"PROFIT": 0, "LOSS": 0, "BREAK_EVEN": 0}
