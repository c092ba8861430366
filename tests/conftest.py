"""Pytest configuration and shared fixtures for the NSE stock validator tests.

This module provides hermetic test infrastructure with the following guarantees:
- No browser is ever launched and no network request is made
- Deterministic execution (fixed test data, no sleeps)
- Isolated state (fresh GlobalConfig per test, all paths under tmp_path)

Design Rationale:
    Playwright pages are MagicMocks keyed by XPath: ``fake_page_factory``
    maps each selector to the texts it "matches", which is all the locator
    strategy ever asks of a page. Unknown selectors match nothing and time
    out on waits, exactly like a real page missing that element.
"""

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from loguru import logger
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from pytest_mock import MockerFixture

from config.settings import GlobalConfig, load_config
from nse_stock.models import StockRecord

SAMPLE_TEST_DATA: dict[str, Any] = {
    "nifty50_stocks": [
        {"symbol": "TATAMOTORS", "companyName": "Tata Motors Limited", "purchasePrice": 500.0},
        {"symbol": "RELIANCE", "companyName": "Reliance Industries Limited", "purchasePrice": 2400.0},
        {"symbol": "INFY", "companyName": "Infosys Limited", "purchasePrice": 1450.0},
    ],
    "test_scenarios": [
        {"testName": "stock_information", "description": "Verify quote page data"},
        {"testName": "profit_loss", "description": "Profit/loss against purchase price"},
    ],
}


@pytest.fixture
def test_data_file(tmp_path: Path) -> Path:
    """Write the sample portfolio file and return its path."""
    path = tmp_path / "stocks.json"
    path.write_text(json.dumps(SAMPLE_TEST_DATA), encoding="utf-8")
    return path


@pytest.fixture
def test_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, test_data_file: Path) -> dict[str, str]:
    """Set test-safe environment variables for GlobalConfig.

    Short waits keep failure paths fast; every output directory lives
    under tmp_path.
    """
    env = {
        "APP_NAME": "NSE-Stock-Test",
        "ENVIRONMENT": "test",
        "DEBUG": "false",
        "BROWSER": "chrome",
        "HEADLESS": "true",
        "IMPLICIT_WAIT": "1",
        "EXPLICIT_WAIT": "1",
        "PAGE_LOAD_TIMEOUT": "5",
        "PROVISIONING_TIMEOUT": "5",
        "OVERLAY_WAIT": "0.1",
        "SUGGESTION_WAIT": "0.1",
        "NSE_BASE_URL": "https://www.nseindia.com/",
        "NSE_GET_QUOTE_URL": "https://www.nseindia.com/get-quotes/equity",
        "TEST_STOCKS": "TATAMOTORS,RELIANCE,INFY",
        "MAX_RETRY_COUNT": "1",
        "LOG_LEVEL": "DEBUG",
        "LOG_DIR": str(tmp_path / "logs"),
        "LOG_ROTATION": "1 day",
        "LOG_RETENTION": "1 day",
        "REPORT_DIR": str(tmp_path / "reports"),
        "SCREENSHOT_DIR": str(tmp_path / "screenshots"),
        "TEST_DATA_PATH": str(test_data_file),
    }
    monkeypatch.delenv("DRIVER_PATH", raising=False)
    monkeypatch.delenv("PARALLEL_EXECUTION", raising=False)
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture
def mock_config(test_env: dict[str, str]) -> GlobalConfig:
    """Provide an isolated GlobalConfig with safe test defaults.

    Example:
        def test_something(mock_config: GlobalConfig) -> None:
            assert mock_config.headless is True
    """
    return load_config()


@pytest.fixture
def config_factory(test_env: dict[str, str]) -> Callable[..., GlobalConfig]:
    """Build a GlobalConfig from the test environment plus overrides."""

    def _build(**overrides: Any) -> GlobalConfig:
        return load_config(**overrides)

    return _build


@pytest.fixture
def fake_page_factory(mocker: MockerFixture) -> Callable[..., MagicMock]:
    """Factory fixture for Playwright Page mocks driven by XPath.

    Args of the returned factory:
        texts: Raw XPath selector to the inner texts it matches.
        url: Value of ``page.url``.
        title: Value returned by ``page.title()``.

    The same selector always yields the same locator mock, so tests can
    inspect clicks and fills via ``page.locator("xpath=" + selector)``.

    Example:
        def test_price(fake_page_factory):
            page = fake_page_factory({"//span[@id='lastPrice']": ["₹950.00"]})
    """

    def _build(
        texts: dict[str, list[str]] | None = None,
        url: str = "https://www.nseindia.com/",
        title: str = "NSE - National Stock Exchange of India Ltd",
    ) -> MagicMock:
        texts = texts or {}
        cache: dict[str, MagicMock] = {}

        def _locator(selector: str) -> MagicMock:
            key = selector.removeprefix("xpath=")
            if key not in cache:
                matches = list(texts.get(key, []))
                locator = mocker.MagicMock(name=f"locator:{key[:40]}")
                locator.all_inner_texts.return_value = matches
                locator.count.return_value = len(matches)
                locator.first.is_visible.return_value = bool(matches)
                if not matches:
                    locator.first.wait_for.side_effect = PlaywrightTimeoutError(
                        f"Timeout waiting for {key}"
                    )
                cache[key] = locator
            return cache[key]

        page = mocker.MagicMock(name="page")
        page.url = url
        page.title.return_value = title
        page.locator.side_effect = _locator
        page.goto.return_value = mocker.MagicMock(status=200)
        return page

    return _build


@pytest.fixture
def sample_record() -> StockRecord:
    """A fully populated TATAMOTORS quote."""
    return StockRecord(
        symbol="TATAMOTORS",
        company_name="Tata Motors Limited",
        current_price=950.0,
        price_change=12.5,
        percentage_change=1.33,
        week_high_52=1179.0,
        week_low_52=700.0,
        volume="1,23,45,678",
        market_cap="3,49,000 Cr",
    )


@pytest.fixture
def log_records() -> Iterator[list[dict[str, Any]]]:
    """Capture loguru records emitted during the test."""
    records: list[dict[str, Any]] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


# Pytest configuration
def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers.

    Args:
        config: Pytest config object.
    """
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests requiring full stack",
    )
