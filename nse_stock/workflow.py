"""Check orchestration: navigate, search, extract, assert.

A *check* is one named assertion set (``stock_information``,
``52_week_high_low``, ``profit_loss``) run against one symbol in one
browser. ``run_stock_checks`` fans the browsers out over worker threads;
each worker owns exactly one browser session for its lifetime, acquired
through ``DriverProvisioner.session`` so it is released on every exit path.
"""

import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from config.settings import GlobalConfig
from nse_stock.dataset import StockDataSet
from nse_stock.details import StockDetailsPage
from nse_stock.exceptions import NSEStockError, ProvisioningError, StockAssertionError
from nse_stock.logger import check_context, get_logger
from nse_stock.models import CheckResult, CheckStatus, StockRecord
from nse_stock.navigator import NSEHomePage
from nse_stock.provisioner import DriverProvisioner
from nse_stock.retry import RetryPolicy
from nse_stock.screenshots import capture_screenshot
from nse_stock.validator import StockValidator

log = get_logger(__name__)


class CheckSkipped(Exception):
    """Raised by a check whose precondition is not met on the page."""


class StockWorkflow:
    """Gets one symbol's quote page on screen and extracts it.

    Attributes:
        page: Page owned by the calling worker.
        config: Injected configuration.
        home: Navigator for the landing page and search.
        details: Quote page object.
    """

    def __init__(self, page: Page, config: GlobalConfig) -> None:
        self.page = page
        self.config = config
        self.home = NSEHomePage(page, config)
        self.details = StockDetailsPage(page, config, locator=self.home.locator)

    def fetch(self, symbol: str) -> StockRecord:
        """Open NSE, search ``symbol`` and extract its quote.

        Raises:
            NavigationError: If the landing or quote page cannot be loaded.
        """
        self.home.open()
        self.home.search(symbol)
        self.details.wait_for_page_load()
        return self.details.extract_stock_info()


CheckFunction = Callable[[StockRecord, StockValidator, float], StockRecord]


def check_stock_information(
    record: StockRecord, validator: StockValidator, purchase_price: float
) -> StockRecord:
    validator.assert_valid(record)
    validator.assert_price_positive(record)
    return record


def check_52_week_high_low(
    record: StockRecord, validator: StockValidator, purchase_price: float
) -> StockRecord:
    if not validator.assert_52_week_consistency(record):
        raise CheckSkipped(f"{record.symbol}: 52-week data not displayed")
    validator.analyse_52_week_range(record)
    return record


def check_profit_loss(
    record: StockRecord, validator: StockValidator, purchase_price: float
) -> StockRecord:
    if purchase_price <= 0:
        raise CheckSkipped(f"{record.symbol}: no purchase price in test data")
    validator.assert_price_positive(record)
    annotated = record.with_purchase_price(purchase_price)
    validator.assert_profit_loss(annotated, purchase_price)
    return annotated


CHECKS: dict[str, CheckFunction] = {
    "stock_information": check_stock_information,
    "52_week_high_low": check_52_week_high_low,
    "profit_loss": check_profit_loss,
}


def run_check(
    name: str,
    symbol: str,
    browser: str,
    workflow: StockWorkflow,
    validator: StockValidator,
    retry_policy: RetryPolicy,
    purchase_price: float = 0.0,
) -> CheckResult:
    """Run one check with retries, capturing screenshots per configuration.

    Args:
        name: Key into ``CHECKS``.
        symbol: Symbol under test.
        browser: Browser label for the result.
        workflow: Workflow bound to the worker's page.
        validator: Assertion helper.
        retry_policy: Shared retry counter.
        purchase_price: Portfolio purchase price (0.0 when unknown).

    Returns:
        The final attempt's result.
    """
    check = CHECKS[name]
    config = workflow.config
    attempts = 0
    started = time.perf_counter()

    with check_context(f"{name}[{browser}-{symbol}]", browser, symbol):
        while True:
            attempts += 1
            record: StockRecord | None = None
            status: CheckStatus
            message = ""
            try:
                record = workflow.fetch(symbol)
                validator.assert_symbol_matches(record, symbol)
                record = check(record, validator, purchase_price)
                status = "PASSED"
            except CheckSkipped as exc:
                status, message = "SKIPPED", str(exc)
            except StockAssertionError as exc:
                status, message = "FAILED", exc.message
            except (NSEStockError, PlaywrightError) as exc:
                status, message = "ERROR", str(exc)
            except Exception as exc:
                log.exception("Unexpected error in check")
                status, message = "ERROR", f"{type(exc).__name__}: {exc}"

            result = CheckResult(
                name=name,
                browser=browser,
                symbol=symbol,
                status=status,
                attempts=attempts,
                message=message,
                record=record,
            )

            if status in ("FAILED", "ERROR"):
                if config.screenshot_on_failure:
                    result.screenshot = capture_screenshot(workflow.page, status, config.screenshot_dir)
                log.error("Check failed", attempt=attempts, reason=message)
                if retry_policy.should_retry(result.test_id, message):
                    continue
            elif status == "PASSED" and config.screenshot_on_pass:
                result.screenshot = capture_screenshot(workflow.page, status, config.screenshot_dir)

            result.duration_seconds = time.perf_counter() - started
            log.info("Check finished", status=status, attempts=attempts)
            return result


@dataclass
class RunOutcome:
    """Everything a run produced."""

    results: list[CheckResult] = field(default_factory=list)
    provisioning_failures: list[ProvisioningError] = field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return not self.provisioning_failures and all(r.passed for r in self.results)


def run_browser_checks(
    provisioner: DriverProvisioner,
    browser: str,
    symbols: Sequence[str],
    checks: Sequence[str],
    config: GlobalConfig,
    data_set: StockDataSet,
    retry_policy: RetryPolicy,
) -> list[CheckResult]:
    """Run every check for every symbol in one browser session.

    Raises:
        ProvisioningError: If the browser cannot be launched.
    """
    validator = StockValidator(config)
    results: list[CheckResult] = []

    with provisioner.session(browser) as handle:
        workflow = StockWorkflow(handle.page, config)
        for symbol in symbols:
            for name in checks:
                results.append(
                    run_check(
                        name,
                        symbol,
                        browser,
                        workflow,
                        validator,
                        retry_policy,
                        purchase_price=data_set.purchase_price(symbol),
                    )
                )
    return results


def run_stock_checks(
    provisioner: DriverProvisioner,
    config: GlobalConfig,
    data_set: StockDataSet,
    symbols: Sequence[str],
    browsers: Sequence[str] | None = None,
    checks: Sequence[str] | None = None,
) -> RunOutcome:
    """Run checks across browsers, one worker thread per browser.

    Args:
        provisioner: Shared provisioner (sessions are thread-scoped).
        config: Injected configuration.
        data_set: Portfolio data for purchase prices.
        symbols: Symbols to check.
        browsers: Browsers to run; defaults to ``parallel_browsers`` in
            parallel mode, otherwise ``[config.browser]``.
        checks: Check names; defaults to all of ``CHECKS``.

    Returns:
        Collected results plus any provisioning failures.
    """
    if browsers is None:
        browsers = config.parallel_browsers if config.parallel_execution else [config.browser]
    checks = list(checks or CHECKS)
    retry_policy = RetryPolicy(config.max_retry_count)
    outcome = RunOutcome()

    log.info(
        "Starting stock checks",
        browsers=list(browsers),
        symbols=list(symbols),
        checks=checks,
    )

    with ThreadPoolExecutor(max_workers=max(len(browsers), 1), thread_name_prefix="worker") as pool:
        futures = [
            (
                browser,
                pool.submit(
                    run_browser_checks,
                    provisioner,
                    browser,
                    symbols,
                    checks,
                    config,
                    data_set,
                    retry_policy,
                ),
            )
            for browser in browsers
        ]
        for browser, future in futures:
            try:
                outcome.results.extend(future.result())
            except ProvisioningError as exc:
                log.error("Browser could not be provisioned", browser=browser, error=exc.message)
                outcome.provisioning_failures.append(exc)
                outcome.results.extend(
                    CheckResult(
                        name=name,
                        browser=browser,
                        symbol=symbol,
                        status="ERROR",
                        message=exc.message,
                    )
                    for symbol in symbols
                    for name in checks
                )

    log.info(
        "Stock checks finished",
        total=len(outcome.results),
        passed=sum(1 for r in outcome.results if r.status == "PASSED"),
        failed=sum(1 for r in outcome.results if r.status in ("FAILED", "ERROR")),
    )
    return outcome
