"""Live pytest suite wiring: browsers, retries, screenshots and reports.

These tests drive real browsers against nseindia.com and are excluded from
the default ``testpaths``. Run them explicitly:

    pytest suites -m live
    pytest suites -m live --browser firefox
    PARALLEL_EXECUTION=true pytest suites -m live

Design Rationale:
    Every test gets its browser through ``DriverProvisioner.session`` so the
    session is released on pass, failure and error alike. Retries are done
    at the protocol level: a failed test is re-run in full (fixtures
    included) until ``max_retry_count`` is spent, and only the final
    attempt is reported.
"""

import time
from collections.abc import Callable, Iterator
from typing import Any

import pytest
from _pytest.runner import runtestprotocol

from config.settings import GlobalConfig, load_config
from nse_stock.dataset import StockDataSet, load_test_data
from nse_stock.logger import check_context, configure_logging, get_logger
from nse_stock.models import CheckResult, StockRecord
from nse_stock.provisioner import DriverHandle, DriverProvisioner
from nse_stock.reporter import ReportGenerator
from nse_stock.retry import RetryPolicy
from nse_stock.screenshots import capture_screenshot
from nse_stock.validator import StockValidator
from nse_stock.workflow import CHECKS, CheckSkipped, StockWorkflow

log = get_logger(__name__)

CONFIG_KEY = pytest.StashKey[GlobalConfig]()
RETRY_KEY = pytest.StashKey[RetryPolicy]()
PROVISIONER_KEY = pytest.StashKey[DriverProvisioner]()
RESULTS_KEY = pytest.StashKey[list[CheckResult]]()
RECORD_KEY = pytest.StashKey[StockRecord]()
STARTED_KEY = pytest.StashKey[float]()


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--browser",
        action="store",
        default=None,
        help="Run live checks in this browser only (chrome, firefox, edge)",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Build the run's configuration, logging and shared collaborators."""
    config.addinivalue_line("markers", "live: drives a real browser against nseindia.com")

    nse_config = load_config()
    configure_logging(nse_config)
    config.stash[CONFIG_KEY] = nse_config
    config.stash[RETRY_KEY] = RetryPolicy(nse_config.max_retry_count)
    config.stash[PROVISIONER_KEY] = DriverProvisioner(nse_config)
    config.stash[RESULTS_KEY] = []


def _browsers(config: pytest.Config) -> list[str]:
    nse_config = config.stash[CONFIG_KEY]
    selected = config.getoption("--browser")
    if selected:
        return [selected.lower()]
    if nse_config.parallel_execution:
        return list(nse_config.parallel_browsers)
    return [nse_config.browser]


def pytest_generate_tests(metafunc: pytest.Metafunc) -> None:
    """Parametrise ``browser_name`` and ``symbol`` from configuration."""
    nse_config = metafunc.config.stash[CONFIG_KEY]
    if "browser_name" in metafunc.fixturenames:
        metafunc.parametrize("browser_name", _browsers(metafunc.config))
    if "symbol" in metafunc.fixturenames:
        metafunc.parametrize("symbol", nse_config.test_stocks)


@pytest.fixture(scope="session")
def nse_config(pytestconfig: pytest.Config) -> GlobalConfig:
    return pytestconfig.stash[CONFIG_KEY]


@pytest.fixture(scope="session")
def data_set(nse_config: GlobalConfig) -> StockDataSet:
    return load_test_data(nse_config.test_data_path)


@pytest.fixture(scope="session")
def validator(nse_config: GlobalConfig) -> StockValidator:
    return StockValidator(nse_config)


@pytest.fixture
def driver_handle(
    pytestconfig: pytest.Config,
    browser_name: str,
) -> Iterator[DriverHandle]:
    """A fresh browser session for one test, released afterwards."""
    provisioner = pytestconfig.stash[PROVISIONER_KEY]
    with provisioner.session(browser_name) as handle:
        yield handle


@pytest.fixture
def workflow(driver_handle: DriverHandle, nse_config: GlobalConfig) -> StockWorkflow:
    return StockWorkflow(driver_handle.page, nse_config)


@pytest.fixture
def run_named_check(
    request: pytest.FixtureRequest,
    workflow: StockWorkflow,
    validator: StockValidator,
    data_set: StockDataSet,
) -> Callable[[str, str], StockRecord]:
    """Fetch a symbol and apply one of the ``CHECKS`` to it.

    The extracted record is stashed on the test item for the reports.
    A check whose precondition is missing skips the test.
    """

    def _run(name: str, symbol: str) -> StockRecord:
        browser = request.node.callspec.params.get("browser_name", "")
        with check_context(request.node.name, browser, symbol):
            record = workflow.fetch(symbol)
            request.node.stash[RECORD_KEY] = record
            validator.assert_symbol_matches(record, symbol)
            try:
                record = CHECKS[name](record, validator, data_set.purchase_price(symbol))
            except CheckSkipped as exc:
                pytest.skip(str(exc))
            request.node.stash[RECORD_KEY] = record
            log.info("Live check passed", check=name, record=str(record))
        return record

    return _run


@pytest.hookimpl(tryfirst=True)
def pytest_runtest_protocol(item: pytest.Item, nextitem: pytest.Item | None) -> bool:
    """Re-run failed live tests until the retry budget is spent."""
    policy = item.config.stash[RETRY_KEY]
    item.ihook.pytest_runtest_logstart(nodeid=item.nodeid, location=item.location)
    item.stash[STARTED_KEY] = time.perf_counter()

    while True:
        reports = runtestprotocol(item, nextitem=nextitem, log=False)
        failure = next((report for report in reports if report.failed), None)
        if failure is None or not policy.should_retry(item.nodeid, failure.longreprtext[:200]):
            break

    for report in reports:
        item.ihook.pytest_runtest_logreport(report=report)
    item.ihook.pytest_runtest_logfinish(nodeid=item.nodeid, location=item.location)
    _record_result(item, reports)
    return True


def _record_result(item: pytest.Item, reports: list[pytest.TestReport]) -> None:
    callspec: Any = getattr(item, "callspec", None)
    params = callspec.params if callspec is not None else {}
    nse_config = item.config.stash[CONFIG_KEY]

    if any(report.failed and report.when == "call" for report in reports):
        status = "FAILED"
    elif any(report.failed for report in reports):
        status = "ERROR"
    elif any(report.skipped for report in reports):
        status = "SKIPPED"
    else:
        status = "PASSED"

    message = next((report.longreprtext[:500] for report in reports if not report.passed), "")
    item.config.stash[RESULTS_KEY].append(
        CheckResult(
            name=getattr(item, "originalname", item.name).removeprefix("test_"),
            browser=params.get("browser_name", nse_config.browser),
            symbol=params.get("symbol", nse_config.default_stock_symbol),
            status=status,
            attempts=item.config.stash[RETRY_KEY].retries(item.nodeid) + 1,
            duration_seconds=time.perf_counter() - item.stash[STARTED_KEY],
            message=message,
            record=item.stash.get(RECORD_KEY, None),
        )
    )


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo) -> Iterator[None]:
    """Capture a screenshot after the call phase, per configuration."""
    outcome = yield
    report = outcome.get_result()
    if report.when != "call":
        return

    handle = getattr(item, "funcargs", {}).get("driver_handle")
    if handle is None:
        return

    nse_config = item.config.stash[CONFIG_KEY]
    if report.failed and nse_config.screenshot_on_failure:
        capture_screenshot(handle.page, "FAILED", nse_config.screenshot_dir)
    elif report.passed and nse_config.screenshot_on_pass:
        capture_screenshot(handle.page, "PASSED", nse_config.screenshot_dir)


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    """Write CSV, summary and dashboard for the live run."""
    results = session.config.stash.get(RESULTS_KEY, [])
    if not results:
        return
    reports = ReportGenerator(session.config.stash[CONFIG_KEY]).generate_all(results)
    log.info("Live suite reports written", **{name: str(path) for name, path in reports.items()})
