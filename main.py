"""NSE Stock Validator Entry Point.

This module is the bootstrap and orchestration layer only. All functional
code lives in the ``nse_stock`` package.

Responsibilities:
    1. Load and validate configuration
    2. Initialize logging infrastructure (fail-fast on error)
    3. Load the portfolio test data
    4. Run the stock checks across the configured browsers
    5. Write the CSV, summary and HTML reports
    6. Map the outcome to a process exit code

Exit codes:
    0    every check passed (or was skipped)
    1    at least one check failed, or a fatal error occurred
    2    a browser could not be provisioned
    130  interrupted with Ctrl+C

Usage:
    python main.py
    python main.py RELIANCE INFY
    PARALLEL_EXECUTION=true python main.py
"""

import sys
from collections.abc import Sequence
from typing import NoReturn

from loguru import logger

from config.settings import GlobalConfig, load_config
from nse_stock.dataset import load_test_data
from nse_stock.exceptions import (
    LoggingInitializationError,
    NSEStockError,
    ProvisioningError,
    ReportGenerationError,
)
from nse_stock.logger import configure_logging


def _validate_startup_requirements(config: GlobalConfig) -> None:
    """Create output directories before any browser is launched.

    Raises:
        SystemExit: If a directory cannot be created.
    """
    for directory in (config.report_dir, config.screenshot_dir):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.critical(
                "Failed to create output directory",
                directory=str(directory),
                error=str(exc),
            )
            sys.exit(1)

    logger.debug(
        "Startup validation complete",
        report_dir=str(config.report_dir),
        screenshot_dir=str(config.screenshot_dir),
        base_url=config.nse_base_url,
    )


def _run(config: GlobalConfig, symbols: Sequence[str]) -> int:
    """Run the checks and write reports.

    Args:
        config: The validated GlobalConfig instance.
        symbols: Symbols from the command line; falls back to ``test_stocks``.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    from nse_stock.provisioner import DriverProvisioner
    from nse_stock.reporter import ReportGenerator
    from nse_stock.workflow import run_stock_checks

    data_set = load_test_data(config.test_data_path)
    symbols = [symbol.upper() for symbol in symbols] or config.test_stocks

    logger.info(
        "Run started",
        app_name=config.app_name,
        environment=config.environment,
        browser=config.browser,
        parallel=config.parallel_execution,
        symbols=symbols,
    )

    provisioner = DriverProvisioner(config)
    outcome = run_stock_checks(provisioner, config, data_set, symbols)

    if outcome.results:
        try:
            reports = ReportGenerator(config).generate_all(outcome.results)
            logger.info(
                "Reports generated successfully",
                **{name: str(path) for name, path in reports.items()},
            )
        except ReportGenerationError as exc:
            logger.error("Report generation failed", message=exc.message, context=exc.context)

    if outcome.provisioning_failures:
        logger.critical(
            "Browser provisioning failed",
            browsers=[exc.browser for exc in outcome.provisioning_failures],
        )
        return 2

    if not outcome.all_passed:
        logger.error(
            "Run finished with failures",
            failed=[r.test_id for r in outcome.results if not r.passed],
        )
        return 1

    logger.info("Run finished successfully", checks=len(outcome.results))
    return 0


def _handle_fatal_error(exc: Exception) -> NoReturn:
    """Log a fatal error and exit with the matching code."""
    if isinstance(exc, ProvisioningError):
        logger.critical(
            "Browser provisioning failed",
            browser=exc.browser,
            attempted=exc.attempted,
            message=exc.message,
        )
        sys.exit(2)

    if isinstance(exc, NSEStockError):
        logger.critical(
            "Fatal application error",
            error_type=type(exc).__name__,
            message=exc.message,
            context=exc.context,
        )
        sys.exit(1)

    logger.exception("Unexpected fatal error", error=str(exc))
    sys.exit(1)


def main(argv: Sequence[str] | None = None) -> int:
    """Application entry point.

    Args:
        argv: Optional symbols to check instead of ``TEST_STOCKS``.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    symbols = list(sys.argv[1:] if argv is None else argv)

    try:
        config = load_config()
    except Exception as exc:
        # Cannot log yet
        print(f"FATAL: Configuration loading failed: {exc}", file=sys.stderr)
        return 1

    try:
        configure_logging(config)
    except LoggingInitializationError as exc:
        print(f"FATAL: {exc}", file=sys.stderr)
        return 1

    _validate_startup_requirements(config)

    try:
        return _run(config, symbols)
    except KeyboardInterrupt:
        logger.warning("Run interrupted by user (Ctrl+C)")
        return 130
    except Exception as exc:
        _handle_fatal_error(exc)


if __name__ == "__main__":
    sys.exit(main())
