"""Custom exception hierarchy for the NSE stock validator.

Only two kinds of failure are allowed to cross a component boundary:
provisioning failures (no browser could be launched) and assertion failures
(a stock invariant was violated). Selector misses and missing fields are
absorbed locally and never raised; see ``nse_stock.locators`` and
``nse_stock.extractor``.

Design Rationale:
    - Prefer specific exceptions over generic Exception catches
    - Include context (URL, browser, symbol) in exception messages
    - Assertion failures subclass AssertionError so pytest reports them as
      test failures rather than errors
"""

from datetime import UTC, datetime
from typing import Any


class NSEStockError(Exception):
    """Base exception for all NSE stock validator errors.

    Attributes:
        message: Human-readable error description.
        context: Optional dictionary with additional debugging information.
        timestamp: UTC timestamp when the exception was raised.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now(UTC)
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format exception message with context for logging."""
        base = f"[{self.timestamp.isoformat()}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base} | Context: {context_str}"
        return base


class ProvisioningError(NSEStockError):
    """Raised when no browser session could be provisioned.

    Every resolution path (override, managed install, local search, default
    channel) was tried, or the launch itself failed. This is fatal for the
    requesting worker and is never retried inside the provisioner.
    """

    def __init__(
        self,
        browser: str,
        reason: str,
        attempted: list[str] | None = None,
    ) -> None:
        super().__init__(
            message=f"Failed to provision {browser} browser: {reason}",
            context={"browser": browser, "reason": reason, "attempted": attempted or []},
        )
        self.browser = browser
        self.attempted = attempted or []


class NavigationError(NSEStockError):
    """Raised when an NSE page cannot be loaded.

    ``status_code`` is set for HTTP failures (NSE answers bot-like traffic
    with 403), None for timeouts and missing responses.
    """

    def __init__(self, url: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(
            message=f"Navigation to '{url}' failed: {reason}",
            context={"url": url, "reason": reason, "status_code": status_code},
        )
        self.url = url
        self.status_code = status_code


class SearchError(NavigationError):
    """Raised when the quote search box cannot be found on the page."""

    def __init__(self, url: str, symbol: str) -> None:
        super().__init__(url=url, reason=f"No search input found while searching '{symbol}'")
        self.symbol = symbol


class StockAssertionError(NSEStockError, AssertionError):
    """Raised when an extracted stock record violates a checked invariant.

    Attributes:
        symbol: Symbol of the offending record.
        check: Short name of the failed check (e.g. ``52_week_order``).
    """

    def __init__(self, symbol: str, check: str, reason: str, **details: Any) -> None:
        super().__init__(
            message=f"{symbol}: {check} check failed: {reason}",
            context={"symbol": symbol, "check": check, **details},
        )
        self.symbol = symbol
        self.check = check


class DataSetError(NSEStockError):
    """Raised when the test-data file is missing or malformed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            message=f"Cannot load test data from '{path}': {reason}",
            context={"path": path, "reason": reason},
        )


class ReportGenerationError(NSEStockError):
    """Raised when the CSV, summary or dashboard cannot be written.

    An empty run raises here too: the dashboard needs at least one result.
    """

    def __init__(self, report_type: str, reason: str, output_path: str | None = None) -> None:
        super().__init__(
            message=f"Failed to generate {report_type} report: {reason}",
            context={"report_type": report_type, "reason": reason, "output_path": output_path},
        )


class LoggingInitializationError(NSEStockError):
    """Raised when the log directory is not writable.

    Fatal at startup: ``main`` exits with code 1 before any browser is
    launched.
    """

    def __init__(self, log_dir: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to initialize logging at '{log_dir}': {reason}",
            context={"log_dir": log_dir, "reason": reason},
        )
