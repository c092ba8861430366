"""Global configuration management using pydantic-settings.

Every named setting of the suite is loaded from environment variables (or a
``.env`` file) with strict type validation. Dotted property names used by the
suite's operators map onto upper-case variables, e.g. ``explicit.wait`` is
read from ``EXPLICIT_WAIT`` and ``nse.base.url`` from ``NSE_BASE_URL``.

Design Rationale:
    There is deliberately no cached singleton. ``load_config()`` builds one
    eagerly-validated instance at startup and the caller hands it to every
    component (provisioner, navigator, locator, validator, reporter). Tests
    construct their own instances and never have to clear global caches.
"""

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

SUPPORTED_BROWSERS = ("chrome", "firefox", "edge")


class GlobalConfig(BaseSettings):
    """Centralized configuration with environment variable binding.

    Attributes:
        app_name: Application identifier for logging.
        environment: Deployment environment (development/test/ci).
        debug: Enable verbose debugging output (loguru backtrace/diagnose).
        browser: Browser used when no explicit kind is requested.
        headless: Run browsers without a visible window.
        implicit_wait: Default per-action timeout in seconds.
        explicit_wait: Bounded wait for page conditions in seconds.
        page_load_timeout: Navigation timeout in seconds.
        provisioning_timeout: Budget for binary resolution and browser launch.
        overlay_wait: Bounded wait for a popup to appear before dismissing it.
        suggestion_wait: Bounded wait for search suggestions.
        driver_path: Explicit browser executable override (``DRIVER_PATH``).
        nse_base_url: NSE India landing page.
        nse_get_quote_url: Equity quote page, templated with ``?symbol=``.
        default_stock_symbol: Symbol used by single-stock checks.
        test_stocks: Symbols exercised when no test-data file is used.
        parallel_browsers: Browsers run side by side in parallel mode.
        parallel_execution: Run one worker thread per parallel browser.
        screenshot_on_failure: Capture a PNG when a check fails.
        screenshot_on_pass: Capture a PNG when a check passes.
        max_retry_count: Extra attempts granted to a failing check.
        price_range_tolerance: Fraction of the 52-week high by which the
            current price may fall outside the 52-week band.
        price_range_warning_tolerance: Fraction of the 52-week range used for
            the softer, log-only band check.
        test_data_path: JSON file holding portfolio entries and scenarios.
        screenshot_dir: Directory for PNG screenshots.
        report_dir: Directory for CSV and HTML reports.
        report_title: Title printed on the HTML report.
        log_level: Minimum log level for output filtering.
        log_dir: Directory path for structured JSON log files.
        log_rotation: Log file rotation interval.
        log_retention: Log file retention period.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Metadata
    app_name: str = Field(default="NSE-Stock-Validator", description="Application identifier")
    environment: Literal["development", "test", "ci"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Browser Configuration
    browser: str = Field(default="chrome", description="Default browser kind")
    headless: bool = Field(default=False, description="Run browser in headless mode")
    driver_path: Path | None = Field(
        default=None, description="Explicit browser executable override"
    )

    # Timeouts (seconds)
    implicit_wait: float = Field(default=10, ge=0, le=120, description="Default action timeout")
    explicit_wait: float = Field(default=20, gt=0, le=300, description="Bounded condition wait")
    page_load_timeout: float = Field(
        default=30, gt=0, le=300, description="Navigation timeout"
    )
    provisioning_timeout: float = Field(
        default=15, gt=0, le=600, description="Binary resolution and launch budget"
    )
    overlay_wait: float = Field(default=3, ge=0, le=60, description="Popup appearance wait")
    suggestion_wait: float = Field(
        default=5, ge=0, le=60, description="Search suggestion wait"
    )

    # Target Configuration
    nse_base_url: str = Field(
        default="https://www.nseindia.com/", description="NSE landing page"
    )
    nse_get_quote_url: str = Field(
        default="https://www.nseindia.com/get-quotes/equity",
        description="Equity quote page",
    )
    default_stock_symbol: str = Field(default="TATAMOTORS", description="Default symbol")
    test_stocks: Annotated[list[str], NoDecode] = Field(
        default=["TATAMOTORS", "RELIANCE", "INFY"], description="Symbols under test"
    )

    # Execution
    parallel_browsers: Annotated[list[str], NoDecode] = Field(
        default=["chrome", "firefox", "edge"], description="Browsers for parallel runs"
    )
    parallel_execution: bool = Field(default=False, description="Thread per browser")
    max_retry_count: int = Field(default=2, ge=0, le=10, description="Retry attempts")

    # Assertion Tolerances
    price_range_tolerance: float = Field(
        default=0.10, ge=0.0, le=1.0, description="52-week band tolerance (fraction of high)"
    )
    price_range_warning_tolerance: float = Field(
        default=0.20, ge=0.0, le=1.0, description="52-week band warning (fraction of range)"
    )

    # Artifacts
    screenshot_on_failure: bool = Field(default=True, description="Screenshot failed checks")
    screenshot_on_pass: bool = Field(default=False, description="Screenshot passed checks")
    test_data_path: Path = Field(default=Path("data/stocks.json"), description="Test data file")
    screenshot_dir: Path = Field(
        default=Path("test-output/screenshots"), description="Screenshot directory"
    )
    report_dir: Path = Field(default=Path("test-output/reports"), description="Report directory")
    report_title: str = Field(default="NSE Stock Testing Report", description="Report title")

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Minimum log level"
    )
    log_dir: Path = Field(default=Path("test-output/logs"), description="Log output directory")
    log_rotation: str = Field(default="1 week", description="Log rotation interval")
    log_retention: str = Field(default="1 month", description="Log retention period")

    @field_validator(
        "log_dir", "report_dir", "screenshot_dir", "test_data_path", mode="before"
    )
    @classmethod
    def ensure_path(cls, value: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(value) if isinstance(value, str) else value

    @field_validator("driver_path", mode="before")
    @classmethod
    def blank_driver_path(cls, value: Any) -> Any:
        """Treat an empty override as no override."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("test_stocks", "parallel_browsers", mode="before")
    @classmethod
    def split_comma_list(cls, value: Any) -> Any:
        """Accept ``"A,B,C"`` as well as a real list."""
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("test_stocks", "default_stock_symbol")
    @classmethod
    def uppercase_symbols(cls, value: str | list[str]) -> str | list[str]:
        """Exchange symbols are upper-case."""
        if isinstance(value, list):
            return [symbol.upper() for symbol in value]
        return value.strip().upper()

    @field_validator("browser")
    @classmethod
    def normalize_browser(cls, value: str) -> str:
        """Lower-case the browser name; unknown names are resolved by the provisioner."""
        return value.strip().lower()

    @field_validator("parallel_browsers")
    @classmethod
    def normalize_parallel_browsers(cls, value: list[str]) -> list[str]:
        """Lower-case and reject browsers the provisioner cannot launch."""
        normalized = [name.lower() for name in value]
        unknown = [name for name in normalized if name not in SUPPORTED_BROWSERS]
        if unknown:
            raise ValueError(
                f"Unsupported browsers {unknown}; expected any of {SUPPORTED_BROWSERS}"
            )
        return normalized

    @field_validator("nse_base_url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """Ensure the base URL ends with a trailing slash."""
        return value if value.endswith("/") else f"{value}/"

    @field_validator("nse_get_quote_url")
    @classmethod
    def strip_quote_url(cls, value: str) -> str:
        """The quote URL gets ``?symbol=`` appended, so drop any trailing slash."""
        return value.rstrip("/")

    @model_validator(mode="after")
    def check_wait_ordering(self) -> "GlobalConfig":
        """An element wait longer than the page load timeout can never elapse."""
        if self.explicit_wait > self.page_load_timeout:
            raise ValueError(
                f"explicit_wait ({self.explicit_wait}s) must not exceed "
                f"page_load_timeout ({self.page_load_timeout}s)"
            )
        return self

    @property
    def explicit_wait_ms(self) -> float:
        """Explicit wait in milliseconds, as Playwright expects."""
        return self.explicit_wait * 1000

    @property
    def implicit_wait_ms(self) -> float:
        """Implicit wait in milliseconds."""
        return self.implicit_wait * 1000

    @property
    def page_load_timeout_ms(self) -> float:
        """Navigation timeout in milliseconds."""
        return self.page_load_timeout * 1000


def load_config(**overrides: Any) -> GlobalConfig:
    """Build a fresh, fully validated GlobalConfig.

    Called once by the entry point (or the live pytest suite); the result is
    passed by reference to every component that needs settings.

    Args:
        **overrides: Field values taking precedence over the environment.

    Returns:
        GlobalConfig: The validated configuration instance.

    Raises:
        pydantic.ValidationError: If any value is out of range.
    """
    return GlobalConfig(**overrides)
