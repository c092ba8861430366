"""Screenshot capture for check outcomes."""

from datetime import datetime
from pathlib import Path

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from nse_stock.logger import get_logger

log = get_logger(__name__)


def screenshot_name(status: str, moment: datetime | None = None) -> str:
    """``{status}_{timestamp}.png`` with microseconds, so parallel workers never collide."""
    moment = moment or datetime.now()
    return f"{status.upper()}_{moment.strftime('%Y%m%d_%H%M%S_%f')}.png"


def capture_screenshot(page: Page, status: str, directory: Path) -> Path | None:
    """Save a full-page PNG of ``page``.

    Args:
        page: Page to capture.
        status: Outcome label, e.g. ``FAILED`` or ``PASSED``.
        directory: Target directory, created if missing.

    Returns:
        Path of the written file, or None if the capture failed. A failed
        screenshot never masks the outcome it was meant to document.
    """
    path = directory / screenshot_name(status)
    try:
        directory.mkdir(parents=True, exist_ok=True)
        page.screenshot(path=str(path), full_page=True)
    except (PlaywrightError, OSError) as exc:
        log.warning("Screenshot capture failed", path=str(path), error=str(exc))
        return None

    log.info("Screenshot captured", path=str(path))
    return path
