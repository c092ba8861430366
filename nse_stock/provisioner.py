"""Browser provisioning with a layered fallback chain.

``DriverProvisioner.acquire`` hands each worker thread its own Playwright
session (playwright, browser, context, page). The browser executable is
resolved once per browser kind and memoised, trying in order:

    0. ``driver_path`` from configuration, when it names an executable file
    1. managed: the Playwright-bundled build, installing it on demand via
       ``python -m playwright install`` within the provisioning budget
    2. local: a fixed list of project, vendor and per-user install
       directories, then ``PATH``
    3. default: launch by channel and let Playwright find the browser

A launch failure after resolution is fatal and surfaces as
``ProvisioningError``; it is never retried here.

Design Rationale:
    Handles live in ``threading.local`` so no session is ever touched by two
    threads. The only shared state is the resolution cache, guarded by
    double-checked locking. Browser processes are tracked by PID at launch
    (psutil) so teardown can terminate exactly those processes if a
    graceful close fails, instead of killing every process with a matching
    name on the machine.
"""

import os
import shutil
import subprocess
import sys
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal

import psutil
from playwright.sync_api import Browser, BrowserContext, Page, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError

from config.settings import GlobalConfig
from nse_stock.exceptions import ProvisioningError
from nse_stock.logger import get_logger

log = get_logger(__name__)

STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', {
    get: () => undefined,
});
Object.defineProperty(navigator, 'languages', {
    get: () => ['en-IN', 'en'],
});
"""

CHROMIUM_ARGS = (
    "--disable-blink-features=AutomationControlled",
    "--disable-extensions",
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--remote-allow-origins=*",
)

FIREFOX_PREFS = {
    "dom.webdriver.enabled": False,
    "useAutomationExtension": False,
    "dom.push.enabled": False,
    "dom.webnotifications.enabled": False,
}

PROCESS_GRACE_SECONDS = 5


class BrowserKind(str, Enum):
    """Browsers the suite can drive."""

    CHROME = "chrome"
    FIREFOX = "firefox"
    EDGE = "edge"

    @classmethod
    def parse(cls, name: "str | BrowserKind | None") -> "BrowserKind":
        """Map a configured name onto a kind; unknown names fall back to Chrome."""
        if isinstance(name, cls):
            return name
        normalized = (name or "").strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            log.warning("Unsupported browser, defaulting to chrome", browser=name)
            return cls.CHROME


@dataclass(frozen=True)
class BrowserProfile:
    """Static facts about one browser kind.

    Attributes:
        engine: Playwright browser type attribute (``chromium``/``firefox``).
        install_target: Argument to ``playwright install``.
        managed_channel: Channel to launch with after a managed install of a
            branded browser; None when the bundled executable is used.
        default_channel: Channel used by the last-resort default launch.
        executable_names: File names searched for in local directories.
        vendor_dirs: System-wide install locations.
        user_dirs: Per-user install and cache locations.
    """

    engine: Literal["chromium", "firefox"]
    install_target: str
    managed_channel: str | None
    default_channel: str | None
    executable_names: tuple[str, ...]
    vendor_dirs: tuple[Path, ...] = ()
    user_dirs: tuple[Path, ...] = ()


_HOME = Path.home()

BROWSER_PROFILES: dict[BrowserKind, BrowserProfile] = {
    BrowserKind.CHROME: BrowserProfile(
        engine="chromium",
        install_target="chromium",
        managed_channel=None,
        default_channel="chrome",
        executable_names=(
            "chrome.exe",
            "google-chrome",
            "google-chrome-stable",
            "chromium",
            "chromium-browser",
            "Google Chrome",
        ),
        vendor_dirs=(
            Path("C:/Program Files/Google/Chrome/Application"),
            Path("C:/Program Files (x86)/Google/Chrome/Application"),
            Path("/opt/google/chrome"),
            Path("/usr/bin"),
            Path("/Applications/Google Chrome.app/Contents/MacOS"),
        ),
        user_dirs=(
            _HOME / "AppData/Local/Google/Chrome/Application",
            _HOME / ".local/bin",
        ),
    ),
    BrowserKind.EDGE: BrowserProfile(
        engine="chromium",
        install_target="msedge",
        managed_channel="msedge",
        default_channel="msedge",
        executable_names=("msedge.exe", "msedge", "microsoft-edge", "microsoft-edge-stable"),
        vendor_dirs=(
            Path("C:/Program Files (x86)/Microsoft/Edge/Application"),
            Path("C:/Program Files/Microsoft/Edge/Application"),
            Path("/opt/microsoft/msedge"),
            Path("/usr/bin"),
            Path("/Applications/Microsoft Edge.app/Contents/MacOS"),
        ),
        user_dirs=(
            _HOME / "AppData/Local/Microsoft/Edge/Application",
            _HOME / ".local/bin",
        ),
    ),
    BrowserKind.FIREFOX: BrowserProfile(
        engine="firefox",
        install_target="firefox",
        managed_channel=None,
        default_channel=None,
        executable_names=("firefox.exe", "firefox"),
        vendor_dirs=(
            Path("C:/Program Files/Mozilla Firefox"),
            Path("C:/Program Files (x86)/Mozilla Firefox"),
            Path("/usr/bin"),
            Path("/Applications/Firefox.app/Contents/MacOS"),
        ),
        user_dirs=(
            _HOME / "AppData/Local/Mozilla Firefox",
            _HOME / ".local/bin",
        ),
    ),
}

ResolutionSource = Literal["override", "managed", "local", "default"]


@dataclass(frozen=True)
class ResolvedBinary:
    """Outcome of executable resolution for one browser kind."""

    source: ResolutionSource
    executable_path: Path | None = None
    channel: str | None = None


@dataclass
class DriverHandle:
    """One worker's browser session.

    Attributes:
        kind: Browser kind that was launched.
        binary: How the executable was resolved.
        playwright: Per-thread Playwright instance.
        browser: Launched browser.
        context: Browser context with timeouts and stealth script applied.
        page: Page the worker drives.
        processes: Browser processes spawned by the launch.
        thread_id: Identifier of the owning thread.
    """

    kind: BrowserKind
    binary: ResolvedBinary
    playwright: Playwright
    browser: Browser
    context: BrowserContext
    page: Page
    processes: list[psutil.Process] = field(default_factory=list)
    thread_id: int = field(default_factory=threading.get_ident)

    @property
    def pids(self) -> list[int]:
        return [process.pid for process in self.processes]


class _ResolutionMiss(Exception):
    """A single resolution step found nothing usable."""


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


class DriverProvisioner:
    """Creates and tears down per-thread browser sessions.

    Attributes:
        config: Supplies headless mode, timeouts and the driver override.
        search_dirs: Local directories searched before ``PATH``; defaults
            to ``drivers/`` plus the profile's vendor and user directories.
    """

    def __init__(
        self,
        config: GlobalConfig,
        search_dirs: Sequence[Path] | None = None,
    ) -> None:
        self.config = config
        self.search_dirs = list(search_dirs) if search_dirs is not None else None
        self._local = threading.local()
        self._resolved: dict[BrowserKind, ResolvedBinary] = {}
        self._process_lock = threading.Lock()

    def resolve(
        self,
        kind: BrowserKind,
        playwright: Playwright,
        timeout_budget: float | None = None,
    ) -> ResolvedBinary:
        """Return the memoised executable resolution for ``kind``.

        Safe for concurrent first use: only one thread runs the chain,
        the others wait and reuse its result.
        """
        cached = self._resolved.get(kind)
        if cached is not None:
            return cached

        with self._process_lock:
            cached = self._resolved.get(kind)
            if cached is None:
                cached = self._resolve_uncached(kind, playwright, timeout_budget)
                self._resolved[kind] = cached
        return cached

    def clear_cache(self) -> None:
        with self._process_lock:
            self._resolved.clear()

    def _resolve_uncached(
        self,
        kind: BrowserKind,
        playwright: Playwright,
        timeout_budget: float | None,
    ) -> ResolvedBinary:
        profile = BROWSER_PROFILES[kind]
        budget = timeout_budget or self.config.provisioning_timeout

        override = self.config.driver_path
        if override is not None:
            if _is_executable(override):
                log.info("Using configured browser executable", browser=kind.value, path=str(override))
                return ResolvedBinary("override", executable_path=override)
            log.warning("Configured driver_path is not executable, ignoring", path=str(override))

        try:
            return self._resolve_managed(kind, profile, playwright, budget)
        except _ResolutionMiss as exc:
            log.warning("Managed browser provisioning failed", browser=kind.value, reason=str(exc))

        local = self._find_local(profile)
        if local is not None:
            log.info("Using local browser executable", browser=kind.value, path=str(local))
            return ResolvedBinary("local", executable_path=local)

        log.warning(
            "No local browser executable found, relying on default resolution",
            browser=kind.value,
            channel=profile.default_channel,
        )
        return ResolvedBinary("default", channel=profile.default_channel)

    def _resolve_managed(
        self,
        kind: BrowserKind,
        profile: BrowserProfile,
        playwright: Playwright,
        budget: float,
    ) -> ResolvedBinary:
        if profile.managed_channel is None:
            bundled = Path(getattr(playwright, profile.engine).executable_path)
            if _is_executable(bundled):
                log.info("Using bundled browser", browser=kind.value, path=str(bundled))
                return ResolvedBinary("managed", executable_path=bundled)

        self._run_installer(profile.install_target, budget)

        if profile.managed_channel is not None:
            return ResolvedBinary("managed", channel=profile.managed_channel)

        bundled = Path(getattr(playwright, profile.engine).executable_path)
        if not _is_executable(bundled):
            raise _ResolutionMiss(f"installer finished but {bundled} is missing")
        log.info("Installed bundled browser", browser=kind.value, path=str(bundled))
        return ResolvedBinary("managed", executable_path=bundled)

    def _run_installer(self, target: str, budget: float) -> None:
        command = [sys.executable, "-m", "playwright", "install", target]
        log.info("Installing browser", target=target, timeout=budget)
        try:
            subprocess.run(command, check=True, capture_output=True, timeout=budget)
        except subprocess.TimeoutExpired as exc:
            raise _ResolutionMiss(f"install {target} exceeded {budget}s") from exc
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or b"").decode(errors="replace").strip()
            raise _ResolutionMiss(f"install {target} exited {exc.returncode}: {stderr[:200]}") from exc
        except OSError as exc:
            raise _ResolutionMiss(f"install {target} could not start: {exc}") from exc

    def local_candidates(self, profile: BrowserProfile) -> list[Path]:
        """Ordered list of local paths checked for an executable."""
        if self.search_dirs is not None:
            directories = self.search_dirs
        else:
            directories = [Path("drivers"), *profile.vendor_dirs, *profile.user_dirs]
        return [directory / name for directory in directories for name in profile.executable_names]

    def _find_local(self, profile: BrowserProfile) -> Path | None:
        for candidate in self.local_candidates(profile):
            if _is_executable(candidate):
                return candidate
        for name in profile.executable_names:
            found = shutil.which(name)
            if found:
                return Path(found)
        return None

    def launch_options(
        self,
        kind: BrowserKind,
        binary: ResolvedBinary,
        headless: bool,
        timeout_budget: float,
    ) -> dict[str, Any]:
        """Keyword arguments for ``BrowserType.launch``."""
        options: dict[str, Any] = {
            "headless": headless,
            "timeout": timeout_budget * 1000,
        }
        if BROWSER_PROFILES[kind].engine == "chromium":
            options["args"] = list(CHROMIUM_ARGS)
            options["ignore_default_args"] = ["--enable-automation"]
        else:
            options["firefox_user_prefs"] = dict(FIREFOX_PREFS)

        if binary.executable_path is not None:
            options["executable_path"] = str(binary.executable_path)
        elif binary.channel is not None:
            options["channel"] = binary.channel
        return options

    def acquire(
        self,
        browser_kind: "BrowserKind | str | None" = None,
        headless: bool | None = None,
        timeout_budget: float | None = None,
    ) -> DriverHandle:
        """Return this thread's browser session, creating it on first use.

        Args:
            browser_kind: Browser to launch; defaults to ``config.browser``.
            headless: Overrides ``config.headless``.
            timeout_budget: Seconds for resolution and launch; defaults to
                ``config.provisioning_timeout``.

        Returns:
            The calling thread's DriverHandle.

        Raises:
            ProvisioningError: If the browser cannot be launched.
        """
        kind = BrowserKind.parse(browser_kind or self.config.browser)
        existing = self.current()
        if existing is not None:
            if existing.kind is kind:
                return existing
            log.info(
                "Replacing thread's browser session",
                previous=existing.kind.value,
                requested=kind.value,
            )
            self.release(existing)

        headless = self.config.headless if headless is None else headless
        budget = timeout_budget or self.config.provisioning_timeout

        handle = self._launch(kind, headless, budget)
        self._local.handle = handle
        log.info(
            "Browser session ready",
            browser=kind.value,
            source=handle.binary.source,
            headless=headless,
            pids=handle.pids,
        )
        return handle

    def _launch(self, kind: BrowserKind, headless: bool, budget: float) -> DriverHandle:
        try:
            with self._process_lock:
                playwright = sync_playwright().start()
        except PlaywrightError as exc:
            raise ProvisioningError(browser=kind.value, reason=f"Playwright failed to start: {exc}") from exc

        binary: ResolvedBinary | None = None
        browser: Browser | None = None
        processes: list[psutil.Process] = []
        try:
            binary = self.resolve(kind, playwright, budget)
            options = self.launch_options(kind, binary, headless, budget)
            browser_type = getattr(playwright, BROWSER_PROFILES[kind].engine)

            with self._process_lock:
                before = {process.pid for process in self._child_processes()}
                browser = browser_type.launch(**options)
                processes = [p for p in self._child_processes() if p.pid not in before]

            context = browser.new_context(locale="en-IN", viewport={"width": 1366, "height": 768})
            context.set_default_timeout(self.config.implicit_wait_ms)
            context.set_default_navigation_timeout(self.config.page_load_timeout_ms)
            context.add_init_script(STEALTH_JS)
            page = context.new_page()

        except Exception as exc:
            self._abort_launch(playwright, browser, processes)
            log.error(
                "Browser provisioning failed",
                browser=kind.value,
                source=binary.source if binary else None,
                error=str(exc),
            )
            raise ProvisioningError(
                browser=kind.value,
                reason=str(exc),
                attempted=self._attempted(binary),
            ) from exc

        return DriverHandle(
            kind=kind,
            binary=binary,
            playwright=playwright,
            browser=browser,
            context=context,
            page=page,
            processes=processes,
        )

    @staticmethod
    def _attempted(binary: ResolvedBinary | None) -> list[str]:
        if binary is None:
            return []
        chain: list[ResolutionSource] = ["override", "managed", "local", "default"]
        return list(chain[: chain.index(binary.source) + 1])

    @staticmethod
    def _child_processes() -> list[psutil.Process]:
        return psutil.Process().children(recursive=True)

    def _abort_launch(
        self,
        playwright: Playwright,
        browser: Browser | None,
        processes: list[psutil.Process],
    ) -> None:
        if browser is not None:
            try:
                browser.close()
            except PlaywrightError as exc:
                log.warning("Error closing half-launched browser", error=str(exc))
        try:
            playwright.stop()
        except PlaywrightError as exc:
            log.warning("Error stopping playwright", error=str(exc))
        self._terminate(processes)

    def current(self) -> DriverHandle | None:
        """The calling thread's handle, if one was acquired."""
        return getattr(self._local, "handle", None)

    def release(self, handle: DriverHandle | None = None) -> None:
        """Close a session, terminating its browser processes if needed.

        Closes context, browser and Playwright in reverse order of creation.
        Any tracked browser process still alive afterwards (for example
        because ``browser.close`` raised) is terminated, then killed.

        Args:
            handle: Session to release; defaults to the calling thread's.
        """
        handle = handle or self.current()
        if handle is None:
            return

        for name, close in (
            ("context", handle.context.close),
            ("browser", handle.browser.close),
            ("playwright", handle.playwright.stop),
        ):
            try:
                close()
            except Exception as exc:
                log.warning("Error closing browser resource", resource=name, error=str(exc))

        self._terminate(handle.processes)

        if self.current() is handle:
            self._local.handle = None
        log.info("Browser session released", browser=handle.kind.value)

    @staticmethod
    def _terminate(processes: Sequence[psutil.Process]) -> None:
        targets: list[psutil.Process] = []
        for process in processes:
            try:
                if process.is_running():
                    targets.extend(process.children(recursive=True))
                    targets.append(process)
            except psutil.NoSuchProcess:
                continue
        if not targets:
            return

        log.warning("Terminating leftover browser processes", pids=[p.pid for p in targets])
        for process in targets:
            try:
                process.terminate()
            except psutil.NoSuchProcess:
                continue
        _, alive = psutil.wait_procs(targets, timeout=PROCESS_GRACE_SECONDS)
        for process in alive:
            try:
                process.kill()
            except psutil.NoSuchProcess:
                continue

    @contextmanager
    def session(
        self,
        browser_kind: "BrowserKind | str | None" = None,
        headless: bool | None = None,
        timeout_budget: float | None = None,
    ) -> Iterator[DriverHandle]:
        """Acquire a handle and release it on every exit path.

        Example:
            with provisioner.session("firefox") as handle:
                NSEHomePage(handle.page, config).open()
        """
        handle = self.acquire(browser_kind, headless, timeout_budget)
        try:
            yield handle
        finally:
            self.release(handle)
