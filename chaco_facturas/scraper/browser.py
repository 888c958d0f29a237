"""Browser automation utilities using Playwright.

This module owns the single authenticated browser session used by both
phases. It wraps Playwright's sync API in explicit context objects with
``open()``/``close()`` lifecycle methods instead of module-level state.

Main components:
- BrowserSession: Chromium process, context, and page lifecycle
- PortalSession: SAMEEP login, return-home recovery, and cookie-bearing fetch

Notes
-----
Uses Chromium headless mode by default. Chrome args disable GPU and sandbox
for compatibility with containerized/server environments (Ubuntu headless).
Session lifetime equals browser lifetime: there is no logout.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Self

from playwright.sync_api import Browser, BrowserContext, Page, sync_playwright
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from chaco_facturas.config import setup_logging
from chaco_facturas.errors import LaunchError, LoginError, LoginFailureReason, NavigationTimeout
from chaco_facturas.scraper.download import FetchedDocument, fetch_document

if TYPE_CHECKING:
    from types import TracebackType

    import httpx
    from playwright.sync_api import Playwright

    from chaco_facturas.config import Credentials, PortalSettings

logger = setup_logging(__name__)


def create_browser(playwright: Playwright, headless: bool = True) -> Browser:
    """Create a Chromium browser instance.

    Parameters
    ----------
    playwright : Playwright
        Started Playwright instance.
    headless : bool, optional
        Run browser in headless mode. Default True for server use.

    Returns
    -------
    Browser
        Configured Chromium browser instance.

    Notes
    -----
    Chrome args (--disable-gpu, --no-sandbox, --disable-dev-shm-usage)
    are required for headless server compatibility on Ubuntu.
    """
    return playwright.chromium.launch(
        headless=headless,
        args=[
            "--disable-gpu",  # No GPU in headless environments
            "--disable-dev-shm-usage",  # Prevents /dev/shm overflow in Docker
            "--no-sandbox",  # Required for root/containerized execution
        ],
    )


def create_browser_context(browser: Browser) -> BrowserContext:
    """Create a browser context with a desktop viewport and downloads enabled.

    Parameters
    ----------
    browser : Browser
        Browser instance to create context on.

    Returns
    -------
    BrowserContext
        Context whose cookie jar is shared by every page and fetch.
    """
    return browser.new_context(
        viewport={"width": 1920, "height": 1080},
        user_agent=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36"
        ),
        accept_downloads=True,  # SECHEEP serves invoices as downloads
    )


class BrowserSession:
    """One browser process with one context and one page.

    Use as a context manager, or call :meth:`open` and :meth:`close`
    explicitly. All navigation is sequential on :attr:`page`.
    """

    def __init__(
        self,
        headless: bool = True,
        default_timeout_ms: int = 30000,
        navigation_timeout_ms: int | None = None,
    ) -> None:
        self.headless = headless
        self.default_timeout_ms = default_timeout_ms
        self.navigation_timeout_ms = navigation_timeout_ms
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    def open(self) -> Self:
        """Launch Chromium and open the working page.

        Raises
        ------
        LaunchError
            If Playwright or the browser cannot start.
        """
        try:
            self._playwright = sync_playwright().start()
            self._browser = create_browser(self._playwright, headless=self.headless)
            self._context = create_browser_context(self._browser)
            self._page = self._context.new_page()
        except PlaywrightError as e:
            self.close()
            msg = f"Could not launch browser: {e}"
            raise LaunchError(msg) from e

        self._page.set_default_timeout(self.default_timeout_ms)
        if self.navigation_timeout_ms is not None:
            self._page.set_default_navigation_timeout(self.navigation_timeout_ms)
        logger.info("Browser session opened (headless=%s)", self.headless)
        return self

    def close(self) -> None:
        """Close context, browser, and Playwright in reverse order."""
        # Cleanup in reverse order: context closes pages, browser closes contexts
        if self._context is not None:
            self._context.close()
        if self._browser is not None:
            self._browser.close()
        if self._playwright is not None:
            self._playwright.stop()
        self._playwright = self._browser = self._context = self._page = None

    def __enter__(self) -> Self:
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def page(self) -> Page:
        if self._page is None:
            msg = "Browser session is not open"
            raise RuntimeError(msg)
        return self._page

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            msg = "Browser session is not open"
            raise RuntimeError(msg)
        return self._context

    def cookies(self) -> list[dict[str, Any]]:
        """Return the shared cookie jar as Playwright cookie dicts."""
        return [dict(cookie) for cookie in self.context.cookies()]


class PortalSession(BrowserSession):
    """Authenticated SAMEEP session: login, landing page, document fetch."""

    def __init__(
        self,
        settings: PortalSettings,
        headless: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(headless=headless, default_timeout_ms=settings.default_timeout_ms)
        self.settings = settings
        self._transport = transport

    def login(self, credentials: Credentials) -> None:
        """Fill the login form and wait for the account list URL.

        Raises
        ------
        LoginError
            ``CREDENTIALS_MISSING`` for empty credentials, ``TIMEOUT`` when the
            browser stays on the login page, ``UNEXPECTED_REDIRECT`` when it
            lands anywhere else.
        """
        if not credentials.username or not credentials.password:
            msg = "Portal credentials are empty"
            raise LoginError(msg, reason=LoginFailureReason.CREDENTIALS_MISSING)

        page = self.page
        logger.info("Navigating to login page")
        try:
            page.goto(self.settings.login_url, timeout=self.settings.login_timeout_ms)
            logger.info("Logging in as %s", credentials.username)
            page.get_by_placeholder(self.settings.username_placeholder).fill(credentials.username)
            page.get_by_placeholder(self.settings.password_placeholder).fill(credentials.password)
            page.get_by_role("button", name=self.settings.submit_button).click()
            page.wait_for_url(self.settings.post_login_pattern, timeout=self.settings.login_timeout_ms)
        except PlaywrightTimeout as e:
            reason = self._classify_login_failure(page.url)
            msg = f"Login did not reach the account list (now at {page.url})"
            raise LoginError(msg, reason=reason) from e

        logger.info("Login successful")

    def _classify_login_failure(self, current_url: str) -> LoginFailureReason:
        login_path = self.settings.login_url.split("?", 1)[0]
        if not current_url or current_url.startswith(login_path) or current_url == "about:blank":
            return LoginFailureReason.TIMEOUT
        return LoginFailureReason.UNEXPECTED_REDIRECT

    def return_home(self) -> None:
        """Navigate directly to the account list.

        Used as the recovery step between account attempts.

        Raises
        ------
        NavigationTimeout
            If the landing page does not finish loading in time.
        """
        try:
            self.page.goto(
                self.settings.home_url,
                wait_until="networkidle",
                timeout=self.settings.network_idle_timeout_ms,
            )
        except PlaywrightError as e:
            msg = f"Could not return to account list: {e}"
            raise NavigationTimeout(msg) from e
        logger.debug("Returned to account list")

    def fetch_bytes(self, url: str) -> FetchedDocument:
        """Fetch ``url`` with this session's cookies."""
        return fetch_document(
            url,
            self.cookies(),
            timeout=self.settings.fetch_timeout_seconds,
            transport=self._transport,
        )
