from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from . import selectors
from .config import ArbiterConfig
from .cookies import CookieStore
from .errors import NavigationError, NotLoggedIn
from .rate_limiter import HumanPacer

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass
class BrowserHandle:
    playwright: Any
    browser: Any
    context: Any
    page: Any


def is_logged_in(html: str) -> bool:
    """Login probes over a home page snapshot; any single probe is enough."""
    soup = BeautifulSoup(html or "", "html.parser")
    sidebar = soup.select_one(selectors.LOGIN_SIDEBAR)
    if sidebar is not None and sidebar.get_text(strip=True) == selectors.LOGIN_SIDEBAR_TEXT:
        return True
    return any(soup.select_one(marker) is not None for marker in selectors.LOGIN_MARKERS)


class PlaywrightLauncher:
    """Launches the Chromium session used by SessionManager.

    One launch = Playwright driver + browser + context + page, with the
    stored cookies applied and the login verified on the home page."""

    def __init__(
        self,
        config: ArbiterConfig,
        cookies: Optional[CookieStore] = None,
        pacer: Optional[HumanPacer] = None,
        init_script: Optional[str] = selectors.STEALTH_INIT_SCRIPT,
        verify_login: bool = True,
    ) -> None:
        self._config = config
        self._cookies = cookies or CookieStore(config.cookie_path)
        self._pacer = pacer or HumanPacer(scale=config.humanize_scale)
        self._init_script = init_script
        self._verify_login = verify_login

    async def launch(self) -> BrowserHandle:
        logger.info("Launching Chromium (headless=%s)", self._config.headless)
        playwright = await async_playwright().start()
        handle = BrowserHandle(playwright=playwright, browser=None, context=None, page=None)
        try:
            handle.browser = await playwright.chromium.launch(
                headless=self._config.headless,
                args=list(self._config.browser_args),
                ignore_default_args=["--enable-automation"],
            )
            handle.context = await handle.browser.new_context(
                user_agent=USER_AGENT,
                viewport={"width": 1920, "height": 1080},
                locale="zh-CN",
            )
            if self._init_script:
                await handle.context.add_init_script(self._init_script)
            await self._cookies.apply(handle.context)
            handle.page = await handle.context.new_page()
            handle.page.set_default_timeout(self._config.navigation_timeout_ms)

            if self._verify_login:
                await self._check_login(handle.page)
            return handle
        except BaseException:
            await self.close(handle)
            raise

    async def close(self, handle: BrowserHandle) -> None:
        """Close page, context, browser and driver; each step best effort."""
        for name in ("page", "context", "browser"):
            resource = getattr(handle, name)
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as exc:  # noqa: BLE001
                logger.error("Error closing %s: %s", name, exc)
            setattr(handle, name, None)
        if handle.playwright is not None:
            try:
                await handle.playwright.stop()
            except Exception as exc:  # noqa: BLE001
                logger.error("Error stopping playwright: %s", exc)
            handle.playwright = None

    def is_alive(self, handle: BrowserHandle) -> bool:
        if handle.browser is None or handle.page is None:
            return False
        return handle.browser.is_connected() and not handle.page.is_closed()

    async def _check_login(self, page: Any) -> None:
        logger.info("Checking login status")
        try:
            await page.goto(self._config.home_url, wait_until="networkidle")
        except PlaywrightError as exc:
            raise NavigationError(f"could not open {self._config.home_url}: {exc}") from exc
        await self._pacer.random_delay(3, 5)

        html = await page.content()
        if is_logged_in(html) or await _any_present(page, selectors.LOGOUT_BUTTONS):
            logger.info("Login status verified")
            return
        logger.error("Not logged in, please login first")
        raise NotLoggedIn("no logged-in account in the browser session; refresh the cookie file")


async def _any_present(page: Any, candidates: Iterable[str]) -> bool:
    for selector in candidates:
        try:
            if await page.query_selector(selector) is not None:
                return True
        except PlaywrightError:
            continue
    return False
