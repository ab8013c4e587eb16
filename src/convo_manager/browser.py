"""Playwright-backed browser session bound to a persistent profile."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

from playwright.async_api import BrowserContext, Error as PlaywrightError, Page, async_playwright

from .config import get_base_url, get_profile_path, is_headless
from .session import BrowserSession, SessionError

logger = logging.getLogger(__name__)

NAVIGATION_TIMEOUT_MS = 60_000


class PlaywrightSession(BrowserSession):
    """Chromium persistent context; cookies survive between operations."""

    def __init__(self, profile_path: Optional[Path] = None, headless: Optional[bool] = None):
        self.profile_path = Path(profile_path) if profile_path else get_profile_path()
        self.headless = is_headless() if headless is None else headless

        self._playwright = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        if self._context is not None:
            return
        if self._closed:
            raise SessionError("session already closed")

        self.profile_path.mkdir(parents=True, exist_ok=True)
        logger.info("Launching browser with profile: %s", self.profile_path)
        try:
            self._playwright = await async_playwright().start()
            self._context = await self._playwright.chromium.launch_persistent_context(
                user_data_dir=str(self.profile_path),
                headless=self.headless,
                viewport={"width": 1280, "height": 900},
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--no-first-run",
                    "--no-default-browser-check",
                ],
            )
            self._page = self._context.pages[0] if self._context.pages else await self._context.new_page()
        except PlaywrightError as e:
            await self.close()
            raise SessionError(f"Failed to launch browser: {e}") from e

    async def navigate(self, url: str) -> str:
        page = self._require_page()
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
        except PlaywrightError as e:
            raise SessionError(f"Navigation to {url} failed: {e}") from e
        return page.url

    async def evaluate(self, expression: str) -> Any:
        page = self._require_page()
        try:
            return await page.evaluate(expression)
        except PlaywrightError as e:
            raise SessionError(f"Script evaluation failed: {e}") from e

    async def get_cookie(self, name: str) -> str | None:
        if self._context is None:
            raise SessionError("session not started")
        try:
            cookies = await self._context.cookies(get_base_url())
        except PlaywrightError as e:
            raise SessionError(f"Cookie lookup failed: {e}") from e
        for cookie in cookies:
            if cookie.get("name") == name:
                return cookie.get("value")
        return None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        context, playwright = self._context, self._playwright
        self._context = self._page = self._playwright = None
        try:
            if context is not None:
                await context.close()
        except PlaywrightError as e:
            logger.debug("Ignoring error while closing context: %s", e)
        try:
            if playwright is not None:
                await playwright.stop()
        except PlaywrightError as e:
            logger.debug("Ignoring error while stopping playwright: %s", e)

    def _require_page(self) -> Page:
        if self._page is None or self._closed:
            raise SessionError("session not started")
        return self._page


async def wait_for_login(
    session: BrowserSession,
    login_url: str,
    *,
    timeout: float = 300.0,
    poll_interval: float = 1.0,
    org_cookie: str = "lastActiveOrg",
) -> bool:
    """Open the login page and wait until the user has signed in.

    Sign-in is detected by the org cookie appearing while the page is no
    longer on the login path. Returns False on timeout.
    """
    login_path = urlparse(login_url).path
    await session.start()
    await session.navigate(login_url)

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        await asyncio.sleep(poll_interval)
        try:
            org_id = await session.get_cookie(org_cookie)
            location = await session.evaluate("() => window.location.pathname")
        except SessionError as e:
            logger.debug("Login poll failed: %s", e)
            continue
        if org_id and not str(location or "").startswith(login_path):
            logger.info("Logged in (org %s)", org_id)
            return True
    return False
