"""Playwright browser service backing the browser tool."""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path
from typing import Any, Optional

from hearth.config import BrowserServiceConfig
from hearth.log import get_logger
from hearth.services.base import Service

logger = get_logger(__name__)

_TEXT_LIMIT = 50_000
_HTML_LIMIT = 100_000


class BrowserService(Service):
    """One persistent Playwright context shared by all browser tool calls.

    The browser is launched on first use, so an agent that never browses
    never pays for it. Calls are serialized because they share one page.
    """

    critical = False

    def __init__(self, config: BrowserServiceConfig, screenshot_dir: Path | str = "./data/screenshots"):
        self._config = config
        self._screenshot_dir = Path(screenshot_dir)
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None
        self._lock = asyncio.Lock()

    @property
    def service_name(self) -> str:
        return "browser"

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    async def start(self) -> None:
        if not self._config.enabled or self._browser is not None:
            return
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        launcher = getattr(self._playwright, self._config.browser_type)
        self._browser = await launcher.launch(headless=self._config.headless)
        self._context = await self._browser.new_context()
        self._page = None
        logger.info(
            "browser_started",
            browser_type=self._config.browser_type,
            headless=self._config.headless,
        )

    async def stop(self) -> None:
        if self._context:
            await self._context.close()
            self._context = None
            self._page = None
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
            logger.info("browser_stopped")

    async def health_check(self) -> bool:
        if not self._config.enabled:
            return True
        return self._browser is not None and self._browser.is_connected()

    async def _page_for(self, url: Optional[str], wait_until: str = "domcontentloaded"):
        """Current page, launching the browser and navigating as needed."""
        if not self._config.enabled:
            raise RuntimeError("Browser service is disabled in configuration")
        if self._browser is None:
            await self.start()
        if self._page is None or self._page.is_closed():
            self._page = await self._context.new_page()
        if url:
            await self._page.goto(url, wait_until=wait_until, timeout=self._config.timeout_ms)
        return self._page

    async def open_page(self, url: Optional[str] = None) -> str:
        async with self._lock:
            page = await self._page_for(url)
            content = await page.inner_text("body")
            return content[:_TEXT_LIMIT]

    async def get_html(self, url: Optional[str] = None) -> str:
        async with self._lock:
            page = await self._page_for(url)
            html = await page.content()
            return html[:_HTML_LIMIT]

    async def screenshot(self, url: Optional[str] = None, full_page: bool = False) -> Path:
        """Capture the page as PNG and return the saved file path."""
        async with self._lock:
            page = await self._page_for(url, wait_until="networkidle")
            self._screenshot_dir.mkdir(parents=True, exist_ok=True)
            path = self._screenshot_dir / f"screenshot-{uuid.uuid4().hex[:8]}.png"
            await page.screenshot(path=str(path), full_page=full_page)
            return path

    async def evaluate_script(self, script: str, url: Optional[str] = None) -> str:
        async with self._lock:
            page = await self._page_for(url)
            result = await page.evaluate(script)
            return str(result)

    async def click_and_extract(
        self, selector: str, url: Optional[str] = None, extract_selector: Optional[str] = None
    ) -> str:
        """Click an element, follow any popup it opens, and return page text."""
        async with self._lock:
            page = await self._page_for(url)
            pages_before = list(self._context.pages)

            await page.click(selector, timeout=self._config.timeout_ms)
            await page.wait_for_load_state("domcontentloaded")

            await asyncio.sleep(0.5)
            popups = [p for p in self._context.pages if p not in pages_before and not p.is_closed()]
            note = ""
            if popups:
                page = self._page = popups[-1]
                await page.wait_for_load_state("domcontentloaded", timeout=5000)
                note = f"\n[Switched to popup page {page.url}]"
                logger.info("browser_popup_followed", url=page.url)

            content = await page.inner_text(extract_selector or "body")
            return content[:_TEXT_LIMIT] + note

    async def fill(self, selector: str, value: str, url: Optional[str] = None) -> str:
        async with self._lock:
            page = await self._page_for(url)
            await page.fill(selector, value, timeout=self._config.timeout_ms)
            return f"Filled '{selector}'."

    async def clear_session(self) -> str:
        """Drop cookies and storage by replacing the browser context."""
        async with self._lock:
            if self._browser is None:
                return "Browser session is already empty."
            await self._context.close()
            self._context = await self._browser.new_context()
            self._page = None
            logger.info("browser_session_cleared")
            return "Browser session cleared."
