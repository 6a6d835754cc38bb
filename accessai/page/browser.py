"""
Live page access.

:class:`PageDriver` is the surface the agent tools act through: capture the
page as a :class:`PageDocument`, then act on elements by their node ordinal.
:class:`PlaywrightPageDriver` implements it on a Chromium page.
"""

import logging
from typing import Optional

try:
    from playwright.async_api import async_playwright
except ImportError as exc:
    raise ImportError(
        "playwright not found. Install with `pip install playwright` and run `playwright install`."
    ) from exc

from ..config import BROWSER_START_URL, READ_PAGE_MAX_CHARS
from .dom import ANNOTATE_SCRIPT, NODE_ATTR, PageDocument

SCROLL_STEP_PX = 600
ACTION_TIMEOUT_MS = 5000
SCREEN_WIDTH = 1440
SCREEN_HEIGHT = 900


def normalize_url(raw_url: str) -> str:
    """Prefix bare hosts with https://."""
    url = (raw_url or "").strip()
    if url and not url.lower().startswith(("http://", "https://", "about:", "file:")):
        url = "https://" + url
    return url


class PageDriver:
    """Operations the agent tools need from a browser page."""

    async def capture(self) -> PageDocument:
        raise NotImplementedError

    async def click(self, node_id: str) -> None:
        raise NotImplementedError

    async def fill(self, node_id: str, text: str) -> None:
        raise NotImplementedError

    async def press(self, key: str, node_id: Optional[str] = None) -> None:
        raise NotImplementedError

    async def select_option(self, node_id: str, option: str) -> None:
        raise NotImplementedError

    async def scroll(self, direction: str) -> None:
        raise NotImplementedError

    async def goto(self, url: str) -> None:
        raise NotImplementedError

    async def read_text(self) -> str:
        doc = await self.capture()
        return doc.read_text()[:READ_PAGE_MAX_CHARS]

    async def close(self) -> None:
        return None


class PlaywrightPageDriver(PageDriver):
    """Chromium page driven through Playwright's async API."""

    def __init__(self, headless: bool = False, start_url: Optional[str] = BROWSER_START_URL, logger=None):
        self.headless = headless
        self.start_url = start_url
        self.logger = logger or logging.getLogger("AccessAI.PlaywrightPageDriver")
        self.playwright = None
        self.browser = None
        self.context = None
        self.page = None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def setup(self) -> None:
        """Initialize Playwright browser."""
        try:
            self.logger.info("Initializing browser...")
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(headless=self.headless)
            self.context = await self.browser.new_context(
                viewport={"width": SCREEN_WIDTH, "height": SCREEN_HEIGHT}
            )
            self.page = await self.context.new_page()
            if self.start_url:
                await self.goto(self.start_url)
            self.logger.info("Browser ready!")
        except Exception as e:
            self.logger.error(f"Failed to initialize browser: {e}")
            raise

    async def close(self) -> None:
        """Clean up Playwright browser resources."""
        try:
            if self.browser:
                await self.browser.close()
            if self.playwright:
                await self.playwright.stop()
            self.logger.info("Browser cleaned up successfully")
        except Exception as e:
            self.logger.error(f"Browser cleanup error: {e}")
        finally:
            self.browser = None
            self.playwright = None
            self.page = None

    def _require_page(self):
        if self.page is None:
            raise RuntimeError("Browser is not running; call setup() first")
        return self.page

    def _locator(self, node_id: str):
        return self._require_page().locator(f'[{NODE_ATTR}="{node_id}"]')

    # ------------------------------------------------------------------ #
    # PageDriver
    # ------------------------------------------------------------------ #

    async def capture(self) -> PageDocument:
        page = self._require_page()
        meta = await page.evaluate(ANNOTATE_SCRIPT)
        html = await page.content()
        return PageDocument(html, url=meta.get("url") or page.url, title=meta.get("title") or "")

    async def click(self, node_id: str) -> None:
        locator = self._locator(node_id)
        await locator.scroll_into_view_if_needed(timeout=ACTION_TIMEOUT_MS)
        await locator.click(timeout=ACTION_TIMEOUT_MS)

    async def fill(self, node_id: str, text: str) -> None:
        locator = self._locator(node_id)
        await locator.click(timeout=ACTION_TIMEOUT_MS)
        await locator.fill(text, timeout=ACTION_TIMEOUT_MS)

    async def press(self, key: str, node_id: Optional[str] = None) -> None:
        if node_id:
            await self._locator(node_id).press(key, timeout=ACTION_TIMEOUT_MS)
        else:
            await self._require_page().keyboard.press(key)

    async def select_option(self, node_id: str, option: str) -> None:
        locator = self._locator(node_id)
        try:
            await locator.select_option(label=option, timeout=ACTION_TIMEOUT_MS)
        except Exception:
            self.logger.debug(f"No option labelled '{option}', trying value")
            await locator.select_option(value=option, timeout=ACTION_TIMEOUT_MS)

    async def scroll(self, direction: str) -> None:
        page = self._require_page()
        if direction == "top":
            await page.evaluate("() => window.scrollTo(0, 0)")
        elif direction == "bottom":
            await page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
        else:
            delta = -SCROLL_STEP_PX if direction == "up" else SCROLL_STEP_PX
            await page.evaluate(f"() => window.scrollBy(0, {delta})")

    async def goto(self, url: str) -> None:
        await self._require_page().goto(normalize_url(url), wait_until="domcontentloaded")

    async def read_text(self) -> str:
        text = await self._require_page().inner_text("body")
        return text[:READ_PAGE_MAX_CHARS]
