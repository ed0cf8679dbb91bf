from __future__ import annotations

import logging
from typing import Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout
from playwright.sync_api import sync_playwright

from .errors import RenderFailure
from .models import RenderedPage
from .renderer import DESKTOP_CHROME_UA, PageRenderer

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1280, "height": 900}


class BrowserRenderer(PageRenderer):
    """Renders pages in headless Chromium.

    Playwright's sync objects are bound to the thread that created them, and
    renders arrive from governor worker threads, so each call runs its own
    short-lived browser."""

    def __init__(
        self,
        proxy_url: Optional[str] = None,
        hydrate_ms: int = 1500,
        wait_for_selector: Optional[str] = None,
        scroll_steps: int = 4,
        screenshots: bool = False,
        headless: bool = True,
    ) -> None:
        self._proxy_url = proxy_url
        self._hydrate_ms = hydrate_ms
        self._wait_for_selector = wait_for_selector
        self._scroll_steps = scroll_steps
        self._screenshots = screenshots
        self._headless = headless

    def fetch(self, url: str, timeout: float) -> RenderedPage:
        timeout_ms = int(timeout * 1000)
        launch_opts = {"headless": self._headless}
        if self._proxy_url:
            launch_opts["proxy"] = {"server": self._proxy_url}

        with sync_playwright() as p:
            browser = p.chromium.launch(**launch_opts)
            try:
                ctx = browser.new_context(user_agent=DESKTOP_CHROME_UA, viewport=VIEWPORT, java_script_enabled=True)
                page = ctx.new_page()
                try:
                    response = page.goto(url, timeout=timeout_ms, wait_until="domcontentloaded")
                except PlaywrightTimeout as exc:
                    raise RenderFailure(f"navigation timeout after {timeout_ms}ms", url=url) from exc
                except PlaywrightError as exc:
                    raise RenderFailure(f"navigation error: {exc}", url=url) from exc

                status = response.status if response is not None else 200
                self._hydrate(page, timeout_ms)
                self._scroll(page)

                html = page.content()
                screenshot = None
                if self._screenshots:
                    try:
                        screenshot = page.screenshot(full_page=True)
                    except PlaywrightError as exc:
                        logger.warning("screenshot failed for %s: %s", url, exc)
                return RenderedPage(url=url, status=status, html=html, screenshot=screenshot)
            finally:
                browser.close()

    def _hydrate(self, page, timeout_ms: int) -> None:
        if self._wait_for_selector:
            try:
                page.wait_for_selector(self._wait_for_selector, timeout=min(timeout_ms, 15000))
                return
            except PlaywrightTimeout:
                # An empty page legitimately lacks the grid; extraction decides.
                logger.debug("selector %s did not appear", self._wait_for_selector)
        page.wait_for_timeout(self._hydrate_ms)

    def _scroll(self, page) -> None:
        for _ in range(self._scroll_steps):
            page.mouse.wheel(0, VIEWPORT["height"])
            page.wait_for_timeout(250)
