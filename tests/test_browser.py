"""Tests for the BrowserRenderer with Playwright mocked out."""

import unittest
from unittest import mock

from playwright.sync_api import TimeoutError as PlaywrightTimeout

from venuecrawl.browser import VIEWPORT, BrowserRenderer
from venuecrawl.errors import RenderFailure


def _wire(sync_playwright):
    """Return (browser, page) mocks behind ``with sync_playwright() as p``."""
    p = sync_playwright.return_value.__enter__.return_value
    browser = p.chromium.launch.return_value
    page = browser.new_context.return_value.new_page.return_value
    page.goto.return_value = mock.Mock(status=200)
    page.content.return_value = "<html><a href='/venue/1'>One</a></html>"
    return browser, page


@mock.patch("venuecrawl.browser.sync_playwright")
class TestBrowserRenderer(unittest.TestCase):
    """Verify navigation, hydration, scrolling and failure mapping."""

    def test_renders_page(self, sync_playwright):
        browser, page = _wire(sync_playwright)
        result = BrowserRenderer(scroll_steps=3).render("https://v.test/?page=1", timeout=7)
        self.assertEqual(result.status, 200)
        self.assertIn("/venue/1", result.html)
        self.assertIsNone(result.screenshot)
        page.goto.assert_called_once_with("https://v.test/?page=1", timeout=7000, wait_until="domcontentloaded")
        self.assertEqual(page.mouse.wheel.call_count, 3)
        page.mouse.wheel.assert_called_with(0, VIEWPORT["height"])
        browser.close.assert_called_once()

    def test_navigation_timeout_is_render_failure(self, sync_playwright):
        browser, page = _wire(sync_playwright)
        page.goto.side_effect = PlaywrightTimeout("Timeout 2000ms exceeded")
        with self.assertRaises(RenderFailure) as ctx:
            BrowserRenderer().render("https://v.test/?page=2", timeout=2)
        self.assertIn("navigation timeout", str(ctx.exception))
        page.content.assert_not_called()
        browser.close.assert_called_once()

    def test_waits_for_selector_before_fixed_hydrate(self, sync_playwright):
        _, page = _wire(sync_playwright)
        BrowserRenderer(wait_for_selector="a[href*='/venue/']", scroll_steps=0).render("https://v.test/", timeout=60)
        page.wait_for_selector.assert_called_once_with("a[href*='/venue/']", timeout=15000)
        page.wait_for_timeout.assert_not_called()

    def test_missing_selector_falls_back_to_hydrate(self, sync_playwright):
        _, page = _wire(sync_playwright)
        page.wait_for_selector.side_effect = PlaywrightTimeout("Timeout 15000ms exceeded")
        BrowserRenderer(wait_for_selector=".grid", hydrate_ms=800, scroll_steps=0).render("https://v.test/", timeout=60)
        page.wait_for_timeout.assert_called_once_with(800)

    def test_error_status_and_proxy(self, sync_playwright):
        _, page = _wire(sync_playwright)
        page.goto.return_value = mock.Mock(status=503)
        with self.assertRaises(RenderFailure) as ctx:
            BrowserRenderer(proxy_url="http://proxy.test:8001").render("https://v.test/", timeout=5)
        self.assertEqual(ctx.exception.status, 503)
        _, kwargs = sync_playwright.return_value.__enter__.return_value.chromium.launch.call_args
        self.assertEqual(kwargs["proxy"], {"server": "http://proxy.test:8001"})

    def test_screenshot_when_enabled(self, sync_playwright):
        _, page = _wire(sync_playwright)
        page.screenshot.return_value = b"PNG"
        result = BrowserRenderer(screenshots=True, scroll_steps=0).render("https://v.test/", timeout=5)
        self.assertEqual(result.screenshot, b"PNG")


if __name__ == "__main__":
    unittest.main()
