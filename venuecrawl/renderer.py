from __future__ import annotations

import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from curl_cffi import requests as curl_requests

from .errors import BotChallengeDetected, RenderFailure
from .models import RenderedPage

logger = logging.getLogger(__name__)

DESKTOP_CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
)

SCRAPERAPI_ENDPOINT = "https://api.scraperapi.com/"

_CHALLENGE_MARKERS = re.compile(
    r"(cf-challenge|challenge-platform|cf-turnstile|g-recaptcha|h-captcha|"
    r"verify you are (a )?human|are you a robot|attention required!? \| cloudflare|"
    r"just a moment\.\.\.|px-captcha|captcha-delivery)",
    re.IGNORECASE,
)


def page_url(seed_url: str, param_name: str, page_number: int) -> str:
    """Set (or replace) the pagination parameter on the seed URL."""
    u = urlsplit(seed_url)
    query = [(k, v) for k, v in parse_qsl(u.query, keep_blank_values=True) if k != param_name]
    query.append((param_name, str(page_number)))
    return urlunsplit((u.scheme, u.netloc, u.path, urlencode(query), u.fragment))


def looks_like_challenge(html: str) -> bool:
    # Only the head of the document; real listings can mention "captcha" in footers.
    return bool(_CHALLENGE_MARKERS.search(html[:20000]))


class PageRenderer(ABC):
    """Loads a URL and hands back hydrated markup plus HTTP status.

    ``render`` owns the common failure classification: transport errors and
    timeouts from ``fetch`` become RenderFailure, any status >= 400 is a
    RenderFailure, and a bot-verification wall is BotChallengeDetected."""

    def render(self, url: str, timeout: float = 90.0) -> RenderedPage:
        start = time.monotonic()
        try:
            page = self.fetch(url, timeout)
        except RenderFailure:
            raise
        except Exception as exc:  # noqa: BLE001
            raise RenderFailure(f"{type(exc).__name__}: {exc}", url=url) from exc

        latency_ms = int((time.monotonic() - start) * 1000)
        logger.debug("rendered %s status=%s latency_ms=%d", url, page.status, latency_ms)

        if page.status >= 400:
            if page.status in (403, 429) and looks_like_challenge(page.html):
                raise BotChallengeDetected(f"bot verification challenge (HTTP_{page.status})", url=url, status=page.status)
            raise RenderFailure(f"HTTP_{page.status}", url=url, status=page.status)
        if looks_like_challenge(page.html):
            raise BotChallengeDetected("bot verification challenge", url=url, status=page.status)
        return page

    @abstractmethod
    def fetch(self, url: str, timeout: float) -> RenderedPage:
        ...

    def close(self) -> None:
        """Release renderer resources. No-op by default."""


class HttpRenderer(PageRenderer):
    """Fetches pages over HTTP with browser TLS impersonation.

    When an API key is given, requests go through ScraperAPI with server-side
    JavaScript rendering so client-rendered grids arrive hydrated. Otherwise
    the URL is fetched directly, optionally via an upstream proxy."""

    def __init__(
        self,
        scraperapi_key: Optional[str] = None,
        proxy_url: Optional[str] = None,
        country_code: str = "gb",
        render_js: bool = True,
        impersonate: str = "chrome120",
    ) -> None:
        self._api_key = scraperapi_key
        self._proxy_url = proxy_url
        self._country_code = country_code
        self._render_js = render_js
        self._impersonate = impersonate

    def request_url(self, url: str) -> str:
        if not self._api_key:
            return url
        params = {"api_key": self._api_key}
        if self._render_js:
            params["render"] = "true"
        params["country_code"] = self._country_code
        params["keep_headers"] = "true"
        params["url"] = url
        return f"{SCRAPERAPI_ENDPOINT}?{urlencode(params)}"

    def fetch(self, url: str, timeout: float) -> RenderedPage:
        proxies = {"http": self._proxy_url, "https": self._proxy_url} if self._proxy_url else None
        session = curl_requests.Session()
        try:
            response = session.get(
                self.request_url(url),
                headers={
                    "Accept": "text/html,application/xhtml+xml",
                    "User-Agent": DESKTOP_CHROME_UA,
                },
                proxies=proxies,
                impersonate=self._impersonate,
                timeout=timeout,
            )
            return RenderedPage(url=url, status=int(response.status_code), html=response.text or "")
        finally:
            session.close()
