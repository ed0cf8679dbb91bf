from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urldefrag, urljoin, urlsplit

from bs4 import BeautifulSoup

from .errors import ExtractionFailure
from .models import DetailFieldRules, ItemLinkRule, RawCandidate, RenderedPage

logger = logging.getLogger(__name__)

_WS = re.compile(r"\s+")


def normalize(text: Optional[str]) -> str:
    return _WS.sub(" ", (text or "").strip())


def resolve_href(href: Optional[str], base_url: str) -> Optional[str]:
    """Absolute http(s) URL without fragment, or None when it cannot be resolved."""
    href = (href or "").strip()
    if not href or href.startswith(("javascript:", "mailto:", "tel:", "#")):
        return None
    try:
        absolute, _ = urldefrag(urljoin(base_url, href))
        parts = urlsplit(absolute)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return absolute


@dataclass(frozen=True)
class DetailFields:
    name: str
    city: str


class ExtractionAdapter:
    """CSS-selector extraction over rendered markup.

    The controller never looks at markup itself; everything it knows about
    a page comes through ``extract`` and ``extract_detail``."""

    def __init__(self, parser: str = "html.parser") -> None:
        self._parser = parser

    def _soup(self, page: RenderedPage) -> BeautifulSoup:
        return BeautifulSoup(page.html, self._parser)

    def extract(self, page: RenderedPage, rule: ItemLinkRule) -> List[RawCandidate]:
        """Return unique candidates in document order.

        Zero matching anchors is a legitimate empty page. Anchors that match
        but none of which resolve raise ExtractionFailure."""
        anchors = self._soup(page).select(rule.selector)
        candidates: List[RawCandidate] = []
        seen = set()
        resolved_any = False
        for a in anchors:
            href = resolve_href(a.get("href"), page.url)
            if href is None:
                continue
            resolved_any = True
            if any(pattern in href for pattern in rule.exclude):
                continue
            if href in seen:
                continue
            seen.add(href)
            candidates.append(RawCandidate(href=href, visible_text=normalize(a.get_text(" "))))
            if rule.limit is not None and len(candidates) >= rule.limit:
                break

        if anchors and not resolved_any:
            raise ExtractionFailure(f"{len(anchors)} anchors matched {rule.selector!r} but none resolved")
        return candidates

    def extract_detail(self, page: RenderedPage, rules: DetailFieldRules) -> DetailFields:
        soup = self._soup(page)
        name = ""
        for selector in rules.name_selectors:
            el = soup.select_one(selector)
            if el is not None:
                name = normalize(el.get_text(" "))
                if name:
                    break
        if not name:
            for selector in rules.name_meta:
                el = soup.select_one(selector)
                if el is not None:
                    name = normalize(el.get("content"))
                    if name:
                        break

        city = ""
        if rules.city_selectors:
            el = soup.select_one(", ".join(rules.city_selectors))
            if el is not None:
                city = normalize(el.get_text(" "))
        return DetailFields(name=name, city=city)
