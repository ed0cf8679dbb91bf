from __future__ import annotations

import logging
import os
from typing import Optional

from .models import RenderedPage

logger = logging.getLogger(__name__)


class DebugArtifacts:
    """Saves ``<source>-p<N>.html`` (and ``.png`` when available) for inspection.

    Written for the first few pages of a crawl and for every empty page.
    Purely observational: write errors are logged and swallowed."""

    def __init__(self, directory: str, first_pages: int = 3) -> None:
        self._dir = directory
        self._first_pages = first_pages

    def wanted(self, page_number: int, start_page: int, item_count: int) -> bool:
        return page_number - start_page < self._first_pages or item_count == 0

    def save(self, source_id: str, page_number: int, page: Optional[RenderedPage]) -> None:
        if page is None:
            return
        prefix = os.path.join(self._dir, f"{source_id.lower()}-p{page_number}")
        try:
            os.makedirs(self._dir, exist_ok=True)
            with open(prefix + ".html", "w", encoding="utf-8") as f:
                f.write(page.html)
            if page.screenshot:
                with open(prefix + ".png", "wb") as f:
                    f.write(page.screenshot)
        except OSError as exc:
            logger.warning("could not save debug artifacts %s: %s", prefix, exc)
            return
        logger.debug("saved debug artifacts %s.*", prefix)
