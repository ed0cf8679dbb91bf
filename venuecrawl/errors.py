from __future__ import annotations

from typing import Optional


class CrawlError(Exception):
    """Base class for all crawl-level errors."""


class RenderFailure(CrawlError):
    """A page could not be loaded: navigation error, timeout or HTTP status >= 400."""

    def __init__(self, message: str, url: str = "", status: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class BotChallengeDetected(RenderFailure):
    """The target answered with a bot-verification wall instead of content."""


class ExtractionFailure(CrawlError):
    """The link selector matched markup but nothing in it resolved to a URL."""


class DeliveryFailure(CrawlError):
    """The sink rejected a batch or could not be reached."""


class ConfigurationError(CrawlError):
    """Unknown source, invalid limits or a missing credential. Always fatal."""
