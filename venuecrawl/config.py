from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence
from urllib.parse import urlsplit, urlunsplit

from .catalogs import CATALOGS, SOURCE_ALL
from .errors import ConfigurationError

RENDERER_HTTP = "http"
RENDERER_SCRAPERAPI = "scraperapi"
RENDERER_BROWSER = "browser"


@dataclass(frozen=True)
class Settings:
    source: str = SOURCE_ALL
    shard_index: int = 0
    shard_total: int = 1
    parallel_shards: bool = False
    start_page: Optional[int] = None
    max_pages: Optional[int] = None
    low_item_threshold: Optional[int] = None
    stop_streak: Optional[int] = None
    short_tail_floor: Optional[int] = None
    inline_only: bool = False
    listing_concurrency: int = 2
    detail_concurrency: int = 4
    qps: float = 0.0
    renderer: str = RENDERER_HTTP
    render_timeout: float = 90.0
    proxy_url: Optional[str] = None
    scraperapi_key: Optional[str] = None
    webhook_url: Optional[str] = None
    job_token: str = ""
    delivery_timeout: float = 30.0
    dry_run: Optional[str] = None
    debug_dir: Optional[str] = None
    log_level: str = "INFO"

    def validate(self) -> None:
        if self.source != SOURCE_ALL and self.source not in CATALOGS:
            raise ConfigurationError(f"Unknown source: {self.source!r}")
        if self.shard_total < 1:
            raise ConfigurationError("shard total must be >= 1")
        if not 0 <= self.shard_index < self.shard_total:
            raise ConfigurationError(f"shard index must be in [0, {self.shard_total})")
        if self.listing_concurrency < 1 or self.detail_concurrency < 1:
            raise ConfigurationError("concurrency limits must be >= 1")
        if self.max_pages is not None and self.max_pages < 1:
            raise ConfigurationError("max pages must be >= 1")
        if self.render_timeout <= 0 or self.delivery_timeout <= 0:
            raise ConfigurationError("timeouts must be positive")
        if self.renderer == RENDERER_SCRAPERAPI and not self.scraperapi_key:
            raise ConfigurationError("Missing SCRAPERAPI_KEY for the scraperapi renderer")
        if not self.dry_run and not self.webhook_url:
            raise ConfigurationError("Missing APPS_SCRIPT_WEBHOOK (or pass --dry-run PATH)")


def mask_proxy(url: Optional[str]) -> str:
    """Hide proxy credentials (user and password) for logging."""
    if not url:
        return ""
    try:
        u = urlsplit(url)
        host = u.hostname or ""
        port = u.port
    except ValueError:
        return "***"
    if not host:
        return "***"
    netloc = host if port is None else f"{host}:{port}"
    if u.username or u.password:
        netloc = f"***:***@{netloc}"
    return urlunsplit((u.scheme, netloc, u.path, "", ""))


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from None


def build_parser(env: Optional[Mapping[str, str]] = None) -> argparse.ArgumentParser:
    env = os.environ if env is None else env
    parser = argparse.ArgumentParser(prog="venuecrawl", description="Crawl venue directory catalogs and deliver listings to a webhook.")

    parser.add_argument("--source", default=env.get("BRAND", SOURCE_ALL), choices=[*CATALOGS, SOURCE_ALL], help="Catalog to crawl")
    parser.add_argument("--shard-index", type=int, default=_env_int(env, "SHARD_INDEX", 0), help="This worker's shard (0-based)")
    parser.add_argument("--shard-total", type=int, default=_env_int(env, "SHARD_TOTAL", 1), help="Number of shards")
    parser.add_argument("--parallel-shards", action="store_true", help="Run all shards in this process concurrently")

    parser.add_argument("--start-page", type=int, default=None, help="First page number to consider")
    parser.add_argument("--max-pages", type=int, default=None, help="Override the hard page ceiling")
    parser.add_argument("--low-item-threshold", type=int, default=None, help="Pages with fewer new items count as low")
    parser.add_argument("--stop-streak", type=int, default=None, help="Stop after this many low pages in a row")
    parser.add_argument("--short-tail-floor", type=int, default=None, help="Stop at once when a page has fewer raw items than this")
    parser.add_argument("--inline-only", action="store_true", help="Skip detail pages; use listing link text as the name")

    parser.add_argument("--listing-concurrency", type=int, default=2, help="Max concurrent listing renders")
    parser.add_argument("--detail-concurrency", type=int, default=4, help="Max concurrent detail fetches")
    parser.add_argument("--qps", type=float, default=0.0, help="Max detail fetch starts per second (0 = unlimited)")

    parser.add_argument("--renderer", default=RENDERER_SCRAPERAPI if env.get("SCRAPERAPI_KEY") else RENDERER_HTTP,
                        choices=[RENDERER_HTTP, RENDERER_SCRAPERAPI, RENDERER_BROWSER], help="Page renderer")
    parser.add_argument("--render-timeout", type=float, default=90.0, help="Per-render timeout in seconds")
    parser.add_argument("--proxy", default=env.get("PROXY_URL") or None, help="Upstream proxy URL")
    parser.add_argument("--scraperapi-key", default=env.get("SCRAPERAPI_KEY") or None, help="ScraperAPI key")

    parser.add_argument("--webhook", default=env.get("APPS_SCRIPT_WEBHOOK") or None, help="Sink endpoint")
    parser.add_argument("--token", default=env.get("JOB_TOKEN", ""), help="Token sent with each batch")
    parser.add_argument("--delivery-timeout", type=float, default=30.0, help="Webhook timeout in seconds")
    parser.add_argument("--dry-run", metavar="PATH", default=None, help="Write batches to a JSONL file instead of posting")

    parser.add_argument("--debug-dir", default=None, help="Save HTML/screenshots of early and empty pages here")
    parser.add_argument("--log-level", default=env.get("LOG_LEVEL", "INFO"), help="Logging level")
    return parser


def settings_from_args(argv: Optional[Sequence[str]] = None, env: Optional[Mapping[str, str]] = None) -> Settings:
    args = build_parser(env).parse_args(argv)
    settings = Settings(
        source=args.source,
        shard_index=args.shard_index,
        shard_total=args.shard_total,
        parallel_shards=args.parallel_shards,
        start_page=args.start_page,
        max_pages=args.max_pages,
        low_item_threshold=args.low_item_threshold,
        stop_streak=args.stop_streak,
        short_tail_floor=args.short_tail_floor,
        inline_only=args.inline_only,
        listing_concurrency=args.listing_concurrency,
        detail_concurrency=args.detail_concurrency,
        qps=args.qps,
        renderer=args.renderer,
        render_timeout=args.render_timeout,
        proxy_url=args.proxy,
        scraperapi_key=args.scraperapi_key,
        webhook_url=args.webhook,
        job_token=args.token,
        delivery_timeout=args.delivery_timeout,
        dry_run=args.dry_run,
        debug_dir=args.debug_dir,
        log_level=args.log_level,
    )
    settings.validate()
    return settings
