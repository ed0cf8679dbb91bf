from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from .artifacts import DebugArtifacts
from .catalogs import resolve_sources
from .config import RENDERER_BROWSER, RENDERER_SCRAPERAPI, Settings, mask_proxy
from .controller import CrawlController, validate_shard
from .delivery import BatchDeliverer, DeliveryClient, JsonlDeliveryClient, WebhookDeliveryClient
from .extraction import ExtractionAdapter
from .governor import ConcurrencyGovernor
from .models import CatalogDescriptor, RunSummary, ShardSpec
from .progress import ProgressReporter
from .renderer import HttpRenderer, PageRenderer

logger = logging.getLogger(__name__)


def build_renderer(settings: Settings) -> PageRenderer:
    if settings.renderer == RENDERER_BROWSER:
        from .browser import BrowserRenderer

        return BrowserRenderer(proxy_url=settings.proxy_url, screenshots=bool(settings.debug_dir))
    key = settings.scraperapi_key if settings.renderer == RENDERER_SCRAPERAPI else None
    return HttpRenderer(scraperapi_key=key, proxy_url=settings.proxy_url)


def build_delivery_client(settings: Settings) -> DeliveryClient:
    if settings.dry_run:
        return JsonlDeliveryClient(settings.dry_run)
    return WebhookDeliveryClient(settings.webhook_url, token=settings.job_token, timeout=settings.delivery_timeout)


def crawl_shards(controller: CrawlController, descriptor: CatalogDescriptor, total: int) -> List[RunSummary]:
    """Crawl every shard of one source concurrently, each with its own RunState."""
    shards = [ShardSpec(index=i, total=total) for i in range(total)]
    with ThreadPoolExecutor(max_workers=total, thread_name_prefix=f"shard-{descriptor.source_id}") as pool:
        futures = [pool.submit(controller.crawl_source, descriptor, shard) for shard in shards]
        return [f.result() for f in futures]


def run(
    settings: Settings,
    renderer: Optional[PageRenderer] = None,
    client: Optional[DeliveryClient] = None,
    progress: Optional[ProgressReporter] = None,
) -> List[RunSummary]:
    """Resolve sources, wire collaborators and crawl. Configuration errors raise before any page."""
    descriptors = resolve_sources(
        settings.source,
        hard_page_ceiling=settings.max_pages,
        low_item_threshold=settings.low_item_threshold,
        stop_streak_length=settings.stop_streak,
        short_tail_floor=settings.short_tail_floor,
        start_page=settings.start_page,
        inline_only=settings.inline_only,
    )
    shard = ShardSpec(index=settings.shard_index, total=settings.shard_total)
    validate_shard(shard)

    logger.info("BRAND=%s SHARD=%s renderer=%s", settings.source, shard, settings.renderer)
    if settings.proxy_url:
        logger.info("Using proxy: %s", mask_proxy(settings.proxy_url))

    renderer = renderer or build_renderer(settings)
    client = client or build_delivery_client(settings)
    governor = ConcurrencyGovernor(
        listing_limit=settings.listing_concurrency,
        detail_limit=settings.detail_concurrency,
        detail_qps=settings.qps,
    )
    controller = CrawlController(
        renderer=renderer,
        extractor=ExtractionAdapter(),
        deliverer=BatchDeliverer(client),
        governor=governor,
        progress=progress,
        artifacts=DebugArtifacts(settings.debug_dir) if settings.debug_dir else None,
        render_timeout=settings.render_timeout,
    )

    summaries: List[RunSummary] = []
    try:
        for descriptor in descriptors:
            if settings.parallel_shards and settings.shard_total > 1:
                summaries.extend(crawl_shards(controller, descriptor, settings.shard_total))
            else:
                summaries.append(controller.crawl_source(descriptor, shard))
    finally:
        governor.shutdown(wait=True)
        client.close()
        renderer.close()

    logger.info("Done.")
    return summaries
