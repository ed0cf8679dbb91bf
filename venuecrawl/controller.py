from __future__ import annotations

import logging
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Iterator, List, Optional, Tuple

from .artifacts import DebugArtifacts
from .backoff import BackoffStrategy, RetryPolicy
from .batching import assemble_batch, fold_new
from .delivery import BatchDeliverer
from .errors import BotChallengeDetected, ConfigurationError, ExtractionFailure, RenderFailure
from .extraction import DetailFields, ExtractionAdapter
from .governor import ConcurrencyGovernor, wait_for_result
from .models import (
    ROLE_DETAIL,
    ROLE_LISTING,
    STOP_CEILING,
    STOP_FATAL,
    STOP_LOW_STREAK,
    STOP_SHORT_TAIL,
    CatalogDescriptor,
    PageFetchResult,
    RawCandidate,
    Record,
    RenderedPage,
    RunState,
    RunSummary,
    ShardSpec,
)
from .progress import ProgressReporter
from .renderer import PageRenderer, page_url

logger = logging.getLogger(__name__)

# Seconds allowed on top of the per-attempt render timeouts for backoff sleeps.
WAIT_SLACK = 30.0


def planned_pages(descriptor: CatalogDescriptor, shard: ShardSpec) -> Iterator[int]:
    """Page numbers this shard may visit, in order, never beyond the ceiling."""
    for p in range(descriptor.start_page, descriptor.hard_page_ceiling + 1):
        if shard.owns(p):
            yield p


def validate_shard(shard: ShardSpec) -> None:
    if shard.total < 1:
        raise ConfigurationError(f"shard total must be >= 1, got {shard.total}")
    if not 0 <= shard.index < shard.total:
        raise ConfigurationError(f"shard index must be in [0, {shard.total}), got {shard.index}")


class CrawlController:
    """Drives the page-by-page crawl of one source (or one shard of it).

    Listing pages are visited strictly in sequence because each stop
    decision depends on the previous page. Detail fetches for a page fan
    out on the detail governor and are all folded in before the next page.
    Render and extraction failures degrade a page to empty; only
    configuration errors escape ``crawl_source``."""

    def __init__(
        self,
        renderer: PageRenderer,
        extractor: ExtractionAdapter,
        deliverer: BatchDeliverer,
        governor: ConcurrencyGovernor,
        progress: Optional[ProgressReporter] = None,
        artifacts: Optional[DebugArtifacts] = None,
        render_timeout: float = 90.0,
        render_retry: Optional[RetryPolicy] = None,
    ) -> None:
        self._renderer = renderer
        self._extractor = extractor
        self._deliverer = deliverer
        self._governor = governor
        self._progress = progress or ProgressReporter()
        self._artifacts = artifacts
        self._render_timeout = render_timeout
        self._render_retry = render_retry or RetryPolicy(
            attempts=2,
            backoff=BackoffStrategy(base_seconds=1.0, max_seconds=5.0),
            retry_on=(RenderFailure,),
            give_up_on=(BotChallengeDetected,),
        )

    def crawl_source(self, descriptor: CatalogDescriptor, shard: Optional[ShardSpec] = None) -> RunSummary:
        shard = shard or ShardSpec()
        validate_shard(shard)

        state = RunState()
        reason = STOP_CEILING
        error: Optional[str] = None
        logger.info("[%s] crawl start shard=%s pages=%d..%d", descriptor.source_id, shard, descriptor.start_page, descriptor.hard_page_ceiling)

        try:
            for page_number in planned_pages(descriptor, shard):
                stop, error = self._visit(descriptor, shard, state, page_number)
                if stop is not None:
                    reason = stop
                    break
        except Exception as exc:  # noqa: BLE001
            logger.exception("[%s] crawl aborted on page %d", descriptor.source_id, state.current_page)
            reason = STOP_FATAL
            error = f"{type(exc).__name__}: {exc}"

        summary = RunSummary(
            source_id=descriptor.source_id,
            shard=shard,
            pages_visited=state.pages_visited,
            total_delivered=state.total_delivered,
            stopped_reason=reason,
            batches_lost=state.batches_lost,
            error=error,
        )
        self._progress.summary(summary)
        logger.info("[%s] Total links sent: %d (stopped: %s)", descriptor.source_id, state.total_delivered, reason)
        return summary

    def _visit(
        self,
        descriptor: CatalogDescriptor,
        shard: ShardSpec,
        state: RunState,
        page_number: int,
    ) -> Tuple[Optional[str], Optional[str]]:
        """Process one listing page. Returns (stop reason or None, error message or None)."""
        state.current_page = page_number
        result, page = self.fetch_page(descriptor, page_number)
        state.pages_visited += 1
        raw_count = len(result.candidate_items)

        if self._artifacts is not None and self._artifacts.wanted(page_number, descriptor.start_page, raw_count):
            self._artifacts.save(descriptor.source_id, page_number, page)

        if result.challenge:
            self._progress.page(result, shard, 0, 0, state.consecutive_low_pages, "challenge")
            return STOP_FATAL, result.render_error

        fresh = fold_new(state, result.candidate_items)
        low = result.failed or len(fresh) < descriptor.low_item_threshold
        if low:
            state.consecutive_low_pages += 1
        else:
            state.consecutive_low_pages = 0

        delivered, challenge = 0, None
        if not low:
            delivered, challenge = self._deliver_page(descriptor, state, page_number, fresh)
        if challenge is not None:
            self._progress.page(result, shard, len(fresh), delivered, state.consecutive_low_pages, "challenge")
            return STOP_FATAL, challenge

        stop: Optional[str] = None
        if state.consecutive_low_pages >= descriptor.stop_streak_length:
            stop = STOP_LOW_STREAK
        elif not result.failed and 0 < raw_count < descriptor.short_tail_floor:
            stop = STOP_SHORT_TAIL

        self._progress.page(result, shard, len(fresh), delivered, state.consecutive_low_pages, stop or ("low" if low else "continue"))
        return stop, None

    def fetch_page(self, descriptor: CatalogDescriptor, page_number: int) -> Tuple[PageFetchResult, Optional[RenderedPage]]:
        """Render and extract one listing page; failures come back inside the result."""
        url = page_url(descriptor.seed_url_template, descriptor.page_param_name, page_number)
        logger.info("[%s] Visiting %s", descriptor.source_id, url)

        attempts = [0]
        try:
            page = self._render(ROLE_LISTING, url, attempts)
        except BotChallengeDetected as exc:
            logger.warning("[%s] page %d bot challenge: %s", descriptor.source_id, page_number, exc)
            return self._failed(descriptor, page_number, exc, attempts[0], challenge=True), None
        except RenderFailure as exc:
            logger.warning("[%s] page %d render error after %d attempts: %s", descriptor.source_id, page_number, attempts[0], exc)
            return self._failed(descriptor, page_number, exc, attempts[0]), None

        try:
            candidates = self._extractor.extract(page, descriptor.item_link_rule)
        except ExtractionFailure as exc:
            logger.warning("[%s] page %d extraction failure: %s", descriptor.source_id, page_number, exc)
            return self._failed(descriptor, page_number, exc, attempts[0], status=page.status), page

        logger.info("[%s] page %d => items: %d", descriptor.source_id, page_number, len(candidates))
        result = PageFetchResult(
            source_id=descriptor.source_id,
            page_number=page_number,
            http_status=page.status,
            candidate_items=tuple(candidates),
            attempts=attempts[0],
        )
        return result, page

    @staticmethod
    def _failed(
        descriptor: CatalogDescriptor,
        page_number: int,
        exc: Exception,
        attempts: int,
        status: Optional[int] = None,
        challenge: bool = False,
    ) -> PageFetchResult:
        return PageFetchResult(
            source_id=descriptor.source_id,
            page_number=page_number,
            http_status=status if status is not None else getattr(exc, "status", None),
            render_error=f"{type(exc).__name__}: {exc}",
            attempts=attempts,
            challenge=challenge,
        )

    def _render(self, role: str, url: str, attempts: List[int]) -> RenderedPage:
        def attempt() -> RenderedPage:
            attempts[0] += 1
            return self._renderer.render(url, self._render_timeout)

        fut = self._governor.schedule(role, self._render_retry.call, attempt)
        return self._await(fut, url)

    def _budget(self) -> float:
        # Covers every attempt plus the backoff between them, counted from task start.
        return self._render_timeout * self._render_retry.attempts + WAIT_SLACK

    def _await(self, fut: Future, url: str) -> RenderedPage:
        budget = self._budget()
        try:
            return wait_for_result(fut, budget)
        except FutureTimeout:
            # The worker stays busy until the renderer's own timeout fires.
            raise RenderFailure(f"no result within {budget:.0f}s", url=url) from None

    def _deliver_page(
        self,
        descriptor: CatalogDescriptor,
        state: RunState,
        page_number: int,
        fresh: List[RawCandidate],
    ) -> Tuple[int, Optional[str]]:
        """Build and deliver one page's batch. Returns (delivered count, challenge message or None)."""
        records, challenge = self._build_records(descriptor, state, fresh)
        batch = assemble_batch(descriptor.source_id, page_number, page_number, records)
        delivered = self._deliverer.deliver(batch)
        if len(batch) and not delivered:
            state.batches_lost += 1
        else:
            logger.info("[%s] Posted %d rows.", descriptor.source_id, delivered)
        state.total_delivered += delivered
        return delivered, challenge

    def _build_records(
        self,
        descriptor: CatalogDescriptor,
        state: RunState,
        fresh: List[RawCandidate],
    ) -> Tuple[List[Record], Optional[str]]:
        challenge: Optional[str] = None
        if descriptor.detail_field_rules is None:
            details = [DetailFields(name=c.visible_text, city="") for c in fresh]
        else:
            futures = [self._governor.schedule(ROLE_DETAIL, self._fetch_detail, descriptor, c) for c in fresh]
            details = []
            for fut, c in zip(futures, fresh):
                if challenge is not None:
                    # Behind a bot wall: skip the remaining detail renders.
                    fut.cancel()
                    details.append(DetailFields(name=c.visible_text, city=""))
                    continue
                try:
                    details.append(self._detail_result(fut, c))
                except BotChallengeDetected as exc:
                    logger.warning("[%s] detail bot challenge on %s: %s", descriptor.source_id, c.href, exc)
                    challenge = f"{type(exc).__name__}: {exc}"
                    details.append(DetailFields(name=c.visible_text, city=""))

        records = [
            Record(
                name=d.name,
                city=d.city,
                source=descriptor.source_id,
                dir_url=c.href,
                fetched_at=state.stamp(),
            )
            for c, d in zip(fresh, details)
        ]
        return records, challenge

    def _fetch_detail(self, descriptor: CatalogDescriptor, candidate: RawCandidate) -> DetailFields:
        page = self._render_retry.call(self._renderer.render, candidate.href, self._render_timeout)
        return self._extractor.extract_detail(page, descriptor.detail_field_rules)

    def _detail_result(self, fut: Future, candidate: RawCandidate) -> DetailFields:
        try:
            fields = wait_for_result(fut, self._budget())
        except BotChallengeDetected:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("detail error for %s: %s", candidate.href, exc)
            return DetailFields(name=candidate.visible_text, city="")
        if not fields.name:
            return DetailFields(name=candidate.visible_text, city=fields.city)
        return fields
