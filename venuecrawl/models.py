from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple


STOP_CEILING = "ceiling"
STOP_LOW_STREAK = "lowStreak"
STOP_SHORT_TAIL = "shortTail"
STOP_FATAL = "fatalError"

ROLE_LISTING = "listing"
ROLE_DETAIL = "detail"


@dataclass(frozen=True)
class ItemLinkRule:
    selector: str
    exclude: Tuple[str, ...] = ()
    limit: Optional[int] = 40


@dataclass(frozen=True)
class DetailFieldRules:
    name_selectors: Tuple[str, ...] = ("h1", "h2", '[data-testid*="title"]')
    name_meta: Tuple[str, ...] = ('meta[property="og:title"]',)
    city_selectors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CatalogDescriptor:
    source_id: str
    seed_url_template: str
    page_param_name: str
    item_link_rule: ItemLinkRule
    detail_field_rules: Optional[DetailFieldRules] = None
    hard_page_ceiling: int = 300
    low_item_threshold: int = 1
    stop_streak_length: int = 3
    short_tail_floor: int = 5
    start_page: int = 1


@dataclass(frozen=True)
class ShardSpec:
    index: int = 0
    total: int = 1

    def owns(self, page_number: int) -> bool:
        return (page_number - 1) % self.total == self.index

    def __str__(self) -> str:
        return f"{self.index}/{self.total}"


@dataclass(frozen=True)
class RawCandidate:
    href: str
    visible_text: str = ""


@dataclass(frozen=True)
class RenderedPage:
    url: str
    status: int
    html: str
    screenshot: Optional[bytes] = None


@dataclass(frozen=True)
class PageFetchResult:
    source_id: str
    page_number: int
    http_status: Optional[int]
    candidate_items: Tuple[RawCandidate, ...] = ()
    render_error: Optional[str] = None
    attempts: int = 1
    challenge: bool = False

    @property
    def failed(self) -> bool:
        return self.render_error is not None


@dataclass(frozen=True)
class Record:
    name: str
    city: str
    source: str
    dir_url: str
    fetched_at: _dt.datetime

    def to_row(self) -> Dict[str, Any]:
        """Serialize with the sink's field names and an ISO-8601 UTC timestamp."""
        ts = self.fetched_at.astimezone(_dt.timezone.utc)
        return {
            "name": self.name,
            "city": self.city,
            "source": self.source,
            "dirUrl": self.dir_url,
            "fetchedAt": ts.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        }


@dataclass(frozen=True)
class DeliveryBatch:
    source_id: str
    first_page: int
    last_page: int
    records: Tuple[Record, ...] = ()

    @property
    def lineage(self) -> str:
        if self.first_page == self.last_page:
            return f"{self.source_id}:p{self.first_page}"
        return f"{self.source_id}:p{self.first_page}-{self.last_page}"

    def rows(self) -> List[Dict[str, Any]]:
        return [r.to_row() for r in self.records]

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    status_code: Optional[int] = None
    reason: Optional[str] = None


@dataclass
class RunState:
    """Mutable per-crawl state. Only the owning controller writes to it."""

    seen_urls: Set[str] = field(default_factory=set)
    consecutive_low_pages: int = 0
    total_delivered: int = 0
    current_page: int = 0
    pages_visited: int = 0
    batches_lost: int = 0
    last_fetched_at: Optional[_dt.datetime] = None

    def stamp(self) -> _dt.datetime:
        """Return the current UTC instant, never earlier than the previous stamp."""
        now = _dt.datetime.now(_dt.timezone.utc)
        if self.last_fetched_at is not None and now < self.last_fetched_at:
            now = self.last_fetched_at
        self.last_fetched_at = now
        return now


@dataclass(frozen=True)
class RunSummary:
    source_id: str
    shard: ShardSpec
    pages_visited: int
    total_delivered: int
    stopped_reason: str
    batches_lost: int = 0
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source_id,
            "shard": str(self.shard),
            "pagesVisited": self.pages_visited,
            "totalDelivered": self.total_delivered,
            "stoppedReason": self.stopped_reason,
            "batchesLost": self.batches_lost,
            "error": self.error,
        }
