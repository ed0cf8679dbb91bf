from __future__ import annotations

import json
import logging
import time
from collections import deque
from threading import Lock
from typing import Any, Deque, Dict, List, Optional

from .models import PageFetchResult, RunSummary, ShardSpec

logger = logging.getLogger("venuecrawl.progress")


class ProgressReporter:
    """Thread-safe recorder of page decisions and run summaries.

    Every event is emitted as one JSON object per log line and kept in a
    bounded in-memory buffer so callers (and tests) can inspect the run."""

    def __init__(self, maxlen: int = 10000) -> None:
        self._lock = Lock()
        self._events: Deque[Dict[str, Any]] = deque(maxlen=maxlen)

    def _emit(self, event: Dict[str, Any]) -> None:
        event = {"timestamp": time.time(), **event}
        with self._lock:
            self._events.append(event)
        logger.info(json.dumps(event, ensure_ascii=False))

    def page(
        self,
        result: PageFetchResult,
        shard: ShardSpec,
        new_items: int,
        delivered: int,
        low_streak: int,
        decision: str,
    ) -> None:
        """Record one page visit and what the controller decided after it."""
        self._emit(
            {
                "event": "page",
                "source": result.source_id,
                "shard": str(shard),
                "page": result.page_number,
                "status": result.http_status,
                "attempts": result.attempts,
                "rawItems": len(result.candidate_items),
                "newItems": new_items,
                "delivered": delivered,
                "lowStreak": low_streak,
                "error": result.render_error,
                "decision": decision,
            }
        )

    def summary(self, summary: RunSummary) -> None:
        self._emit({"event": "summary", **summary.as_dict()})

    def events(self, kind: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(e) for e in self._events if kind is None or e["event"] == kind]

    def pages_visited(self, source_id: str) -> List[int]:
        return [e["page"] for e in self.events("page") if e["source"] == source_id]
