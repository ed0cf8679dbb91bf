from __future__ import annotations

from typing import Iterable, List

from .models import DeliveryBatch, RawCandidate, Record, RunState


def fold_new(state: RunState, candidates: Iterable[RawCandidate]) -> List[RawCandidate]:
    """Return candidates not yet in ``state.seen_urls`` and mark them seen.

    Feeding the same candidates twice returns nothing the second time, so
    the set size is unchanged."""
    fresh: List[RawCandidate] = []
    for c in candidates:
        if not c.href or c.href in state.seen_urls:
            continue
        state.seen_urls.add(c.href)
        fresh.append(c)
    return fresh


def assemble_batch(source_id: str, first_page: int, last_page: int, records: Iterable[Record]) -> DeliveryBatch:
    """Build an immutable batch keeping the first record per non-empty dirUrl."""
    kept: List[Record] = []
    urls = set()
    for r in records:
        if not r.dir_url or r.dir_url in urls:
            continue
        if r.source != source_id:
            raise ValueError(f"record source {r.source!r} does not match batch source {source_id!r}")
        urls.add(r.dir_url)
        kept.append(r)
    return DeliveryBatch(source_id=source_id, first_page=first_page, last_page=last_page, records=tuple(kept))
