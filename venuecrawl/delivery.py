from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional

import requests

from .backoff import BackoffStrategy, RetryPolicy
from .errors import DeliveryFailure
from .models import DeliveryBatch, DeliveryResult

logger = logging.getLogger(__name__)


class DeliveryClient(ABC):
    """Abstract base class for all sinks.

    ``deliver`` reports the outcome instead of raising; retry policy lives
    in BatchDeliverer, not here."""

    @abstractmethod
    def deliver(self, batch: DeliveryBatch) -> DeliveryResult:
        """Send one batch to the sink."""

    def close(self) -> None:
        """Flush pending writes and release resources."""


class WebhookDeliveryClient(DeliveryClient):
    """POSTs ``{token, rows}`` as JSON; any 2xx response is success."""

    def __init__(self, endpoint: str, token: str = "", timeout: float = 30.0, session: Optional[requests.Session] = None) -> None:
        self._endpoint = endpoint
        self._token = token
        self._timeout = timeout
        self._session = session or requests.Session()

    def deliver(self, batch: DeliveryBatch) -> DeliveryResult:
        payload = {"token": self._token, "rows": batch.rows()}
        try:
            resp = self._session.post(
                self._endpoint,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            return DeliveryResult(success=False, reason=type(exc).__name__)

        text = resp.text or ""
        logger.info(
            "[post] %s response %s: %s%s",
            batch.lineage,
            resp.status_code,
            text[:200],
            "…" if len(text) > 200 else "",
        )
        if 200 <= int(resp.status_code) < 300:
            return DeliveryResult(success=True, status_code=resp.status_code)
        return DeliveryResult(success=False, status_code=resp.status_code, reason=f"HTTP_{resp.status_code}")

    def close(self) -> None:
        self._session.close()


class JsonlDeliveryClient(DeliveryClient):
    """Dry-run sink: appends each batch as one JSON line.

    Writes happen on the caller's thread under a lock, so a batch is only
    reported delivered once its line is flushed; a failed write comes back
    as an unsuccessful result and is retried and counted like any other."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = threading.Lock()

    def deliver(self, batch: DeliveryBatch) -> DeliveryResult:
        line = {
            "timestamp": time.time(),
            "lineage": batch.lineage,
            "source": batch.source_id,
            "rows": batch.rows(),
        }
        try:
            with self._lock, open(self._path, "a", encoding="utf-8") as f:
                f.write(json.dumps(line, ensure_ascii=False) + "\n")
                f.flush()
        except OSError as exc:
            return DeliveryResult(success=False, reason=f"{type(exc).__name__}: {exc}")
        return DeliveryResult(success=True)


class BatchDeliverer:
    """Applies the delivery policy: one immediate retry, then log the loss.

    A lost batch never aborts the crawl; catalogs are re-crawled on a
    schedule, so the next run picks the records up again."""

    def __init__(self, client: DeliveryClient, retry: Optional[RetryPolicy] = None) -> None:
        self._client = client
        self._retry = retry or RetryPolicy(
            attempts=2,
            backoff=BackoffStrategy(base_seconds=0.0),
            retry_on=(DeliveryFailure,),
        )

    def _attempt(self, batch: DeliveryBatch) -> DeliveryResult:
        try:
            result = self._client.deliver(batch)
        except Exception as exc:  # noqa: BLE001
            raise DeliveryFailure(f"{type(exc).__name__}: {exc}") from exc
        if not result.success:
            logger.warning("delivery of %s failed: %s", batch.lineage, result.reason)
            raise DeliveryFailure(result.reason or "rejected")
        return result

    def deliver(self, batch: DeliveryBatch) -> int:
        """Return the number of records acknowledged by the sink (0 if lost)."""
        if not batch.records:
            return 0
        try:
            self._retry.call(self._attempt, batch)
        except DeliveryFailure as exc:
            logger.error("dropped batch %s (%d records) after %d attempts: %s", batch.lineage, len(batch), self._retry.attempts, exc)
            return 0
        return len(batch)
