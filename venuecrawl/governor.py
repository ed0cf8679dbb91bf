from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict

from .models import ROLE_DETAIL, ROLE_LISTING

logger = logging.getLogger(__name__)


class GovernorStopped(RuntimeError):
    """Raised through a future when work is scheduled after shutdown."""


def wait_for_result(fut: Future, timeout: float) -> Any:
    """Return the result of a governed task, allowing ``timeout`` seconds of run time.

    The clock starts when a worker picks the task up, so time spent queued
    behind other tasks of the same role is not charged to it. Raises
    ``concurrent.futures.TimeoutError`` when the task overruns."""
    started = getattr(fut, "started", None)
    if started is not None:
        while not started.wait(0.5):
            if fut.done():
                break
    return fut.result(timeout=timeout)


class RoleGovernor:
    """Bounded FIFO executor for a single role.

    At most ``limit`` tasks run at once; the rest wait in submission order.
    An optional ``qps`` spaces out task starts so a burst of detail fetches
    does not hammer the target site. A task's exception only ever reaches
    its own future."""

    def __init__(self, role: str, limit: int, qps: float = 0.0) -> None:
        self.role = role
        self._limit = max(1, int(limit))
        self._executor = ThreadPoolExecutor(max_workers=self._limit, thread_name_prefix=f"gov-{role}")

        self._lock = threading.Lock()
        self._cv = threading.Condition(self._lock)
        self._active = 0
        self._peak = 0
        self._running = True

        self._interval = 1.0 / qps if qps > 0 else 0.0
        self._start_lock = threading.Lock()
        self._next_allowed = 0.0

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        with self._cv:
            running = self._running
        if running:
            started = threading.Event()
            try:
                fut = self._executor.submit(self._wrap_task, started, fn, args, kwargs)
            except RuntimeError:
                pass
            else:
                fut.started = started
                return fut
        fut: Future = Future()
        fut.set_exception(GovernorStopped(f"{self.role} governor is shut down"))
        return fut

    def _wrap_task(self, started: threading.Event, fn: Callable[..., Any], args: tuple, kwargs: dict) -> Any:
        self._pace()
        started.set()
        with self._cv:
            self._active += 1
            self._peak = max(self._peak, self._active)
        try:
            return fn(*args, **kwargs)
        finally:
            with self._cv:
                self._active = max(0, self._active - 1)
                self._cv.notify_all()

    def _pace(self) -> None:
        if self._interval <= 0:
            return
        with self._start_lock:
            now = time.monotonic()
            if now < self._next_allowed:
                time.sleep(self._next_allowed - now)
            self._next_allowed = max(self._next_allowed + self._interval, time.monotonic())

    def shutdown(self, wait: bool = True) -> None:
        with self._cv:
            self._running = False
            self._cv.notify_all()
        self._executor.shutdown(wait=wait, cancel_futures=False)
        logger.debug("%s governor shut down (limit=%d peak=%d)", self.role, self._limit, self._peak)

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        with self._cv:
            return self._active

    @property
    def peak(self) -> int:
        """Highest number of simultaneously running tasks seen so far."""
        with self._cv:
            return self._peak


class ConcurrencyGovernor:
    """Independent pools for listing renders and detail fetches.

    Keeping the roles apart means detail fan-out never starves listing
    progression and vice versa."""

    def __init__(
        self,
        listing_limit: int = 2,
        detail_limit: int = 4,
        listing_qps: float = 0.0,
        detail_qps: float = 0.0,
    ) -> None:
        self._roles: Dict[str, RoleGovernor] = {
            ROLE_LISTING: RoleGovernor(ROLE_LISTING, listing_limit, listing_qps),
            ROLE_DETAIL: RoleGovernor(ROLE_DETAIL, detail_limit, detail_qps),
        }

    def schedule(self, role: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Queue ``fn`` under ``role``; the returned future carries its result or exception."""
        try:
            gov = self._roles[role]
        except KeyError:
            raise ValueError(f"Unknown role: {role}") from None
        return gov.submit(fn, *args, **kwargs)

    def role(self, role: str) -> RoleGovernor:
        return self._roles[role]

    def shutdown(self, wait: bool = True) -> None:
        for gov in self._roles.values():
            gov.shutdown(wait=wait)

    def __enter__(self) -> "ConcurrencyGovernor":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown(wait=True)
