"""Tests for the ConcurrencyGovernor."""

import threading
import time
import unittest
from concurrent.futures import TimeoutError as FutureTimeout

from venuecrawl.governor import ConcurrencyGovernor, GovernorStopped, RoleGovernor, wait_for_result
from venuecrawl.models import ROLE_DETAIL, ROLE_LISTING


class TestRoleGovernor(unittest.TestCase):
    """Verify bounded concurrency, FIFO order and failure isolation."""

    def test_never_exceeds_limit(self):
        gov = RoleGovernor("detail", limit=2)
        try:
            futures = [gov.submit(time.sleep, 0.05) for _ in range(8)]
            for f in futures:
                f.result(timeout=5)
            self.assertLessEqual(gov.peak, 2)
            self.assertEqual(gov.active, 0)
        finally:
            gov.shutdown()

    def test_fifo_order_with_single_slot(self):
        gov = RoleGovernor("listing", limit=1)
        order = []
        try:
            futures = [gov.submit(order.append, i) for i in range(10)]
            for f in futures:
                f.result(timeout=5)
            self.assertEqual(order, list(range(10)))
        finally:
            gov.shutdown()

    def test_failure_does_not_affect_siblings(self):
        gov = RoleGovernor("detail", limit=2)

        def boom():
            raise ValueError("bad page")

        try:
            bad = gov.submit(boom)
            good = [gov.submit(lambda i=i: i * 10) for i in range(3)]
            with self.assertRaises(ValueError):
                bad.result(timeout=5)
            self.assertEqual([f.result(timeout=5) for f in good], [0, 10, 20])
        finally:
            gov.shutdown()

    def test_submit_after_shutdown_fails_future(self):
        gov = RoleGovernor("listing", limit=1)
        gov.shutdown()
        fut = gov.submit(lambda: 1)
        with self.assertRaises(GovernorStopped):
            fut.result(timeout=1)

    def test_qps_spaces_task_starts(self):
        gov = RoleGovernor("detail", limit=4, qps=20.0)
        try:
            start = time.monotonic()
            futures = [gov.submit(lambda: None) for _ in range(5)]
            for f in futures:
                f.result(timeout=5)
            # 5 starts at 20/s need at least 4 intervals of 0.05s
            self.assertGreaterEqual(time.monotonic() - start, 0.15)
        finally:
            gov.shutdown()


class TestWaitForResult(unittest.TestCase):
    """Verify the wait budget starts when a task runs, not when it is queued."""

    def test_queue_time_is_not_charged(self):
        gov = RoleGovernor("listing", limit=1)
        try:
            ahead = gov.submit(time.sleep, 0.4)
            queued = gov.submit(lambda: "page-2")
            self.assertEqual(wait_for_result(queued, timeout=0.2), "page-2")
            self.assertTrue(ahead.done())
        finally:
            gov.shutdown()

    def test_overrunning_task_times_out(self):
        gov = RoleGovernor("listing", limit=1)
        release = threading.Event()
        try:
            fut = gov.submit(release.wait, 5)
            with self.assertRaises(FutureTimeout):
                wait_for_result(fut, timeout=0.1)
        finally:
            release.set()
            gov.shutdown()

    def test_stopped_future_returns_at_once(self):
        gov = RoleGovernor("detail", limit=1)
        gov.shutdown()
        with self.assertRaises(GovernorStopped):
            wait_for_result(gov.submit(lambda: 1), timeout=1)


class TestConcurrencyGovernor(unittest.TestCase):
    """Verify the two roles are independent."""

    def test_detail_saturation_does_not_block_listing(self):
        release = threading.Event()
        with ConcurrencyGovernor(listing_limit=1, detail_limit=1) as gov:
            blocked = gov.schedule(ROLE_DETAIL, release.wait, 5)
            listing = gov.schedule(ROLE_LISTING, lambda: "page-1")
            self.assertEqual(listing.result(timeout=2), "page-1")
            self.assertFalse(blocked.done())
            release.set()
            self.assertTrue(blocked.result(timeout=2))

    def test_unknown_role_raises(self):
        with ConcurrencyGovernor() as gov:
            with self.assertRaises(ValueError):
                gov.schedule("screenshots", lambda: None)

    def test_limits_per_role(self):
        with ConcurrencyGovernor(listing_limit=2, detail_limit=5) as gov:
            self.assertEqual(gov.role(ROLE_LISTING).limit, 2)
            self.assertEqual(gov.role(ROLE_DETAIL).limit, 5)


if __name__ == "__main__":
    unittest.main()
