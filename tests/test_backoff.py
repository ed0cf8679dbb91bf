"""Tests for BackoffStrategy and RetryPolicy."""

import unittest

from venuecrawl.backoff import BackoffStrategy, RetryPolicy
from venuecrawl.errors import BotChallengeDetected, DeliveryFailure, RenderFailure


class TestBackoffStrategy(unittest.TestCase):
    """Verify exponential backoff produces correct sleep durations."""

    def test_first_attempt_returns_base(self):
        """First retry should sleep approximately the base duration."""
        backoff = BackoffStrategy(base_seconds=1.0, max_seconds=30.0)
        sleep = backoff.get_sleep(attempt=1)
        # base * 2^0 = 1.0, plus up to 10% jitter
        self.assertGreaterEqual(sleep, 1.0)
        self.assertLessEqual(sleep, 1.1)

    def test_exponential_growth(self):
        backoff = BackoffStrategy(base_seconds=0.5, max_seconds=100.0)
        sleeps = [backoff.get_sleep(attempt=a) for a in (1, 2, 3)]
        self.assertLess(sleeps[0], sleeps[1])
        self.assertLess(sleeps[1], sleeps[2])

    def test_respects_max_seconds(self):
        """Sleep duration should never exceed max_seconds (plus jitter)."""
        backoff = BackoffStrategy(base_seconds=1.0, max_seconds=5.0)
        self.assertLessEqual(backoff.get_sleep(attempt=20), 5.5)

    def test_zero_base_means_immediate(self):
        backoff = BackoffStrategy(base_seconds=0.0)
        self.assertEqual(backoff.get_sleep(attempt=3, error_type="DeliveryFailure"), 0.0)


class TestRetryPolicy(unittest.TestCase):
    """Verify the bounded retry used for renders and deliveries."""

    def setUp(self):
        self.sleeps = []

    def _policy(self, **kwargs):
        kwargs.setdefault("backoff", BackoffStrategy(base_seconds=0.2))
        return RetryPolicy(sleep=self.sleeps.append, **kwargs)

    def test_returns_first_success(self):
        calls = []

        def fn(x):
            calls.append(x)
            return x * 2

        self.assertEqual(self._policy(attempts=2).call(fn, 21), 42)
        self.assertEqual(calls, [21])
        self.assertEqual(self.sleeps, [])

    def test_retries_once_then_succeeds(self):
        outcomes = [RenderFailure("timeout"), "ok"]

        def fn():
            item = outcomes.pop(0)
            if isinstance(item, Exception):
                raise item
            return item

        self.assertEqual(self._policy(attempts=2, retry_on=(RenderFailure,)).call(fn), "ok")
        self.assertEqual(len(self.sleeps), 1)
        self.assertGreaterEqual(self.sleeps[0], 0.2)

    def test_gives_up_after_attempts(self):
        calls = []

        def fn():
            calls.append(1)
            raise DeliveryFailure("HTTP_500")

        with self.assertRaises(DeliveryFailure):
            self._policy(attempts=2, retry_on=(DeliveryFailure,)).call(fn)
        self.assertEqual(len(calls), 2)

    def test_give_up_on_is_not_retried(self):
        """A bot challenge is a RenderFailure but must not be retried."""
        calls = []

        def fn():
            calls.append(1)
            raise BotChallengeDetected("captcha")

        policy = self._policy(attempts=3, retry_on=(RenderFailure,), give_up_on=(BotChallengeDetected,))
        with self.assertRaises(BotChallengeDetected):
            policy.call(fn)
        self.assertEqual(len(calls), 1)

    def test_unlisted_exception_propagates(self):
        def fn():
            raise KeyError("boom")

        with self.assertRaises(KeyError):
            self._policy(attempts=3, retry_on=(RenderFailure,)).call(fn)
        self.assertEqual(self.sleeps, [])

    def test_attempts_must_be_positive(self):
        with self.assertRaises(ValueError):
            RetryPolicy(attempts=0)


if __name__ == "__main__":
    unittest.main()
