"""
Tests for the backoff schedule and attempt limit.
"""
import unittest

from biolink.core.reconnect import ReconnectionPolicy
from fakes import FakeLoop

class ReconnectionPolicyTests(unittest.TestCase):

    def setUp(self):
        self.loop = FakeLoop()
        self.policy = ReconnectionPolicy(self.loop, max_attempts=5, base_delay_ms=1000)
        self.fired = 0

    def retry(self):
        self.fired += 1

    def test_delays_double_until_attempts_run_out(self):
        delays = []
        for _ in range(7):
            delays.append(self.policy.schedule(self.retry))
            self.loop.advance(60)

        self.assertEqual(delays, [1000, 2000, 4000, 8000, 16000, None, None])
        self.assertEqual(self.fired, 5)
        self.assertTrue(self.policy.exhausted)

    def test_compute_delay(self):
        self.assertEqual([self.policy.compute_delay(i) for i in range(5)],
                         [1000, 2000, 4000, 8000, 16000])

    def test_delay_ceiling(self):
        policy = ReconnectionPolicy(self.loop, max_attempts=10, base_delay_ms=1000,
                                    max_delay_ms=5000)
        self.assertEqual([policy.compute_delay(i) for i in range(5)],
                         [1000, 2000, 4000, 5000, 5000])

    def test_timer_fires_after_delay(self):
        self.policy.schedule(self.retry)

        self.loop.advance(0.5)
        self.assertEqual(self.fired, 0)
        self.assertTrue(self.policy.pending)

        self.loop.advance(0.5)
        self.assertEqual(self.fired, 1)
        self.assertFalse(self.policy.pending)

    def test_only_one_pending_timer(self):
        self.assertEqual(self.policy.schedule(self.retry), 1000)
        self.assertIsNone(self.policy.schedule(self.retry))

        self.assertEqual(self.policy.attempts, 1)
        self.assertEqual(len(self.loop.pending()), 1)

    def test_cancel_prevents_callback(self):
        self.policy.schedule(self.retry)
        self.policy.cancel()
        self.loop.advance(10)

        self.assertEqual(self.fired, 0)
        self.assertEqual(self.policy.attempts, 1)

    def test_reset_restarts_attempt_count(self):
        for _ in range(5):
            self.policy.schedule(self.retry)
            self.loop.advance(60)
        self.policy.reset()

        self.assertEqual(self.policy.attempts, 0)
        self.assertEqual(self.policy.schedule(self.retry), 1000)

    def test_zero_attempts_never_schedules(self):
        policy = ReconnectionPolicy(self.loop, max_attempts=0)
        self.assertIsNone(policy.schedule(self.retry))

if __name__ == '__main__':
    unittest.main()
