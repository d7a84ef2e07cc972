"""
Tests for staleness detection.
"""
import unittest

from biolink.core.heartbeat import HeartbeatMonitor
from fakes import FakeLoop

class HeartbeatMonitorTests(unittest.TestCase):

    def setUp(self):
        self.loop = FakeLoop()
        self.stale = []
        self.monitor = HeartbeatMonitor(self.loop, interval_ms=2000, stale_threshold_ms=5000,
                                        on_stale=self.stale.append)

    def test_silence_is_reported(self):
        self.monitor.start()

        self.loop.advance(4)
        self.assertEqual(self.stale, [])

        self.loop.advance(2)
        self.assertEqual(self.stale, [6000])
        self.assertTrue(self.monitor.running)

    def test_reported_on_every_stale_tick(self):
        self.monitor.start()
        self.loop.advance(10)
        self.assertEqual(self.stale, [6000, 8000, 10000])

    def test_traffic_keeps_link_fresh(self):
        self.monitor.start()
        for _ in range(10):
            self.loop.advance(1)
            self.monitor.touch()
        self.assertEqual(self.stale, [])

    def test_stop_cancels_ticks(self):
        self.monitor.start()
        self.monitor.stop()
        self.loop.advance(20)

        self.assertEqual(self.stale, [])
        self.assertFalse(self.monitor.running)
        self.assertEqual(self.loop.pending(), [])

    def test_stop_from_stale_callback(self):
        def on_stale(elapsed):
            self.stale.append(elapsed)
            self.monitor.stop()

        self.monitor.on_stale = on_stale
        self.monitor.start()
        self.loop.advance(20)

        self.assertEqual(self.stale, [6000])

    def test_restart_resets_clock(self):
        self.monitor.start()
        self.loop.advance(4)
        self.monitor.start()
        self.loop.advance(4)

        self.assertEqual(self.stale, [])
        self.assertEqual(len(self.loop.pending()), 1)

if __name__ == '__main__':
    unittest.main()
