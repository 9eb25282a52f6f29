"""
Tests for replicator.shutdown.

Tests:
  - ShutdownSignal is one-shot
  - ShutdownCoordinator.wait returns on signal (stopping the loop) or on loop death
  - ShutdownSignal.set never blocks, even when re-entered from a handler
  - SIGINT/SIGTERM handlers are installed for the block and restored afterwards
"""
import os
import signal
import sys
import tempfile
import threading
import time
import unittest
import unittest.mock
from pathlib import Path

from replicator.coordinator import DebounceCoordinator
from replicator.shutdown import POLL_INTERVAL, ShutdownCoordinator, ShutdownSignal
from replicator.watcher import ChangeEvent, ChangeKind
from helpers import make_target


class TestShutdownSignal(unittest.TestCase):

    def test_one_shot(self):
        """Only the first set() changes anything."""
        sig = ShutdownSignal()
        self.assertFalse(sig.is_set())
        self.assertTrue(sig.set("SIGINT"))
        self.assertFalse(sig.set("SIGTERM"))
        self.assertTrue(sig.is_set())
        self.assertEqual(sig.reason, "SIGINT")

    def test_wait(self):
        sig = ShutdownSignal()
        self.assertFalse(sig.wait(0.01))
        threading.Timer(0.05, sig.set).start()
        self.assertTrue(sig.wait(5))

    def test_set_interrupted_mid_call_does_not_block(self):
        """A handler firing while set() holds the lock returns at once."""
        sig = ShutdownSignal()
        sig._lock.acquire()
        try:
            started = time.monotonic()
            self.assertFalse(sig.set("SIGINT"))
            self.assertLess(time.monotonic() - started, 1.0)
        finally:
            sig._lock.release()
        self.assertTrue(sig.set("SIGTERM"))
        self.assertEqual(sig.reason, "SIGTERM")

    @unittest.skipIf(sys.platform == "win32", "os.kill SIGINT is not a signal on Windows")
    def test_nested_sigint_inside_set(self):
        """A second Ctrl-C delivered during the first set() does not hang."""
        sig = ShutdownSignal()
        original = sig._event.set

        def set_and_interrupt():
            os.kill(os.getpid(), signal.SIGINT)
            original()

        with sig.handlers():
            with unittest.mock.patch.object(sig._event, "set", set_and_interrupt):
                self.assertTrue(sig.set("SIGTERM"))
        self.assertEqual(sig.reason, "SIGTERM")


class TestShutdownCoordinator(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.target = make_target(Path(self.tmpdir.name))
        self.transfers = []
        self.coordinator = DebounceCoordinator(self.target, self.transfers.append)
        self.signal = ShutdownSignal()
        self.waiter = ShutdownCoordinator(self.signal, self.coordinator)

    def tearDown(self):
        self.coordinator.stop()
        self.tmpdir.cleanup()

    def test_signal_while_idle_stops_coordinator(self):
        """Shutdown while idle stops the loop within a poll interval or so."""
        self.coordinator.start()
        timer = threading.Timer(0.05, self.signal.set)
        timer.start()
        started = time.monotonic()
        self.assertTrue(self.waiter.wait())
        self.assertLess(time.monotonic() - started, 0.05 + 1.0)
        self.assertFalse(self.coordinator.is_running)
        self.assertIsNone(self.coordinator.error)

    def test_returns_when_coordinator_dies(self):
        """A fatal error in the loop releases the main thread without a signal."""
        self.coordinator.start()
        self.coordinator.post_event(
            ChangeEvent(self.target.source_path, ChangeKind.DELETED)
        )
        self.assertFalse(self.waiter.wait())
        self.assertFalse(self.signal.is_set())
        self.assertIsNotNone(self.coordinator.error)

    def test_handler_is_one_shot(self):
        """A second interrupt is ignored."""
        self.signal._handle(signal.SIGINT, None)
        self.signal._handle(signal.SIGTERM, None)
        self.assertEqual(self.signal.reason, "SIGINT")

    def test_handlers_installed_and_restored(self):
        before = signal.getsignal(signal.SIGINT)
        with self.signal.handlers():
            self.assertEqual(signal.getsignal(signal.SIGINT), self.signal._handle)
            self.assertEqual(signal.getsignal(signal.SIGTERM), self.signal._handle)
        self.assertEqual(signal.getsignal(signal.SIGINT), before)

    def test_handlers_noop_off_main_thread(self):
        result = []

        def body():
            with self.signal.handlers():
                result.append(signal.getsignal(signal.SIGINT))

        before = signal.getsignal(signal.SIGINT)
        worker = threading.Thread(target=body)
        worker.start()
        worker.join()
        self.assertEqual(result, [before])

    @unittest.skipIf(sys.platform == "win32", "os.kill SIGINT is not a signal on Windows")
    def test_real_sigint(self):
        """Ctrl-C sets the signal instead of raising KeyboardInterrupt."""
        with self.signal.handlers():
            os.kill(os.getpid(), signal.SIGINT)
            self.assertTrue(self.signal.wait(5))
        self.assertEqual(self.signal.reason, "SIGINT")

    def test_poll_interval(self):
        self.assertEqual(POLL_INTERVAL, 0.02)


if __name__ == "__main__":
    unittest.main()
