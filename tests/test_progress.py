#!/usr/bin/env python3
"""
Tests for the progress display, interrupt handling and CLI helpers.
"""

import io
import logging
import os
import signal
import sys
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

from rich.console import Console

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bak import CancellationMonitor, ProgressReporter, ProgressState, TransferRequest
from bak.bak import (
    DEFAULT_INTERVAL,
    LOW_ANIMATION_INTERVAL,
    parse_arguments,
    resolve_paths,
    setup_logging,
)


def _console() -> Console:
    return Console(file=io.StringIO(), width=120)


class TestProgressState(unittest.TestCase):
    """Test cases for ProgressState class."""

    def test_initialization(self) -> None:
        state = ProgressState(total_files=4, total_bytes=1000)

        self.assertEqual(state.total_files, 4)
        self.assertEqual(state.total_bytes, 1000)
        self.assertEqual(state.completed_files, 0)

    def test_increment(self) -> None:
        state = ProgressState(total_files=4, total_bytes=0)

        self.assertEqual(state.increment(), 1)
        self.assertEqual(state.increment(), 2)
        self.assertEqual(state.completed_files, 2)

    def test_concurrent_reads_see_monotonic_counts(self) -> None:
        """A reader thread never sees the counter go backwards."""
        state = ProgressState(total_files=2000, total_bytes=0)
        seen = []

        def reader():
            while state.completed_files < state.total_files:
                seen.append(state.completed_files)

        thread = threading.Thread(target=reader)
        thread.start()
        for _ in range(state.total_files):
            state.increment()
        thread.join(timeout=5)

        self.assertFalse(thread.is_alive())
        self.assertEqual(seen, sorted(seen))
        self.assertTrue(all(0 <= n <= 2000 for n in seen))


class TestProgressReporter(unittest.TestCase):
    """Test cases for ProgressReporter class."""

    def test_render_frame_contents(self) -> None:
        state = ProgressState(total_files=4, total_bytes=0)
        reporter = ProgressReporter(state, _console())

        line = reporter.render_frame(completed=2, elapsed=1.5)

        self.assertIn(" 50.0%", line)
        self.assertIn("2/4 files", line)
        self.assertIn("1.5s", line)

    def test_render_frame_zero_total(self) -> None:
        reporter = ProgressReporter(ProgressState(0, 0), _console())

        line = reporter.render_frame(completed=0, elapsed=0.0)

        self.assertIn("  0.0%", line)
        self.assertIn("0/0 files", line)

    def test_animation_moves_with_time(self) -> None:
        reporter = ProgressReporter(ProgressState(10, 0), _console(), interval=0.1)

        first = reporter.render_frame(completed=0, elapsed=0.0)
        later = reporter.render_frame(completed=0, elapsed=0.3)

        self.assertNotEqual(first.index("█"), later.index("█"))

    def test_self_terminates_when_all_files_done(self) -> None:
        state = ProgressState(total_files=1, total_bytes=0)
        state.increment()
        console = Console(file=io.StringIO(), width=120, force_terminal=True)
        reporter = ProgressReporter(state, console, interval=0.01)

        reporter.start()
        reporter._thread.join(timeout=2)

        self.assertFalse(reporter._thread.is_alive())
        self.assertIn("100.0%", console.file.getvalue())

    def test_redirected_output_gets_summary_only(self) -> None:
        state = ProgressState(total_files=2, total_bytes=0)
        console = _console()
        reporter = ProgressReporter(state, console, interval=0.001)

        reporter.start()
        state.increment()
        state.increment()
        reporter.finish()

        output = console.file.getvalue()
        self.assertNotIn("files", output)
        self.assertNotIn("%", output)
        self.assertTrue(output.startswith("✓ Completed: 2 file(s) copied in"))

    def test_finish_summary(self) -> None:
        state = ProgressState(total_files=3, total_bytes=0)
        console = _console()
        reporter = ProgressReporter(state, console, interval=0.01)

        reporter.start()
        for _ in range(3):
            state.increment()
        reporter.finish()

        self.assertFalse(reporter._thread.is_alive())
        self.assertIn("✓ Completed: 3 file(s) copied in", console.file.getvalue())

    def test_interrupt_summary(self) -> None:
        state = ProgressState(total_files=3, total_bytes=0)
        console = _console()
        reporter = ProgressReporter(state, console, interval=0.01)

        reporter.start()
        state.increment()
        reporter.interrupt()

        output = console.file.getvalue()
        self.assertFalse(reporter._thread.is_alive())
        self.assertIn("✗ Interrupted: 1/3 file(s) copied in", output)
        self.assertIn("partially copied", output)

    def test_summary_follows_last_animation_frame(self) -> None:
        """Nothing is drawn after the summary line."""
        state = ProgressState(total_files=5, total_bytes=0)
        console = _console()
        reporter = ProgressReporter(state, console, interval=0.001)

        reporter.start()
        reporter.finish()

        output = console.file.getvalue()
        self.assertTrue(output.rstrip().endswith("s"))
        self.assertNotIn("files", output.split("Completed")[-1])

    def test_println_clears_animation_line(self) -> None:
        state = ProgressState(total_files=2, total_bytes=0)
        console = _console()
        reporter = ProgressReporter(state, console)
        reporter._write_line(reporter.render_frame(0, 0.0))

        reporter.println("✓ Copied: a.txt")

        output = console.file.getvalue()
        self.assertIn("\r" + " " * len(reporter.render_frame(0, 0.0)) + "\r", output)
        self.assertTrue(output.endswith("✓ Copied: a.txt\n"))

    def test_stop_without_start(self) -> None:
        reporter = ProgressReporter(ProgressState(1, 0), _console())

        reporter.stop()

        self.assertEqual(reporter.elapsed, 0.0)


class TestCancellationMonitor(unittest.TestCase):
    """Test cases for CancellationMonitor class."""

    def test_not_interrupted_initially(self) -> None:
        self.assertFalse(CancellationMonitor().interrupted())

    def test_trigger(self) -> None:
        monitor = CancellationMonitor()

        monitor.trigger()

        self.assertTrue(monitor.interrupted())
        self.assertTrue(monitor.interrupted())

    def test_second_trigger_has_no_effect(self) -> None:
        monitor = CancellationMonitor()

        monitor.trigger()
        monitor.trigger()

        self.assertEqual(monitor._notifications.qsize(), 1)
        self.assertTrue(monitor.interrupted())

    def test_notification_alone_is_observed(self) -> None:
        monitor = CancellationMonitor()
        monitor._notifications.put_nowait(True)

        self.assertTrue(monitor.interrupted())
        self.assertTrue(monitor._event.is_set())

    def test_install_and_uninstall_restore_handler(self) -> None:
        previous = signal.getsignal(signal.SIGINT)
        monitor = CancellationMonitor()

        monitor.install()
        monitor.install()
        self.assertEqual(signal.getsignal(signal.SIGINT), monitor._handle_interrupt)

        monitor.uninstall()
        self.assertEqual(signal.getsignal(signal.SIGINT), previous)

    @unittest.skipIf(sys.platform == "win32", "POSIX signal delivery")
    def test_sigint_sets_flag(self) -> None:
        monitor = CancellationMonitor()
        monitor.install()
        try:
            os.kill(os.getpid(), signal.SIGINT)
            os.kill(os.getpid(), signal.SIGINT)
            self.assertTrue(monitor.interrupted())
        finally:
            monitor.uninstall()

    def test_install_off_main_thread_is_ignored(self) -> None:
        monitor = CancellationMonitor()
        thread = threading.Thread(target=monitor.install)
        thread.start()
        thread.join()

        self.assertFalse(monitor._installed)


class TestArgumentParsing(unittest.TestCase):
    """Test cases for command-line argument parsing."""

    def test_positional_paths(self) -> None:
        args = parse_arguments(["src", "dst"])

        self.assertEqual(args.source_positional, "src")
        self.assertEqual(args.destination_positional, "dst")
        self.assertIsNone(args.source)
        self.assertFalse(args.verbose)
        self.assertFalse(args.fast_mode)
        self.assertFalse(args.low_animation)

    def test_flags(self) -> None:
        args = parse_arguments(["-v", "-f", "-l", "--debug", "src", "dst"])

        self.assertTrue(args.verbose)
        self.assertTrue(args.fast_mode)
        self.assertTrue(args.low_animation)
        self.assertTrue(args.debug)

    def test_named_flags_win_over_positional(self) -> None:
        args = parse_arguments(["-s", "named_src", "-d", "named_dst", "pos_src", "pos_dst"])

        self.assertEqual(resolve_paths(args, _console()), (Path("named_src"), Path("named_dst")))

    def test_missing_destination_is_prompted(self) -> None:
        args = parse_arguments(["src"])

        with patch("bak.bak.Prompt.ask", return_value=" /backup ") as mock_ask:
            source, destination = resolve_paths(args, _console())

        self.assertEqual(source, Path("src"))
        self.assertEqual(destination, Path("/backup"))
        mock_ask.assert_called_once()

    def test_empty_prompt_answer(self) -> None:
        args = parse_arguments([])

        with patch("bak.bak.Prompt.ask", return_value=""):
            with self.assertRaises(ValueError):
                resolve_paths(args, _console())

    def test_blank_source_flag_rejected(self) -> None:
        args = parse_arguments(["-s", "", "dst"])

        with patch("bak.bak.Prompt.ask") as mock_ask:
            with self.assertRaises(ValueError):
                resolve_paths(args, _console())
        mock_ask.assert_not_called()

    def test_blank_positional_destination_rejected(self) -> None:
        args = parse_arguments(["src", "   "])

        with self.assertRaises(ValueError):
            resolve_paths(args, _console())

    def test_unknown_flag_exits(self) -> None:
        with patch("sys.stderr", io.StringIO()):
            with self.assertRaises(SystemExit) as ctx:
                parse_arguments(["--no-such-flag"])

        self.assertEqual(ctx.exception.code, 2)


class TestTransferRequest(unittest.TestCase):
    """Test cases for TransferRequest validation."""

    def test_from_args(self) -> None:
        args = parse_arguments(["-v", "-l", "a", "b"])

        request = TransferRequest.from_args(args, Path("a"), Path("b"))

        self.assertEqual(request.source, Path("a"))
        self.assertTrue(request.verbose)
        self.assertFalse(request.fast_mode)
        self.assertEqual(request.interval, LOW_ANIMATION_INTERVAL)

    def test_default_interval(self) -> None:
        self.assertEqual(TransferRequest(Path("a"), Path("b")).interval, DEFAULT_INTERVAL)

    def test_immutable(self) -> None:
        request = TransferRequest(Path("a"), Path("b"))

        with self.assertRaises(AttributeError):
            request.verbose = True


class TestLoggingSetup(unittest.TestCase):
    """Test cases for logging setup."""

    def test_setup_logging_default_level(self) -> None:
        setup_logging(debug=False)

        self.assertEqual(logging.getLogger().level, logging.WARNING)

    def test_setup_logging_debug_level(self) -> None:
        setup_logging(debug=True)

        self.assertEqual(logging.getLogger().level, logging.DEBUG)


if __name__ == "__main__":
    unittest.main(verbosity=2)
