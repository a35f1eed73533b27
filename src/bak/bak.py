#!/usr/bin/env python3
"""
bak - File backup (copy) tool with an animated progress display.

Copies a single file or a whole directory tree to a destination, rendering
progress on a background thread while the copy loop runs.

Architecture:
- Enumeration and size aggregation happen up front, before any copying
- Each file is copied through a temporary sibling and renamed into place
  (protected mode) unless fast mode is requested
- Progress rendering runs on its own thread and only reads a lock-guarded
  counter
- Ctrl+C is handled cooperatively: the current file finishes, the rest are
  skipped
"""

import argparse
import asyncio
import contextlib
import logging
import queue
import shutil
import signal
import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import aiofiles
import aiofiles.os
from rich.console import Console
from rich.prompt import Prompt

from . import __version__

# Constants
BUFFER_SIZE = 8 * 1024 * 1024  # 8MB
TEMP_SUFFIX = ".tmp"
DEFAULT_INTERVAL = 0.1
LOW_ANIMATION_INTERVAL = 0.5

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
TRACK_WIDTH = 20

logger = logging.getLogger("bak")


# ============================================================================
# Data Models
# ============================================================================


class RunState(Enum):
    """
    Lifecycle of a backup run.

    Attributes
    ----------
    ENUMERATING : str
        Listing source files
    AGGREGATING : str
        Summing file sizes
    COPYING : str
        Copy loop in progress
    FINISHING : str
        Rendering the final summary
    COMPLETED : str
        Every file was attempted
    INTERRUPTED : str
        Stopped early by the operator
    """

    ENUMERATING = "enumerating"
    AGGREGATING = "aggregating"
    COPYING = "copying"
    FINISHING = "finishing"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class TransferRequest:
    """
    Everything needed to run one backup.

    Attributes
    ----------
    source : Path
        File or directory to copy
    destination : Path
        Where the copy should land
    verbose : bool, default=False
        Print a line for every copied file
    fast_mode : bool, default=False
        Write straight to the destination, skipping the temp file
    low_animation : bool, default=False
        Refresh the progress line less often
    """

    source: Path
    destination: Path
    verbose: bool = False
    fast_mode: bool = False
    low_animation: bool = False

    @classmethod
    def from_args(
        cls, args: argparse.Namespace, source: Path, destination: Path
    ) -> "TransferRequest":
        """Create a request from parsed arguments and resolved paths."""
        return cls(
            source=source,
            destination=destination,
            verbose=args.verbose,
            fast_mode=args.fast_mode,
            low_animation=args.low_animation,
        )

    @property
    def interval(self) -> float:
        """Seconds between two progress renders."""
        return LOW_ANIMATION_INTERVAL if self.low_animation else DEFAULT_INTERVAL


class ProgressState:
    """
    Shared copy counters.

    The orchestrator is the only writer of ``completed_files``; the reporter
    thread only reads it. Both sides go through the same lock.

    Parameters
    ----------
    total_files : int
        Number of files that will be attempted
    total_bytes : int
        Sum of their sizes at aggregation time
    """

    def __init__(self, total_files: int, total_bytes: int) -> None:
        self.total_files = total_files
        self.total_bytes = total_bytes
        self._completed = 0
        self._lock = threading.Lock()

    @property
    def completed_files(self) -> int:
        with self._lock:
            return self._completed

    def increment(self) -> int:
        """Record one more successfully copied file and return the new count."""
        with self._lock:
            self._completed += 1
            return self._completed


# ============================================================================
# Enumeration
# ============================================================================


def collect_files(path: Path) -> list[Path]:
    """
    List every regular file under ``path``.

    Parameters
    ----------
    path : Path
        A file or a directory

    Returns
    -------
    list[Path]
        ``[path]`` for a file; otherwise all files below it, depth-first in
        directory-iteration order. Symlinks and special files are skipped.

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist
    OSError
        If a directory cannot be read
    """
    if path.is_file():
        return [path]
    if not path.exists():
        raise FileNotFoundError(f"Source not found: {path}")

    files = []
    if path.is_dir():
        for entry in path.iterdir():
            if entry.is_symlink():
                continue
            if entry.is_file():
                files.append(entry)
            elif entry.is_dir():
                files.extend(collect_files(entry))
    return files


def total_size(files: list[Path]) -> int:
    """Sum file sizes; unreadable files count as zero."""
    total = 0
    for f in files:
        try:
            total += f.stat().st_size
        except OSError as e:
            logger.debug(f"Could not stat {f}: {e}")
    return total


def resolve_destination(file: Path, source: Path, destination: Path) -> Path:
    """
    Work out where ``file`` should be copied to.

    Parameters
    ----------
    file : Path
        File being copied (as returned by ``collect_files``)
    source : Path
        Source root given by the user
    destination : Path
        Destination given by the user

    Returns
    -------
    Path
        Target file path
    """
    if source.is_dir():
        return destination / file.relative_to(source)
    if destination.is_dir():
        return destination / source.name
    return destination


# ============================================================================
# Copy Engine
# ============================================================================


def temp_path_for(destination: Path) -> Path:
    """Staging path used in protected mode: ``<destination>.tmp``."""
    return destination.with_name(destination.name + TEMP_SUFFIX)


async def _stream(source: Path, target: Path) -> int:
    bytes_written = 0
    async with aiofiles.open(source, "rb") as f_source:
        async with aiofiles.open(target, "wb") as f_target:
            while chunk := await f_source.read(BUFFER_SIZE):
                await f_target.write(chunk)
                bytes_written += len(chunk)
    await asyncio.to_thread(shutil.copymode, source, target)
    return bytes_written


async def copy_file(source: Path, destination: Path, protected: bool = True) -> int:
    """
    Copy one file.

    Parameters
    ----------
    source : Path
        File to read
    destination : Path
        Final target path; its parent is created when missing
    protected : bool, default=True
        Write to ``<destination>.tmp`` and rename it into place, so the
        destination is never observed half-written

    Returns
    -------
    int
        Number of bytes written

    Raises
    ------
    OSError
        On any read, write, mkdir or rename failure. In protected mode the
        temp file is removed before the error propagates.
    """
    await aiofiles.os.makedirs(destination.parent, exist_ok=True)

    if not protected:
        return await _stream(source, destination)

    temp_path = temp_path_for(destination)
    try:
        bytes_written = await _stream(source, temp_path)
        await aiofiles.os.replace(temp_path, destination)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise
    return bytes_written


# ============================================================================
# Cancellation
# ============================================================================


class CancellationMonitor:
    """
    Turns Ctrl+C into a cooperative stop request.

    Only the first interrupt has an effect; it sets a flag and drops one
    token on a notification queue. Either is enough for ``interrupted()``.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._notifications: queue.Queue = queue.Queue(maxsize=1)
        self._installed = False
        self._previous_handler = None

    def install(self) -> None:
        """Register the SIGINT handler (once; ignored off the main thread)."""
        if self._installed:
            return
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, SIGINT handler not installed")
            return
        self._previous_handler = signal.signal(signal.SIGINT, self._handle_interrupt)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        previous = self._previous_handler
        if previous is None:
            previous = signal.default_int_handler
        signal.signal(signal.SIGINT, previous)
        self._installed = False

    def _handle_interrupt(self, signum, frame):
        """
        Handle Ctrl+C gracefully - lets the current file finish.

        Parameters
        ----------
        signum : int
            Signal number
        frame : frame
            Current stack frame
        """
        self.trigger()

    def trigger(self) -> None:
        """Request a stop, as if the operator had pressed Ctrl+C."""
        if self._event.is_set():
            return
        self._event.set()
        with contextlib.suppress(queue.Full):
            self._notifications.put_nowait(True)
        logger.info("Interrupt received, stopping after the current file")

    def interrupted(self) -> bool:
        """Non-blocking check for a pending stop request."""
        if self._event.is_set():
            return True
        try:
            self._notifications.get_nowait()
        except queue.Empty:
            return False
        self._event.set()
        return True


# ============================================================================
# Progress Display
# ============================================================================


def printable(text: str) -> str:
    """
    Make text safe for a UTF-8 terminal.

    Paths that are not valid UTF-8 carry lone surrogates after decoding;
    their raw bytes are shown as ``\\xNN`` escapes instead.

    Parameters
    ----------
    text : str
        Message that may contain file names

    Returns
    -------
    str
        Text that encodes cleanly as UTF-8
    """
    return text.encode("utf-8", "surrogateescape").decode("utf-8", "backslashreplace")


class ProgressReporter:
    """
    Background animation of copy progress.

    Parameters
    ----------
    state : ProgressState
        Counters to display
    console : Console | None, default=None
        Output console; a fresh ``Console()`` if omitted
    interval : float, default=DEFAULT_INTERVAL
        Seconds between renders
    """

    def __init__(
        self,
        state: ProgressState,
        console: Console | None = None,
        interval: float = DEFAULT_INTERVAL,
    ):
        self.state = state
        self.console = console or Console()
        self.interval = interval
        self.frame = 0
        self._start_time = 0.0
        self._line_width = 0
        self._stop_event = threading.Event()
        self._output_lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def elapsed(self) -> float:
        if not self._start_time:
            return 0.0
        return time.monotonic() - self._start_time

    def start(self) -> None:
        self._start_time = time.monotonic()
        self._thread = threading.Thread(
            target=self._run, name="ProgressReporter", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            completed = self.state.completed_files
            # Redirected output only gets the summary
            if self.console.is_terminal:
                self._write_line(self.render_frame(completed, self.elapsed))
            self.frame += 1
            if completed >= self.state.total_files:
                break
            self._stop_event.wait(self.interval)

    def render_frame(self, completed: int, elapsed: float) -> str:
        """
        Build one animation line.

        Parameters
        ----------
        completed : int
            Files copied so far
        elapsed : float
            Seconds since the reporter started

        Returns
        -------
        str
            Line text without carriage return
        """
        total = self.state.total_files
        percent = (completed / total * 100) if total else 0.0
        spinner = SPINNER_FRAMES[self.frame % len(SPINNER_FRAMES)]

        # Block bounces across the track, one cell per tick of the interval
        steps = int(elapsed / self.interval) if self.interval > 0 else self.frame
        span = TRACK_WIDTH - 1
        position = steps % (2 * span)
        if position > span:
            position = 2 * span - position
        track = "·" * position + "█" + "·" * (span - position)

        return (
            f"{spinner} [{track}] {percent:5.1f}% "
            f"{completed}/{total} files {elapsed:6.1f}s"
        )

    def _write_line(self, text: str) -> None:
        with self._output_lock:
            stream = self.console.file
            stream.write("\r" + text.ljust(self._line_width))
            stream.flush()
            self._line_width = len(text)

    def _clear_line(self) -> None:
        # Caller holds _output_lock
        if self._line_width:
            stream = self.console.file
            stream.write("\r" + " " * self._line_width + "\r")
            stream.flush()
            self._line_width = 0

    def println(self, message: str, style: str | None = None) -> None:
        """Print a full line without it landing on the animation line."""
        with self._output_lock:
            self._clear_line()
            self.console.print(
                printable(message), style=style, markup=False, highlight=False
            )

    def stop(self) -> None:
        """Stop the animation thread and wait for it to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()

    def finish(self) -> None:
        """Stop and print the completion summary."""
        self.stop()
        elapsed = self.elapsed
        with self._output_lock:
            self._clear_line()
            self.console.print(
                f"✓ Completed: {self.state.completed_files} file(s) copied "
                f"in {elapsed:.2f}s",
                style="green",
                markup=False,
                highlight=False,
            )

    def interrupt(self) -> None:
        """Stop and print the interruption summary."""
        self.stop()
        elapsed = self.elapsed
        with self._output_lock:
            self._clear_line()
            self.console.print(
                f"✗ Interrupted: {self.state.completed_files}/{self.state.total_files} "
                f"file(s) copied in {elapsed:.2f}s",
                style="bold red",
                markup=False,
                highlight=False,
            )
            self.console.print(
                "! Some files may be partially copied",
                style="yellow",
                markup=False,
                highlight=False,
            )


# ============================================================================
# Orchestration
# ============================================================================


class BackupProcessor:
    """
    Runs a backup from enumeration to the final summary.

    Parameters
    ----------
    request : TransferRequest
        What to copy and how
    console : Console | None, default=None
        Output console
    monitor : CancellationMonitor | None, default=None
        Interrupt source; a new one is created if omitted
    """

    def __init__(
        self,
        request: TransferRequest,
        console: Console | None = None,
        monitor: CancellationMonitor | None = None,
    ):
        self.request = request
        self.console = console or Console()
        self.monitor = monitor or CancellationMonitor()
        self.state = RunState.ENUMERATING
        self.progress: ProgressState | None = None
        self.failed_files: list[tuple[Path, str]] = []

    async def run(self) -> RunState:
        """
        Copy every source file.

        Returns
        -------
        RunState
            ``COMPLETED`` or ``INTERRUPTED``

        Raises
        ------
        OSError
            If the source cannot be enumerated; nothing has been copied then
        """
        source = self.request.source
        destination = self.request.destination

        # Installed before enumeration so Ctrl+C while listing is caught too
        self.monitor.install()
        try:
            self.state = RunState.ENUMERATING
            files = collect_files(source)
            logger.debug(f"Found {len(files)} file(s) under {source}")

            self.state = RunState.AGGREGATING
            self.progress = ProgressState(len(files), total_size(files))
            self.console.print(
                f"Copying {self.progress.total_files} file(s) "
                f"(total size: {self.progress.total_bytes} bytes)",
                markup=False,
                highlight=False,
            )

            reporter = ProgressReporter(
                self.progress, self.console, self.request.interval
            )
            self.state = RunState.COPYING
            reporter.start()

            interrupted = self.monitor.interrupted()
            for file in files:
                # Check if user pressed Ctrl+C (before starting next file)
                if interrupted or self.monitor.interrupted():
                    interrupted = True
                    break
                await self._copy_one(file, source, destination, reporter)

            self.state = RunState.FINISHING
            if interrupted:
                reporter.interrupt()
                self.state = RunState.INTERRUPTED
            else:
                reporter.finish()
                self.state = RunState.COMPLETED
        finally:
            self.monitor.uninstall()

        if self.failed_files:
            logger.warning(f"{len(self.failed_files)} file(s) failed to copy")
        return self.state

    async def _copy_one(
        self,
        file: Path,
        source: Path,
        destination: Path,
        reporter: ProgressReporter,
    ) -> None:
        target = resolve_destination(file, source, destination)
        try:
            copied = await copy_file(
                file, target, protected=not self.request.fast_mode
            )
        except OSError as e:
            self.failed_files.append((file, str(e)))
            logger.warning(f"Failed to copy {file} -> {target}: {e}")
            reporter.println(f"✗ Failed: {file} ({e})", style="red")
            return

        self.progress.increment()
        logger.debug(f"Copied {copied} bytes: {file} -> {target}")
        if self.request.verbose:
            reporter.println(f"✓ Copied: {file}", style="green")


# ============================================================================
# Main Entry Point
# ============================================================================


def setup_logging(debug: bool = False) -> None:
    """
    Configure logging for the application.

    Parameters
    ----------
    debug : bool
        Enable debug logging
    """
    log_level = logging.DEBUG if debug else logging.WARNING

    # stdout belongs to the progress display
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns
    -------
    argparse.Namespace
        Parsed command line arguments
    """
    parser = build_parser()
    return parser.parse_args(argv)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bak",
        description="File backup (copy) tool with progress animation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bak ~/photos /mnt/backup/photos          # Copy a directory tree
  bak -s report.pdf -d /mnt/backup         # Copy a file into a directory
  bak -v -f ~/music /mnt/usb/music         # Verbose, without temp files
  bak                                      # Prompt for both paths
        """,
    )

    # Paths stay strings until resolve_paths, Path("") would turn into "."
    parser.add_argument("-s", "--source", help="Source path")
    parser.add_argument("-d", "--destination", help="Destination path")
    parser.add_argument(
        "source_positional",
        nargs="?",
        metavar="SOURCE",
        help="Source path as positional argument",
    )
    parser.add_argument(
        "destination_positional",
        nargs="?",
        metavar="DESTINATION",
        help="Destination path as positional argument",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show per-file copy success messages",
    )
    parser.add_argument(
        "-f",
        "--fast-mode",
        action="store_true",
        help="Copy directly to the destination without temporary files",
    )
    parser.add_argument(
        "-l",
        "--low-animation",
        action="store_true",
        help=f"Refresh progress every {LOW_ANIMATION_INTERVAL}s instead of {DEFAULT_INTERVAL}s",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging on stderr"
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def _pick_path(
    named: str | None, positional: str | None, label: str, console: Console
) -> Path:
    value = named if named is not None else positional
    if value is None:
        value = Prompt.ask(f"Enter {label} path", console=console)
    value = value.strip()
    if not value:
        raise ValueError(f"{label} path must not be empty")
    return Path(value)


def resolve_paths(
    args: argparse.Namespace, console: Console | None = None
) -> tuple[Path, Path]:
    """
    Pick source and destination: named flag, then positional, then prompt.

    Raises
    ------
    ValueError
        If a given or prompted path is empty
    """
    console = console or Console()
    source = _pick_path(args.source, args.source_positional, "source", console)
    destination = _pick_path(
        args.destination, args.destination_positional, "destination", console
    )
    return source, destination


def main(argv: list[str] | None = None) -> int:
    """
    CLI entry point.

    Returns
    -------
    int
        Exit code: 0 for success or graceful interrupt, 1 for failure,
        2 for invalid arguments, 130 for Ctrl+C outside the copy loop
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.debug)
    console = Console()

    try:
        source, destination = resolve_paths(args, console)
        request = TransferRequest.from_args(args, source, destination)
    except (ValueError, EOFError) as e:
        parser.error(str(e) or "a path is required")
    except KeyboardInterrupt:
        console.print("\nOperation cancelled by user")
        return 130

    try:
        processor = BackupProcessor(request, console)
        asyncio.run(processor.run())
        return 0
    except KeyboardInterrupt:
        console.print("\nOperation cancelled by user")
        return 130
    except OSError as e:
        logger.error(printable(f"Could not read source: {e}"))
        console.print(
            printable(f"Error: {e}"), style="red", markup=False, highlight=False
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
