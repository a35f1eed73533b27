"""
bak: File backup (copy) tool with progress animation.

Copies a file or a directory tree to a destination, optionally staging each
file through a temporary sibling, while a background thread animates
progress and Ctrl+C stops the run between files.
"""

__version__ = "0.1.0"
__author__ = "bak project"
__description__ = "File backup (copy) tool with progress animation"

from .bak import (  # noqa: E402
    BackupProcessor,
    CancellationMonitor,
    ProgressReporter,
    ProgressState,
    RunState,
    TransferRequest,
    collect_files,
    copy_file,
    main,
    resolve_destination,
    total_size,
)

__all__ = [
    "BackupProcessor",
    "CancellationMonitor",
    "ProgressReporter",
    "ProgressState",
    "RunState",
    "TransferRequest",
    "collect_files",
    "copy_file",
    "main",
    "resolve_destination",
    "total_size",
]
