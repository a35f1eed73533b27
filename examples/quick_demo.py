#!/usr/bin/env python3
"""
Quick demonstration of bak.

This script creates a small sample tree and backs it up twice: once in the
default protected mode and once in fast mode, then shows what landed in each
destination.
"""

import asyncio
import sys
import tempfile
from pathlib import Path

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bak import BackupProcessor, TransferRequest


def create_demo_file(file_path: Path, content: str = "Demo content", size_kb: int = 100) -> None:
    """
    Create a demo file with specified content and size.

    Parameters
    ----------
    file_path : Path
        Where to create the file
    content : str
        Base content to repeat
    size_kb : int
        Approximate size in KB
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)

    target_bytes = size_kb * 1024
    content_bytes = content.encode("utf-8")
    repeats = max(1, target_bytes // len(content_bytes))

    with open(file_path, "w", encoding="utf-8") as f:
        for i in range(repeats):
            f.write(f"{content} - Line {i + 1}\n")

    print(f"📁 Created demo file: {file_path} ({file_path.stat().st_size:,} bytes)")


def show_tree(root: Path) -> None:
    for path in sorted(root.rglob("*")):
        if path.is_file():
            print(f"  {path.relative_to(root)} ({path.stat().st_size:,} bytes)")


def demo_backup(fast_mode: bool) -> None:
    """Back up a sample project directory."""
    label = "fast mode" if fast_mode else "protected mode"
    print("\n" + "=" * 50)
    print(f"🚀 DEMO: Directory backup ({label})")
    print("=" * 50)

    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        source = temp_path / "project"

        create_demo_file(source / "notes.txt", "Meeting notes", size_kb=50)
        create_demo_file(source / "photos" / "beach.raw", "Raw sensor data", size_kb=800)
        create_demo_file(source / "photos" / "2024" / "city.raw", "Raw sensor data", size_kb=600)

        backup = temp_path / "backup"

        request = TransferRequest(
            source=source,
            destination=backup,
            verbose=True,
            fast_mode=fast_mode,
        )
        state = asyncio.run(BackupProcessor(request).run())

        print(f"\nRun finished: {state.value}")
        print(f"💾 Contents of {backup}:")
        show_tree(backup)


def main() -> None:
    print("bak - Quick Demo")
    demo_backup(fast_mode=False)
    demo_backup(fast_mode=True)
    print("\n✅ Demo complete")


if __name__ == "__main__":
    main()
